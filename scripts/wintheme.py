#!/usr/bin/env -S uv run --quiet --script

# /// script
# dependencies = [
#   "loguru",
#   "pydantic",
# ]
# ///
"""
Изменяет тему Windows на светлую или тёмную, либо применяет файл темы.

Без аргументов переключает текущую тему на противоположную: если сейчас
включена светлая тема, будет применена тёмная, и наоборот.

Использование:
    wintheme.py                        # переключить светлую/тёмную
    wintheme.py light
    wintheme.py --mode dark --force    # применить и перезапустить explorer.exe
    wintheme.py --theme MyTheme        # %SystemRoot%\\Resources\\Themes\\MyTheme.theme
    wintheme.py --dry-run              # показать, что будет сделано
"""
import argparse
import os
import subprocess
import sys
import time
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

THEME_EXTENSION = ".theme"
WILDCARD_CHARS = "*?["
LIGHT_THEME_FILE = "themeC.theme"
DARK_THEME_FILE = "themeA.theme"

PERSONALIZE_KEY = r"Software\Microsoft\Windows\CurrentVersion\Themes\Personalize"
LIGHT_THEME_VALUE = "AppsUseLightTheme"

SHELL_PROCESS = "explorer.exe"
SHELL_RESTART_DELAY = 1.0
TASKKILL_NOT_FOUND = 128

THEMES_DIR_ENV = "WINTHEME_THEMES_DIR"
HELP_FLAGS = ("-h", "-?", "--help")


def default_themes_dir() -> Path:
    """Каталог тем Windows, либо каталог из WINTHEME_THEMES_DIR."""
    override = os.getenv(THEMES_DIR_ENV)
    if override:
        return Path(override)
    system_root = os.getenv("SystemRoot", r"C:\Windows")
    return Path(system_root) / "Resources" / "Themes"


# MARK: Data Models
class ThemeMode(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class ConfirmationPolicy(str, Enum):
    INTERACTIVE = "interactive"
    AUTO = "auto"
    DRY_RUN = "dry-run"


PRESET_FILES = {
    ThemeMode.LIGHT: LIGHT_THEME_FILE,
    ThemeMode.DARK: DARK_THEME_FILE,
}


class InvocationOptions(BaseModel):
    """Параметры запуска, разобранные из командной строки"""

    model_config = ConfigDict(frozen=True)

    custom_theme: Optional[str] = None
    mode: Optional[ThemeMode] = None
    force: bool = False
    policy: ConfirmationPolicy = ConfirmationPolicy.AUTO
    themes_dir: Path = Field(default_factory=default_themes_dir, validate_default=True)
    list_themes: bool = False
    verbose: bool = False

    @field_validator("themes_dir")
    @classmethod
    def absolute_themes_dir(cls, value: Path) -> Path:
        return value.resolve()


class ResolvedTheme(BaseModel):
    """Файл темы, который будет применён"""

    model_config = ConfigDict(frozen=True)

    file_path: Path
    label: str

    def describe(self) -> str:
        if self.label == str(self.file_path):
            return self.label
        return f"{self.label} ({self.file_path})"


# MARK: Errors
class ThemeError(Exception):
    """Базовая ошибка переключения темы"""


class ThemeNotFoundError(ThemeError):
    def __init__(self, path: Path):
        super().__init__(f"Тема не найдена: {path}")
        self.path = path


class ThemeLaunchError(ThemeError):
    """Windows не смогла открыть файл темы"""


class ShellRestartError(ThemeError):
    """explorer.exe не удалось запустить заново"""


# MARK: OS collaborators
class PreferenceReader(Protocol):
    def light_mode_enabled(self) -> bool: ...


class ThemeApplier(Protocol):
    def apply(self, path: Path) -> None: ...


class ShellRestarter(Protocol):
    def stop(self) -> None: ...

    def start(self) -> None: ...


class RegistryPreferenceReader:
    """Читает AppsUseLightTheme из HKEY_CURRENT_USER (1 - светлая тема, 0 - тёмная)."""

    def light_mode_enabled(self) -> bool:
        try:
            import winreg

            with winreg.OpenKey(winreg.HKEY_CURRENT_USER, PERSONALIZE_KEY) as key:
                value, _ = winreg.QueryValueEx(key, LIGHT_THEME_VALUE)
        except (ImportError, OSError) as e:
            # Значения нет, пока тему ни разу не переключали: Windows считает её светлой
            logger.debug(f"Не удалось прочитать {LIGHT_THEME_VALUE}: {e}")
            return True
        return int(value) == 1


class ShellThemeApplier:
    """Открывает файл темы приложением по умолчанию, то есть применяет её."""

    def apply(self, path: Path) -> None:
        startfile = getattr(os, "startfile", None)
        if startfile is None:
            raise ThemeLaunchError("Применить тему можно только в Windows")
        try:
            startfile(str(path))
        except OSError as e:
            raise ThemeLaunchError(f"Не удалось открыть {path}: {e}") from e


class ExplorerRestarter:
    def stop(self) -> None:
        try:
            result = subprocess.run(
                ["taskkill", "/F", "/IM", SHELL_PROCESS],
                capture_output=True,
                text=True,
            )
        except OSError as e:
            logger.debug(f"taskkill не запустился: {e}")
            return
        message = result.stderr.strip() or result.returncode
        if result.returncode == TASKKILL_NOT_FOUND:
            # Процесса может не быть вовсе, это не ошибка
            logger.debug(f"taskkill: {message}")
        elif result.returncode != 0:
            logger.warning(f"⚠️ Не удалось остановить {SHELL_PROCESS}: {message}")

    def start(self) -> None:
        try:
            subprocess.Popen([SHELL_PROCESS])
        except OSError as e:
            raise ShellRestartError(f"Не удалось запустить {SHELL_PROCESS}: {e}") from e


# MARK: Confirmation
class ConfirmationGate:
    """
    Спрашивает разрешение перед каждым действием, которое меняет систему.

    В режиме dry-run только печатает, что было бы сделано, в режиме auto
    ничего не спрашивает, в интерактивном (--confirm) спрашивает обо всём.
    """

    def __init__(
        self,
        policy: ConfirmationPolicy,
        ask: Callable[[str], str] = input,
    ):
        self.policy = policy
        self.ask = ask

    def approve(self, action: str, target: str) -> bool:
        if self.policy is ConfirmationPolicy.DRY_RUN:
            print(f"Пробный запуск: {action} {target}")
            return False
        if self.policy is ConfirmationPolicy.AUTO:
            return True

        try:
            answer = self.ask(f"{action} {target}? [y/N]: ")
        except EOFError:
            answer = ""
        if answer.strip().lower() in ("y", "yes", "д", "да"):
            return True

        logger.info(f"⏭️ Пропущено: {action} {target}")
        return False


# MARK: Resolution
def normalize_theme_name(name: str) -> str:
    if name.endswith(THEME_EXTENSION):
        return name
    return name + THEME_EXTENSION


def find_theme_file(file_name: str, themes_dir: Path) -> Path:
    """
    Находит файл темы; относительные имена ищутся в каталоге тем.

    Имя может содержать шаблоны * ? [ ]: тогда берётся первое совпадение
    в алфавитном порядке.
    """
    path = Path(file_name)
    if path.is_absolute():
        base = Path(path.anchor)
        pattern = str(path.relative_to(base))
    else:
        base = themes_dir
        pattern = file_name
        path = themes_dir / file_name

    if not any(char in pattern for char in WILDCARD_CHARS):
        if not path.exists():
            raise ThemeNotFoundError(path)
        return path

    matches = sorted(base.glob(pattern))
    if not matches:
        raise ThemeNotFoundError(path)
    if len(matches) > 1:
        logger.debug(
            f"Найдено тем по шаблону {pattern}: {len(matches)}, берём {matches[0]}"
        )
    return matches[0]


def preset_theme(mode: ThemeMode, themes_dir: Path) -> ResolvedTheme:
    return ResolvedTheme(file_path=themes_dir / PRESET_FILES[mode], label=mode.value)


def resolve_theme(
    options: InvocationOptions, preferences: PreferenceReader
) -> ResolvedTheme:
    """
    Определяет файл темы для применения.

    Порядок: --theme, затем --mode, затем переключение текущей темы.
    Реестр читается только в последнем случае.

    Raises:
        ThemeNotFoundError: файла пользовательской темы не существует
    """
    custom = (options.custom_theme or "").strip()
    if custom:
        path = find_theme_file(normalize_theme_name(custom), options.themes_dir)
        return ResolvedTheme(file_path=path, label=str(path))

    if options.mode is not None:
        return preset_theme(options.mode, options.themes_dir)

    if preferences.light_mode_enabled():
        logger.debug("Сейчас включена светлая тема, переключаемся на тёмную")
        return preset_theme(ThemeMode.DARK, options.themes_dir)
    logger.debug("Сейчас включена тёмная тема, переключаемся на светлую")
    return preset_theme(ThemeMode.LIGHT, options.themes_dir)


def list_themes(themes_dir: Path) -> List[str]:
    if not themes_dir.is_dir():
        raise ThemeError(f"Каталог тем не найден: {themes_dir}")
    return sorted(path.stem for path in themes_dir.glob(f"*{THEME_EXTENSION}"))


# MARK: Switcher
class ThemeSwitcher:
    def __init__(
        self,
        options: InvocationOptions,
        preferences: Optional[PreferenceReader] = None,
        applier: Optional[ThemeApplier] = None,
        restarter: Optional[ShellRestarter] = None,
        ask: Callable[[str], str] = input,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.options = options
        self.preferences = preferences or RegistryPreferenceReader()
        self.applier = applier or ShellThemeApplier()
        self.restarter = restarter or ExplorerRestarter()
        self.gate = ConfirmationGate(options.policy, ask)
        self.sleep = sleep

    def run(self) -> ResolvedTheme:
        theme = resolve_theme(self.options, self.preferences)

        if self.gate.approve("Применить тему", theme.describe()):
            self.applier.apply(theme.file_path)
            logger.success(f"✅ Тема применена: {theme.label}")

        if self.options.force and self.gate.approve("Перезапустить", SHELL_PROCESS):
            self.restart_shell()

        return theme

    def restart_shell(self) -> None:
        """Перезапускает explorer.exe, чтобы новая тема отобразилась сразу."""
        logger.info(f"🔄 Перезапуск {SHELL_PROCESS}...")
        self.restarter.stop()
        # Даём старому процессу освободить панель задач
        self.sleep(SHELL_RESTART_DELAY)
        self.restarter.start()
        logger.info(f"✅ {SHELL_PROCESS} запущен")


# MARK: CLI
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="theme",
        description="Изменение темы Windows на светлую или тёмную",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        allow_abbrev=False,
        epilog="""
Примеры использования:
  %(prog)s                          # Переключить светлую/тёмную тему
  %(prog)s light                    # Включить светлую тему
  %(prog)s -m dark --force -y       # Тёмная тема и перезапуск explorer.exe без вопросов
  %(prog)s -t "My Theme"            # Применить My Theme.theme из каталога тем
  %(prog)s -t D:\\themes\\x.theme    # Применить файл темы по полному пути
  %(prog)s --list                   # Показать доступные темы
  %(prog)s --dry-run                # Показать, что будет сделано
        """,
    )

    parser.add_argument(
        "mode_arg",
        nargs="?",
        choices=[mode.value for mode in ThemeMode],
        metavar="light|dark",
        help="Тема, на которую нужно переключиться (то же, что --mode)",
    )
    parser.add_argument(
        "-t",
        "--theme",
        metavar="NAME",
        help="Имя или путь файла темы; расширение .theme можно не указывать",
    )
    parser.add_argument(
        "-m",
        "--mode",
        choices=[mode.value for mode in ThemeMode],
        help="Включить светлую или тёмную тему",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help=f"Перезапустить {SHELL_PROCESS}, чтобы тема применилась сразу",
    )
    parser.add_argument(
        "--dry-run",
        "--whatif",
        dest="dry_run",
        action="store_true",
        help="Показать, что будет сделано, ничего не меняя",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Не запрашивать подтверждение (отменяет --confirm)",
    )
    parser.add_argument(
        "--confirm",
        action="store_true",
        help="Запрашивать подтверждение перед каждым действием",
    )
    parser.add_argument(
        "--themes-dir",
        metavar="DIR",
        help=f"Каталог тем (по умолчанию ${THEMES_DIR_ENV} или %%SystemRoot%%\\Resources\\Themes)",
    )
    parser.add_argument(
        "-l",
        "--list",
        dest="list_themes",
        action="store_true",
        help="Показать список доступных тем",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Подробный вывод",
    )
    parser.add_argument(
        "-h",
        "-?",
        "--help",
        action="help",
        help="Показать эту справку и выйти",
    )
    return parser


def wants_help(argv: List[str]) -> bool:
    for arg in argv:
        if arg == "--":
            return False
        if arg in HELP_FLAGS:
            return True
    return False


def parse_options(argv: List[str]) -> InvocationOptions:
    args = build_parser().parse_args(argv)

    if args.dry_run:
        policy = ConfirmationPolicy.DRY_RUN
    elif args.confirm and not args.yes:
        policy = ConfirmationPolicy.INTERACTIVE
    else:
        policy = ConfirmationPolicy.AUTO

    return InvocationOptions(
        custom_theme=args.theme,
        mode=args.mode or args.mode_arg,
        force=args.force,
        policy=policy,
        themes_dir=Path(args.themes_dir) if args.themes_dir else default_themes_dir(),
        list_themes=args.list_themes,
        verbose=args.verbose,
    )


def configure_logging(verbose: bool = False) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "INFO",
        format="<level>{message}</level>",
    )


def print_theme_list(themes_dir: Path) -> None:
    presets = {
        Path(file_name).stem: mode.value for mode, file_name in PRESET_FILES.items()
    }
    for name in list_themes(themes_dir):
        if name in presets:
            print(f"{name} ({presets[name]})")
        else:
            print(name)


# MARK: main
def main(
    argv: Optional[List[str]] = None,
    *,
    preferences: Optional[PreferenceReader] = None,
    applier: Optional[ThemeApplier] = None,
    restarter: Optional[ShellRestarter] = None,
    ask: Callable[[str], str] = input,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Точка входа; возвращает код завершения"""
    argv = sys.argv[1:] if argv is None else list(argv)

    # Справка имеет приоритет над любыми другими параметрами
    if wants_help(argv):
        build_parser().print_help()
        return 0

    options = parse_options(argv)
    configure_logging(options.verbose)

    try:
        if options.list_themes:
            print_theme_list(options.themes_dir)
            return 0

        switcher = ThemeSwitcher(
            options,
            preferences=preferences,
            applier=applier,
            restarter=restarter,
            ask=ask,
            sleep=sleep,
        )
        switcher.run()
    except ShellRestartError as e:
        logger.warning(f"⚠️ {e}")
        logger.warning(
            f"⚠️ Запустите {SHELL_PROCESS} вручную: "
            "Ctrl+Shift+Esc → Запустить новую задачу"
        )
    except ThemeError as e:
        logger.error(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("🛑 Прервано пользователем")
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
