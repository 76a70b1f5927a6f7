# tests/conftest.py
# Fake OS collaborators & an isolated themes directory

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import pytest
from loguru import logger

import wintheme


class FakePreferenceReader:
    def __init__(self, light_enabled: bool = True):
        self.light_enabled = light_enabled
        self.calls = 0

    def light_mode_enabled(self) -> bool:
        self.calls += 1
        return self.light_enabled


class RecordingApplier:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.applied: List[Path] = []

    def apply(self, path: Path) -> None:
        if self.error is not None:
            raise self.error
        self.applied.append(path)


class RecordingRestarter:
    def __init__(self, start_error: Optional[Exception] = None):
        self.start_error = start_error
        self.events: List[str] = []

    def stop(self) -> None:
        self.events.append("stop")

    def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.events.append("start")


@dataclass
class CliRun:
    exit_code: int
    preferences: FakePreferenceReader
    applier: RecordingApplier
    restarter: RecordingRestarter
    prompts: List[str] = field(default_factory=list)
    sleeps: List[float] = field(default_factory=list)


# * Drop the sink main() installs after each test
@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger.remove()


# * Themes directory w/ both presets & one custom theme, exported via env
@pytest.fixture
def themes_dir(tmp_path, monkeypatch):
    directory = tmp_path / "Themes"
    directory.mkdir()
    for name in (wintheme.LIGHT_THEME_FILE, wintheme.DARK_THEME_FILE, "MyCustomTheme.theme"):
        (directory / name).write_text("[Theme]\n", encoding="utf-8")
    monkeypatch.setenv(wintheme.THEMES_DIR_ENV, str(directory))
    return directory


# * Runs main() w/ fakes; answers are fed to prompts in order
@pytest.fixture
def run_cli(themes_dir):
    def _run(
        *argv: str,
        light_enabled: bool = True,
        answers=(),
        applier: Optional[RecordingApplier] = None,
        restarter: Optional[RecordingRestarter] = None,
    ) -> CliRun:
        pending = list(answers)
        result = CliRun(
            exit_code=-1,
            preferences=FakePreferenceReader(light_enabled),
            applier=applier or RecordingApplier(),
            restarter=restarter or RecordingRestarter(),
        )

        def ask(prompt: str) -> str:
            result.prompts.append(prompt)
            if not pending:
                raise EOFError
            return pending.pop(0)

        result.exit_code = wintheme.main(
            list(argv),
            preferences=result.preferences,
            applier=result.applier,
            restarter=result.restarter,
            ask=ask,
            sleep=result.sleeps.append,
        )
        return result

    return _run
