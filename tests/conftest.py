"""
Pytest configuration and fixtures for deploycore tests.
"""

from __future__ import annotations

import json
import logging
import zipfile
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional

import pytest

from deploycore import special_variables as sv
from deploycore.config import DeployCoreConfig, reset_config
from deploycore.journal import DeploymentJournal
from deploycore.locking import SystemSemaphore
from deploycore.scripting import CommandResult
from deploycore.variables import VariableDictionary


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Point the agent at a temporary home directory for each test."""
    home = tmp_path / "agent-home"
    monkeypatch.setenv("DEPLOYCORE_HOME_DIR", str(home))
    monkeypatch.setenv("DEPLOYCORE_LOCK_TIMEOUT_SECONDS", "5")
    monkeypatch.setenv("DEPLOYCORE_LOCK_POLL_INTERVAL_SECONDS", "0.01")
    reset_config()
    yield home
    reset_config()


@pytest.fixture
def config(isolated_home: Path) -> DeployCoreConfig:
    return DeployCoreConfig(
        home_dir=str(isolated_home),
        lock_timeout_seconds=5,
        lock_poll_interval_seconds=0.01,
    )


@pytest.fixture
def semaphore(config: DeployCoreConfig) -> SystemSemaphore:
    return SystemSemaphore(config.get_lock_dir(), poll_interval=0.01)


@pytest.fixture
def journal(config: DeployCoreConfig, semaphore: SystemSemaphore) -> DeploymentJournal:
    return DeploymentJournal(config.get_journal_path(), semaphore, lock_timeout=5)


# ============================================================================
# Deployment Input Fixtures
# ============================================================================


@pytest.fixture
def base_variables() -> Dict[str, str]:
    """Variables identifying a single deployment target."""
    return {
        sv.Environment.ID: "Environments-1",
        sv.Environment.NAME: "Production",
        sv.Project.ID: "Projects-7",
        sv.Package.ID: "Acme.Web",
        sv.Package.VERSION: "1.0.0",
    }


@pytest.fixture
def variables(base_variables: Dict[str, str]) -> VariableDictionary:
    return VariableDictionary(base_variables)


@pytest.fixture
def make_package(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a zip package with the given files."""
    packages_dir = tmp_path / "packages"
    packages_dir.mkdir()

    def _make(files: Optional[Dict[str, str]] = None, name: str = "Acme.Web.1.0.0.zip") -> Path:
        files = files if files is not None else {
            "index.html": "<h1>#{Greeting}</h1>",
            "bin/app.txt": "app",
        }
        path = packages_dir / name
        with zipfile.ZipFile(path, "w") as archive:
            for file_name, content in files.items():
                archive.writestr(file_name, content)
        return path

    return _make


@pytest.fixture
def write_variables(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a variables JSON file."""
    def _write(values: Dict[str, str], name: str = "variables.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(values))
        return path

    return _write


# ============================================================================
# Script Engine Fixtures
# ============================================================================


class RecordingScriptEngine:
    """Script engine that records scripts instead of running them."""

    def __init__(self, extensions: Optional[List[str]] = None):
        self.extensions = extensions or ["sh"]
        self.executed: List[Path] = []
        self.results: Dict[str, CommandResult] = {}

    def supported_extensions(self) -> List[str]:
        return list(self.extensions)

    def execute(self, script: Path, variables: VariableDictionary, working_directory: Path) -> CommandResult:
        self.executed.append(script)
        return self.results.get(script.name, CommandResult(exit_code=0))


@pytest.fixture
def script_engine() -> RecordingScriptEngine:
    return RecordingScriptEngine()


@pytest.fixture(autouse=True)
def restore_logging() -> Generator[None, None, None]:
    """Undo configure_logging() calls made by CLI tests."""
    root = logging.getLogger("deploycore")
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    root.propagate = True
