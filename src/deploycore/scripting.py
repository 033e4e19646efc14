"""
Script execution for lifecycle hooks.

Scripts are run as child processes with the working directory set to the
deployment's current directory. They read the deployment variables from a
JSON file named by ``DEPLOYCORE_VARIABLES_FILE`` and may set output
variables by printing a service message::

    ##deploycore[setVariable name='Acme.Port' value='8080']

Quotes and backslashes inside the name or value are escaped with a backslash.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Protocol

from deploycore.variables import VariableDictionary

logger = logging.getLogger(__name__)

__all__ = [
    "CommandResult",
    "ScriptEngine",
    "CombinedScriptEngine",
    "parse_service_messages",
    "VARIABLES_FILE_ENV",
]

VARIABLES_FILE_ENV = "DEPLOYCORE_VARIABLES_FILE"

_SERVICE_MESSAGE = re.compile(
    r"^##deploycore\[setVariable name='(?P<name>(?:[^'\\]|\\.)*)' value='(?P<value>(?:[^'\\]|\\.)*)'\]\s*$"
)
_ESCAPE = re.compile(r"\\(.)")


def _unescape(text: str) -> str:
    return _ESCAPE.sub(r"\1", text)


def parse_service_messages(output: str) -> Dict[str, str]:
    """Collect ``setVariable`` service messages from script output, last one wins."""
    found: Dict[str, str] = {}
    for line in output.splitlines():
        match = _SERVICE_MESSAGE.match(line.strip())
        if match:
            found[_unescape(match.group("name"))] = _unescape(match.group("value"))
    return found


@dataclass
class CommandResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    output_variables: Dict[str, str] = field(default_factory=dict)


class ScriptEngine(Protocol):
    def supported_extensions(self) -> List[str]:
        """Script file extensions this engine can run, in preference order."""
        ...

    def execute(self, script: Path, variables: VariableDictionary, working_directory: Path) -> CommandResult:
        """Run ``script`` and return its result; a non-zero exit is not an exception."""
        ...


def _python_command(script: Path) -> List[str]:
    return [sys.executable, str(script)]


def _bash_command(script: Path) -> List[str]:
    return ["bash", str(script)]


def _powershell_command(script: Path) -> List[str]:
    return ["pwsh", "-NonInteractive", "-NoProfile", "-ExecutionPolicy", "Unrestricted", "-File", str(script)]


class CombinedScriptEngine:
    """Dispatch scripts to an interpreter by file extension."""

    # extension -> (interpreter that must be on PATH, command builder)
    INTERPRETERS: Dict[str, "tuple[str, Callable[[Path], List[str]]]"] = {
        "ps1": ("pwsh", _powershell_command),
        "py": (sys.executable, _python_command),
        "sh": ("bash", _bash_command),
    }

    def supported_extensions(self) -> List[str]:
        return [
            ext for ext, (interpreter, _) in self.INTERPRETERS.items()
            if os.path.isabs(interpreter) or shutil.which(interpreter)
        ]

    def execute(self, script: Path, variables: VariableDictionary, working_directory: Path) -> CommandResult:
        extension = script.suffix.lstrip(".").lower()
        if extension not in self.INTERPRETERS:
            raise ValueError(f"No script engine is registered for '.{extension}' files: {script}")
        _, build_command = self.INTERPRETERS[extension]

        fd, variables_path = tempfile.mkstemp(prefix="deploycore-variables-", suffix=".json")
        os.close(fd)
        try:
            # Variables may include decrypted sensitive values
            os.chmod(variables_path, 0o600)
            variables.save(variables_path)

            env = dict(os.environ)
            env[VARIABLES_FILE_ENV] = variables_path

            cmd = build_command(script)
            logger.info(f"Executing {script}")
            logger.debug(f"Command: {' '.join(cmd)}")
            completed = subprocess.run(
                cmd,
                cwd=str(working_directory),
                env=env,
                capture_output=True,
                text=True,
            )
        finally:
            if os.path.exists(variables_path):
                os.unlink(variables_path)

        for line in completed.stdout.splitlines():
            logger.info(line)
        for line in completed.stderr.splitlines():
            logger.warning(line)

        return CommandResult(
            exit_code=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
            output_variables=parse_service_messages(completed.stdout),
        )
