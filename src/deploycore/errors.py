"""
Error taxonomy for deploycore.

Errors raised before the pipeline starts derive from ``ConfigurationError``
and never produce a journal entry. ``StepFailure`` is the base for failures
raised by the built-in conventions; the engine re-raises whatever a step
raises without wrapping it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union


class DeployCoreError(Exception):
    """Base class for all deploycore errors."""


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class ConfigurationError(DeployCoreError):
    """Bad or missing inputs detected before any deployment step runs."""


class VariablesFileNotFound(ConfigurationError):
    """A variables file was named but does not exist."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        super().__init__(f"Could not find variables file: {self.path}")


class PackageFileNotFound(ConfigurationError):
    """The package artifact does not exist or cannot be read."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        super().__init__(f"Could not find package file: {self.path}")


class SensitiveVariablesConfigError(ConfigurationError):
    """Only one of the sensitive-variables password and salt was supplied."""


class SensitiveVariablesDecryptError(DeployCoreError):
    """The sensitive-variables source could not be decrypted."""


# ---------------------------------------------------------------------------
# Shared resources
# ---------------------------------------------------------------------------


class LockTimeout(DeployCoreError):
    """A host-wide lock could not be acquired within its timeout."""

    def __init__(self, name: str, timeout: float, holder: Optional[str] = None):
        self.name = name
        self.timeout = timeout
        self.holder = holder
        message = f"Timed out after {timeout:g}s waiting for lock '{name}'"
        if holder:
            message += f" (held by {holder})"
        super().__init__(message)


class JournalCorrupt(DeployCoreError):
    """The durable journal store exists but cannot be parsed."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Deployment journal {self.path} is unreadable: {reason}")


# ---------------------------------------------------------------------------
# Pipeline steps
# ---------------------------------------------------------------------------


class StepFailure(DeployCoreError):
    """A pipeline convention failed."""


class ScriptFailed(StepFailure):
    """A lifecycle script exited with a non-zero exit code."""

    def __init__(self, script: Union[str, Path], exit_code: int, stderr: str = ""):
        self.script = Path(script)
        self.exit_code = exit_code
        self.stderr = stderr
        message = f"Script '{self.script.name}' returned non-zero exit code: {exit_code}"
        if stderr.strip():
            message += f"\n{stderr.strip()}"
        super().__init__(message)


class WebSiteNotFound(StepFailure):
    """Web server registration could not find the requested site."""

    def __init__(self, site_name: str):
        self.site_name = site_name
        super().__init__(
            f"Could not find a web site or virtual directory named '{site_name}' on the local machine. "
            "If you expected it to be created for you, create it before deploying, or deploy to "
            "a custom installation directory instead."
        )
