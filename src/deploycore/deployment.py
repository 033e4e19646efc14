"""
Mutable state of one deployment attempt.

A ``RunningDeployment`` is created once per process and passed by
reference through every convention. Cross-step signals (skip journal,
skip remaining conventions, output directories) are explicit fields.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from deploycore import special_variables as sv
from deploycore.journal import JournalEntry, TargetIdentity
from deploycore.packages import parse_package_file_name
from deploycore.variables import VariableDictionary

logger = logging.getLogger(__name__)

__all__ = ["SideEffect", "RunningDeployment", "compute_fingerprint"]

_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class SideEffect:
    """A file or directory created by the deployment."""
    kind: str  # "file" or "directory"
    path: Path


def compute_fingerprint(package_file: Path, variables: VariableDictionary) -> str:
    """
    SHA-256 over the package bytes and the non-volatile variables.

    Process environment (``env:*``) and per-attempt ids are excluded so two
    attempts with the same package and settings share a fingerprint.
    """
    digest = hashlib.sha256()
    with open(package_file, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)

    for key in sorted(variables.keys()):
        if key.startswith(sv.ENVIRONMENT_VARIABLE_PREFIX) or key in sv.VOLATILE_VARIABLES:
            continue
        value = variables.get(key)
        digest.update(b"\0")
        digest.update(key.encode("utf-8"))
        digest.update(b"\1")
        digest.update((value if value is not None else "").encode("utf-8"))

    return digest.hexdigest()


@dataclass
class RunningDeployment:
    """Deployment state threaded through the convention pipeline."""
    package_file_path: Path
    variables: VariableDictionary
    staging_directory: Optional[Path] = None
    custom_installation_directory: Optional[Path] = None
    skip_journal: bool = False
    skip_remaining_conventions: bool = False
    previous_installation: Optional[JournalEntry] = None
    side_effects: List[SideEffect] = field(default_factory=list)
    _target: Optional[TargetIdentity] = field(default=None, init=False, repr=False)
    _fingerprint: Optional[str] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.package_file_path = Path(self.package_file_path)

    @property
    def current_directory(self) -> Path:
        """Where the deployed files currently live."""
        if self.custom_installation_directory is not None:
            return self.custom_installation_directory
        if self.staging_directory is not None:
            return self.staging_directory
        return self.package_file_path.parent

    @property
    def package_version(self) -> Optional[str]:
        return self.variables.get(sv.Package.VERSION) or parse_package_file_name(self.package_file_path).version

    @property
    def target(self) -> TargetIdentity:
        """
        Target identity from the variables (cached).

        Raises:
            ConfigurationError: If the identifying variables are missing.
        """
        if self._target is None:
            self._target = TargetIdentity.from_variables(self.variables, self.package_file_path)
        return self._target

    @property
    def fingerprint(self) -> str:
        """Input fingerprint, computed once and then pinned for the run."""
        if self._fingerprint is None:
            self._fingerprint = compute_fingerprint(self.package_file_path, self.variables)
        return self._fingerprint

    # Side effects

    def record_file_created(self, path: Union[str, Path]) -> None:
        self.side_effects.append(SideEffect("file", Path(path)))

    def record_directory_created(self, path: Union[str, Path]) -> None:
        self.side_effects.append(SideEffect("directory", Path(path)))

    @property
    def files_created(self) -> List[Path]:
        return self._unique("file")

    @property
    def directories_created(self) -> List[Path]:
        return self._unique("directory")

    def _unique(self, kind: str) -> List[Path]:
        seen = set()
        paths = []
        for effect in self.side_effects:
            if effect.kind == kind and effect.path not in seen:
                seen.add(effect.path)
                paths.append(effect.path)
        return paths

    # Previous installation

    def stale_files(self, directory: Path) -> List[Path]:
        """
        Files the previous installation created under ``directory`` that
        this deployment has not created.
        """
        if self.previous_installation is None:
            return []
        directory = Path(directory)
        current = set(self.files_created)
        stale = []
        for name in self.previous_installation.files_created:
            path = Path(name)
            if path in current:
                continue
            try:
                path.relative_to(directory)
            except ValueError:
                continue
            stale.append(path)
        return stale

    def adopt_previous_installation(self, entry: JournalEntry) -> None:
        """Carry ``entry``'s directories and manifest forward into this run."""
        if entry.extracted_to:
            self.staging_directory = Path(entry.extracted_to)
        if entry.custom_installation_directory:
            self.custom_installation_directory = Path(entry.custom_installation_directory)
        for name in entry.directories_created:
            self.record_directory_created(name)
        for name in entry.files_created:
            self.record_file_created(name)
