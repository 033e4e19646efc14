"""
Durable journal of deployment attempts.

Every pipeline run (unless it opts out) appends one entry recording where
the package was installed, which files it created, the fingerprint of its
inputs and whether it succeeded. The newest entry for a target identity is
the current one; older entries are kept for audit and rollback until the
per-target history limit prunes them.

The journal is a single JSON file shared by every agent process on the
host. All reads and writes hold the journal lock, and writes go to a
temporary file that atomically replaces the store, so a reader never sees a
half-written journal.

Store layout (schema version 2)::

    {
      "schema_version": 2,
      "entries": [ {<JournalEntry>}, ... ]   # oldest first
    }

Version 1 stores were a bare list of entries and are upgraded on the next
write. Unknown fields written by newer versions are preserved.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from deploycore import special_variables as sv
from deploycore.errors import ConfigurationError, JournalCorrupt
from deploycore.locking import SystemSemaphore
from deploycore.otel import add_span_event
from deploycore.packages import parse_package_file_name
from deploycore.variables import VariableDictionary

if TYPE_CHECKING:
    from deploycore.deployment import RunningDeployment

logger = logging.getLogger(__name__)

__all__ = [
    "SCHEMA_VERSION",
    "TargetIdentity",
    "JournalEntry",
    "DeploymentJournal",
]

# Schema versioning for the journal store and its entries
# Increment when making breaking changes to JournalEntry structure
SCHEMA_VERSION = 2

# Migration history:
# Version 1: bare list of entries without file manifest or fingerprint
# Version 2: {"schema_version", "entries"} wrapper; added files_created,
#            directories_created, fingerprint and schema_version per entry

UNTENANTED = "untenanted"


@dataclass(frozen=True)
class TargetIdentity:
    """Which logical deployment target an entry belongs to."""
    environment_id: str
    project_id: str
    package_id: str
    tenant_id: Optional[str] = None

    @property
    def key(self) -> str:
        return "/".join([
            self.environment_id,
            self.project_id,
            self.tenant_id or UNTENANTED,
            self.package_id,
        ])

    def __str__(self) -> str:
        return self.key

    def to_dict(self) -> Dict[str, Optional[str]]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TargetIdentity":
        return cls(
            environment_id=data["environment_id"],
            project_id=data["project_id"],
            package_id=data["package_id"],
            tenant_id=data.get("tenant_id"),
        )

    @classmethod
    def from_variables(
        cls,
        variables: VariableDictionary,
        package_file: Optional[Union[str, Path]] = None,
    ) -> "TargetIdentity":
        """
        Derive the target identity from the deployment variables.

        The package id falls back to the package file name.

        Raises:
            ConfigurationError: If the environment, project or package id is missing.
        """
        environment_id = variables.get(sv.Environment.ID)
        project_id = variables.get(sv.Project.ID)
        package_id = variables.get(sv.Package.ID)
        if not package_id and package_file is not None:
            package_id = parse_package_file_name(package_file).package_id

        missing = [
            name for name, value in (
                (sv.Environment.ID, environment_id),
                (sv.Project.ID, project_id),
                (sv.Package.ID, package_id),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                "Cannot determine the deployment target; missing variables: " + ", ".join(missing)
            )

        return cls(
            environment_id=environment_id,
            project_id=project_id,
            package_id=package_id,
            tenant_id=variables.get(sv.Tenant.ID) or None,
        )


@dataclass
class JournalEntry:
    """
    Outcome of one deployment attempt.

    Supports forward migration from older schema versions so journals
    written by older agents can still be read.
    """
    target: TargetIdentity
    was_successful: bool
    package_version: Optional[str] = None
    extracted_to: Optional[str] = None
    custom_installation_directory: Optional[str] = None
    files_created: List[str] = field(default_factory=list)
    directories_created: List[str] = field(default_factory=list)
    fingerprint: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    installed_on: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    schema_version: int = SCHEMA_VERSION

    @property
    def installation_directory(self) -> Optional[str]:
        """Where the deployed files ended up."""
        return self.custom_installation_directory or self.extracted_to

    def to_dict(self) -> Dict[str, Any]:
        """Serialize entry to dictionary, always at current schema version."""
        data = asdict(self)
        data["target"] = self.target.to_dict()
        data["schema_version"] = SCHEMA_VERSION
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JournalEntry":
        """
        Deserialize entry from dictionary, migrating if needed.

        Raises:
            KeyError, TypeError, ValueError: If required fields are missing or malformed.
        """
        data = dict(data)
        version = data.get("schema_version", 1)
        if version < SCHEMA_VERSION:
            data = cls._migrate(data, version)

        # Remove any unknown fields that may have been added in future versions
        known_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known_fields}

        filtered["target"] = TargetIdentity.from_dict(data["target"])
        if not isinstance(filtered["was_successful"], bool):
            raise TypeError("was_successful must be a boolean")
        for name in ("files_created", "directories_created"):
            if not isinstance(filtered.get(name, []), list):
                raise TypeError(f"{name} must be a list")
        return cls(**filtered)

    @classmethod
    def _migrate(cls, data: Dict[str, Any], from_version: int) -> Dict[str, Any]:
        if from_version < 2:
            data = cls._migrate_v1_to_v2(data)
        data["schema_version"] = SCHEMA_VERSION
        return data

    @classmethod
    def _migrate_v1_to_v2(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Migrate from schema v1 to v2.

        Adds empty file and directory manifests and a missing fingerprint,
        which makes v1 entries ineligible for the already-installed skip.
        """
        data.setdefault("files_created", [])
        data.setdefault("directories_created", [])
        data.setdefault("fingerprint", None)
        logger.debug(f"Migrated journal entry {data.get('id')} from v1 to v2")
        return data

    @classmethod
    def from_deployment(cls, deployment: "RunningDeployment", successful: bool) -> "JournalEntry":
        """Build the entry recording ``deployment``'s outcome."""
        return cls(
            target=deployment.target,
            was_successful=successful,
            package_version=deployment.package_version,
            extracted_to=str(deployment.staging_directory) if deployment.staging_directory else None,
            custom_installation_directory=(
                str(deployment.custom_installation_directory)
                if deployment.custom_installation_directory else None
            ),
            files_created=[str(p) for p in deployment.files_created],
            directories_created=[str(p) for p in deployment.directories_created],
            fingerprint=deployment.fingerprint,
        )


class DeploymentJournal:
    """
    Journal of past deployments backed by one JSON file.

    Args:
        path: Journal file location
        semaphore: Host-wide lock service guarding the file
        lock_timeout: Seconds to wait for the journal lock
        history_limit: Superseded entries kept per target identity
    """

    def __init__(
        self,
        path: Union[str, Path],
        semaphore: SystemSemaphore,
        lock_timeout: float = 180.0,
        history_limit: int = 20,
    ):
        self.path = Path(path)
        self.semaphore = semaphore
        self.lock_timeout = lock_timeout
        self.history_limit = history_limit

    @property
    def lock_name(self) -> str:
        return f"deploycore.journal:{self.path.resolve()}"

    # Read path

    def try_get_entry(self, target: TargetIdentity) -> Optional[JournalEntry]:
        """Current (newest) entry for ``target``, or None on first deployment."""
        entries = self.get_entries(target)
        return entries[-1] if entries else None

    def try_get_latest_successful_entry(self, target: TargetIdentity) -> Optional[JournalEntry]:
        """Newest successful entry for ``target``, or None."""
        for entry in reversed(self.get_entries(target)):
            if entry.was_successful:
                return entry
        return None

    def get_entries(self, target: Optional[TargetIdentity] = None) -> List[JournalEntry]:
        """
        Journal history, oldest first.

        Args:
            target: Restrict to one target identity; all targets when None

        Raises:
            JournalCorrupt: If the store cannot be parsed
            LockTimeout: If the journal lock cannot be acquired
        """
        with self.semaphore.hold(self.lock_name, self.lock_timeout):
            _, raw_entries = self._load()
        entries = [self._parse_entry(raw) for raw in raw_entries]
        if target is None:
            return entries
        return [e for e in entries if e.target.key == target.key]

    # Write path

    def add_entry(self, entry: JournalEntry) -> None:
        """
        Append ``entry``, making it the current entry for its target.

        The read-modify-write runs under the journal lock and the store is
        replaced atomically. A corrupt store is never overwritten.

        Raises:
            JournalCorrupt: If the existing store cannot be parsed
            LockTimeout: If the journal lock cannot be acquired
        """
        with self.semaphore.hold(self.lock_name, self.lock_timeout):
            version, raw_entries = self._load()
            raw_entries.append(entry.to_dict())
            raw_entries = self._prune(raw_entries)
            self._write(max(version, SCHEMA_VERSION), raw_entries)

        logger.info(
            f"Recorded {'successful' if entry.was_successful else 'failed'} deployment "
            f"of {entry.target} in journal {self.path}"
        )
        add_span_event("deploycore.journal.entry_added", {
            "journal.target": entry.target.key,
            "journal.was_successful": entry.was_successful,
            "journal.files_created": len(entry.files_created),
        })

    # Storage

    def _load(self) -> "tuple[int, List[Dict[str, Any]]]":
        if not self.path.exists():
            return SCHEMA_VERSION, []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise JournalCorrupt(self.path, str(e)) from e
        except OSError as e:
            raise JournalCorrupt(self.path, f"cannot read store: {e}") from e

        if isinstance(data, list):
            version, raw_entries = 1, data
        elif isinstance(data, dict):
            version = data.get("schema_version")
            raw_entries = data.get("entries")
            if not isinstance(version, int) or not isinstance(raw_entries, list):
                raise JournalCorrupt(self.path, "missing schema_version or entries")
            if version > SCHEMA_VERSION:
                logger.warning(
                    f"Journal {self.path} was written with schema v{version}; "
                    f"reading it as v{SCHEMA_VERSION}"
                )
        else:
            raise JournalCorrupt(self.path, "top-level value must be an object")

        if not all(isinstance(raw, dict) for raw in raw_entries):
            raise JournalCorrupt(self.path, "every entry must be an object")
        return version, raw_entries

    def _parse_entry(self, raw: Dict[str, Any]) -> JournalEntry:
        try:
            return JournalEntry.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            raise JournalCorrupt(self.path, f"malformed entry {raw.get('id', '?')}: {e!r}") from e

    def _prune(self, raw_entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Keep the current entry plus ``history_limit`` superseded entries per target."""
        kept: List[Dict[str, Any]] = []
        seen: Dict[str, int] = {}
        for raw in reversed(raw_entries):
            key = self._raw_key(raw)
            seen[key] = seen.get(key, 0) + 1
            if seen[key] <= self.history_limit + 1:
                kept.append(raw)
        dropped = len(raw_entries) - len(kept)
        if dropped:
            logger.debug(f"Pruned {dropped} superseded journal entries")
        kept.reverse()
        return kept

    @staticmethod
    def _raw_key(raw: Dict[str, Any]) -> str:
        target = raw.get("target")
        if isinstance(target, dict):
            try:
                return TargetIdentity.from_dict(target).key
            except KeyError:
                pass
        return json.dumps(target, sort_keys=True, default=str)

    def _write(self, version: int, raw_entries: List[Dict[str, Any]]) -> None:
        """
        Save the store atomically.

        Uses temporary file + fsync + rename so a crash mid-write leaves
        the previous store intact.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent,
            prefix=".deployment-journal-",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"schema_version": version, "entries": raw_entries}, f, indent=2)
                f.flush()
                os.fsync(f.fileno())

            os.chmod(temp_path, 0o600)

            # Atomic rename
            os.replace(temp_path, self.path)
        except BaseException:
            # Clean up temp file on error
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
