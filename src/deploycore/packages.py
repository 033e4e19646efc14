"""
Package artifacts and the directories they are extracted into.

The core never interprets a package's internal format; extraction goes
through a ``PackageExtractor``. The default extractor handles the archive
formats ``shutil.unpack_archive`` knows (zip, tar, tar.gz, ...), and treats
``.nupkg`` files as zip archives.
"""

from __future__ import annotations

import logging
import re
import shutil
import zipfile
from pathlib import Path
from typing import List, NamedTuple, Optional, Protocol, Union

logger = logging.getLogger(__name__)

_ARCHIVE_SUFFIXES = (".tar.gz", ".tar.bz2", ".tar.xz", ".tgz", ".tar", ".zip", ".nupkg")
_VERSIONED_NAME = re.compile(r"^(?P<id>.+?)\.(?P<version>\d+(?:\.\d+)*(?:[-+].+)?)$")


class PackageName(NamedTuple):
    package_id: str
    version: Optional[str]


def parse_package_file_name(path: Union[str, Path]) -> PackageName:
    """
    Split ``Acme.Web.1.2.3.zip`` into ``("Acme.Web", "1.2.3")``.

    Names without a recognizable version return the whole stem as the id.
    """
    name = Path(path).name
    lowered = name.lower()
    for suffix in _ARCHIVE_SUFFIXES:
        if lowered.endswith(suffix):
            name = name[: -len(suffix)]
            break

    match = _VERSIONED_NAME.match(name)
    if match:
        return PackageName(match.group("id"), match.group("version"))
    return PackageName(name, None)


def list_files(directory: Path) -> List[Path]:
    """All regular files under ``directory``, sorted."""
    return sorted(p for p in directory.rglob("*") if p.is_file())


class PackageExtractor(Protocol):
    def extract(self, package_file: Path, directory: Path) -> List[Path]:
        """Extract the package into ``directory`` and return the files written."""
        ...


class ArchivePackageExtractor:
    """Extract zip and tar based packages."""

    def extract(self, package_file: Path, directory: Path) -> List[Path]:
        directory.mkdir(parents=True, exist_ok=True)
        if package_file.name.lower().endswith(".nupkg"):
            with zipfile.ZipFile(package_file) as archive:
                archive.extractall(directory)
        else:
            shutil.unpack_archive(str(package_file), str(directory))

        files = list_files(directory)
        logger.info(f"Extracted {len(files)} files from {package_file.name} to {directory}")
        return files


def next_free_directory(base: Path) -> Path:
    """
    Return ``base`` if it does not exist, otherwise ``base_1``, ``base_2``, ...

    Callers must hold the extraction-directory lock between choosing the
    directory and creating it.
    """
    if not base.exists():
        return base
    index = 1
    while True:
        candidate = base.with_name(f"{base.name}_{index}")
        if not candidate.exists():
            return candidate
        index += 1
