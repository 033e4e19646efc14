"""
Conventions that put package content on disk.

Both hold a host-wide lock while they touch shared directories: the
extraction convention while it picks a fresh application directory, the
custom-directory convention for the whole copy into its target.
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import Union

from deploycore import special_variables as sv
from deploycore.deployment import RunningDeployment
from deploycore.errors import StepFailure
from deploycore.locking import SystemSemaphore
from deploycore.packages import PackageExtractor, list_files, next_free_directory
from deploycore.pipeline import Convention

logger = logging.getLogger(__name__)

EXTRACTION_DIRECTORY_LOCK = "deploycore.extraction-directory"

_UNSAFE_PATH_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def _path_segment(value: str) -> str:
    return _UNSAFE_PATH_CHARS.sub("_", value).strip(" .") or "_"


def installation_directory_lock(path: Union[str, Path]) -> str:
    return f"deploycore.installation-directory:{Path(path)}"


class ExtractPackageToApplicationDirectoryConvention(Convention):
    """
    Extract the package into a new directory under the applications root.

    Layout: ``<root>/<environment>[/<tenant>]/<package id>/<version>[_N]``.
    An existing directory is never reused; a numeric suffix is added instead.
    """

    def __init__(
        self,
        extractor: PackageExtractor,
        semaphore: SystemSemaphore,
        applications_dir: Union[str, Path],
        lock_timeout: float = 180.0,
    ):
        self.extractor = extractor
        self.semaphore = semaphore
        self.applications_dir = Path(applications_dir)
        self.lock_timeout = lock_timeout

    def _base_directory(self, deployment: RunningDeployment) -> Path:
        variables = deployment.variables
        target = deployment.target

        root = Path(variables.get(sv.Agent.APPLICATION_DIRECTORY_PATH) or self.applications_dir)
        directory = root / _path_segment(variables.get(sv.Environment.NAME) or target.environment_id)
        if target.tenant_id:
            directory = directory / _path_segment(variables.get(sv.Tenant.NAME) or target.tenant_id)
        return directory / _path_segment(target.package_id) / _path_segment(deployment.package_version or "unversioned")

    def execute(self, deployment: RunningDeployment) -> None:
        base = self._base_directory(deployment)

        with self.semaphore.hold(EXTRACTION_DIRECTORY_LOCK, self.lock_timeout):
            directory = next_free_directory(base)
            directory.mkdir(parents=True)
        deployment.record_directory_created(directory)

        logger.info(f"Extracting package to: {directory}")
        for path in self.extractor.extract(deployment.package_file_path, directory):
            deployment.record_file_created(path)

        deployment.staging_directory = directory
        deployment.variables.set(sv.Package.OUTPUT_INSTALLATION_DIRECTORY, str(directory))


class CopyPackageToCustomInstallationDirectoryConvention(Convention):
    """
    Copy the extracted package to a user-chosen directory.

    The directory is purged first when requested. Otherwise files left by
    the previous installation in the same directory that this package no
    longer contains are removed after the copy.
    """

    def __init__(self, semaphore: SystemSemaphore, lock_timeout: float = 180.0):
        self.semaphore = semaphore
        self.lock_timeout = lock_timeout

    def execute(self, deployment: RunningDeployment) -> None:
        variables = deployment.variables
        custom = variables.get(sv.Package.CUSTOM_INSTALLATION_DIRECTORY)
        if not custom:
            return

        target = Path(custom)
        if not target.is_absolute():
            raise StepFailure(
                f"The custom install directory '{custom}' is a relative path, "
                "please specify the path as an absolute path."
            )

        source = deployment.staging_directory
        if source is None:
            raise StepFailure("The package must be extracted before it can be copied to a custom installation directory.")

        with self.semaphore.hold(installation_directory_lock(target), self.lock_timeout):
            if not target.exists():
                target.mkdir(parents=True)
                deployment.record_directory_created(target)
            elif variables.get_flag(sv.Package.CUSTOM_INSTALLATION_DIRECTORY_SHOULD_BE_PURGED):
                self._purge(target)

            logger.info(f"Copying package contents to {target}")
            for path in list_files(source):
                destination = target / path.relative_to(source)
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(path, destination)
                deployment.record_file_created(destination)

            for stale in deployment.stale_files(target):
                if stale.exists():
                    logger.info(f"Removing file left by the previous installation: {stale}")
                    stale.unlink()

        deployment.custom_installation_directory = target
        variables.set(sv.Package.OUTPUT_CUSTOM_INSTALLATION_DIRECTORY, str(target))

    @staticmethod
    def _purge(directory: Path) -> None:
        logger.info(f"Purging the directory '{directory}'")
        for child in directory.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()
