"""
Conventions that consult the deployment journal.

Both run before anything touches the filesystem: the previous
installation is discovered first, then the already-installed check
decides whether the rest of the pipeline is needed at all.
"""

from __future__ import annotations

import logging

from deploycore import special_variables as sv
from deploycore.deployment import RunningDeployment
from deploycore.journal import DeploymentJournal
from deploycore.otel import add_span_event
from deploycore.pipeline import Convention

logger = logging.getLogger(__name__)


class ContributePreviousInstallationConvention(Convention):
    """Make the last successful installation of this target available to later steps."""

    def __init__(self, journal: DeploymentJournal):
        self.journal = journal

    def execute(self, deployment: RunningDeployment) -> None:
        previous = self.journal.try_get_latest_successful_entry(deployment.target)

        if previous is None:
            logger.info(f"No previous installation of {deployment.target} was found")
            deployment.variables.set(sv.Package.PREVIOUS_INSTALLATION_DIRECTORY, "")
            deployment.variables.set(sv.Package.PREVIOUS_CUSTOM_INSTALLATION_DIRECTORY, "")
            return

        logger.info(
            f"Previous installation of {deployment.target} "
            f"(version {previous.package_version or 'unknown'}) is at {previous.installation_directory}"
        )
        deployment.previous_installation = previous
        deployment.variables.set(sv.Package.PREVIOUS_INSTALLATION_DIRECTORY, previous.extracted_to or "")
        deployment.variables.set(
            sv.Package.PREVIOUS_CUSTOM_INSTALLATION_DIRECTORY,
            previous.custom_installation_directory or "",
        )


class AlreadyInstalledConvention(Convention):
    """
    Skip the rest of the pipeline when this exact deployment already succeeded.

    The current journal entry must be successful and carry the same input
    fingerprint. The run still gets a journal entry: it records the adopted
    installation so later runs see an unbroken history.
    """

    def __init__(self, journal: DeploymentJournal):
        self.journal = journal

    def execute(self, deployment: RunningDeployment) -> None:
        if not deployment.variables.get_flag(sv.Package.SKIP_IF_ALREADY_INSTALLED):
            return

        current = self.journal.try_get_entry(deployment.target)
        if current is None:
            return

        if not current.was_successful:
            logger.info("The previous attempt to deploy this package was not successful; re-deploying.")
            return

        if current.fingerprint != deployment.fingerprint:
            logger.info("The package or its variables changed since the last deployment; re-deploying.")
            return

        logger.info("The package has already been installed on this machine, so installation will be skipped.")
        deployment.adopt_previous_installation(current)
        deployment.skip_remaining_conventions = True
        add_span_event("deploycore.already_installed", {
            "journal.target": deployment.target.key,
            "journal.previous_entry": current.id,
        })
