"""
Convention pipeline engine.

A deployment is an ordered list of conventions executed one after the
other against a shared ``RunningDeployment``. The engine knows nothing
about what a convention does; it only guarantees:

1. **Fail-fast**: the first exception stops the pipeline; later
   conventions never run.
2. **Early termination**: a convention may set
   ``deployment.skip_remaining_conventions`` to end the run successfully.
3. **Rollback/cleanup**: conventions that implement ``RollbackConvention``
   get ``rollback`` on failure and ``cleanup`` at the end of every run.
4. **Journal bookkeeping**: ``run_deployment`` writes exactly one journal
   entry per run (success or failure) unless ``deployment.skip_journal``
   is set or the journal lock itself timed out, and always re-raises the
   original error unchanged.

Usage::

    from deploycore.pipeline import run_deployment

    deployment = RunningDeployment(package_file, variables)
    run_deployment(deployment, conventions, journal)
"""

from __future__ import annotations

import abc
import logging
import time
from typing import Optional, Sequence

from opentelemetry import trace as otel_trace

from deploycore.deployment import RunningDeployment
from deploycore.errors import LockTimeout, PackageFileNotFound
from deploycore.journal import DeploymentJournal, JournalEntry
from deploycore.logger import DeploymentLogger
from deploycore.otel import add_span_event, get_tracer, mark_span_failed

logger = logging.getLogger(__name__)

__all__ = [
    "Convention",
    "RollbackConvention",
    "ConventionProcessor",
    "run_deployment",
]


# ---------------------------------------------------------------------------
# Step capability
# ---------------------------------------------------------------------------


class Convention(abc.ABC):
    """One unit of deployment work."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @abc.abstractmethod
    def execute(self, deployment: RunningDeployment) -> None:
        """Run against ``deployment``; raise to fail the deployment."""

    def __repr__(self) -> str:
        return f"<{self.name}>"


class RollbackConvention(Convention):
    """A convention that can undo its work and tidy up after the run."""

    def rollback(self, deployment: RunningDeployment) -> None:
        """Called when a later (or this) convention failed."""

    def cleanup(self, deployment: RunningDeployment) -> None:
        """Called once at the end of every run, successful or not."""


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ConventionProcessor:
    """
    Run conventions in order against one deployment.

    Args:
        deployment: Shared deployment state
        conventions: Ordered conventions
        tracer: OTel tracer; the global tracer when omitted
        events: Structured event logger
    """

    def __init__(
        self,
        deployment: RunningDeployment,
        conventions: Sequence[Convention],
        tracer: Optional[otel_trace.Tracer] = None,
        events: Optional[DeploymentLogger] = None,
    ):
        self.deployment = deployment
        self.conventions = list(conventions)
        self.tracer = tracer or get_tracer()
        self.events = events

    @property
    def rollback_conventions(self) -> "list[RollbackConvention]":
        return [c for c in self.conventions if isinstance(c, RollbackConvention)]

    def run_conventions(self) -> None:
        """
        Execute every convention, stopping at the first failure.

        Raises:
            Exception: Whatever the failing convention raised, unchanged.
        """
        try:
            self._run_install_conventions()
        except Exception:
            if self.rollback_conventions:
                logger.error("Running rollback conventions...")
                self._run_rollbacks()
            self._run_cleanups(raise_errors=False)
            raise

        self._run_cleanups(raise_errors=True)

    def _run_install_conventions(self) -> None:
        total = len(self.conventions)
        for index, convention in enumerate(self.conventions):
            self._run_one(index, convention)

            if self.deployment.skip_remaining_conventions:
                remaining = total - index - 1
                if remaining:
                    logger.info(f"{convention.name} requested that the remaining {remaining} conventions be skipped")
                    add_span_event("deploycore.conventions.skipped", {
                        "convention.requested_by": convention.name,
                        "convention.skipped_count": remaining,
                    })
                break

    def _run_one(self, index: int, convention: Convention) -> None:
        with self.tracer.start_as_current_span(
            f"deploycore.convention.{convention.name}",
            attributes={"convention.name": convention.name, "convention.index": index},
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            if self.events:
                self.events.log_convention_started(convention.name, index)
            started = time.monotonic()
            try:
                convention.execute(self.deployment)
            except Exception as e:
                mark_span_failed(span, e)
                if self.events:
                    self.events.log_convention_failed(convention.name, index, e)
                raise
            if self.events:
                self.events.log_convention_completed(convention.name, index, time.monotonic() - started)

    def _run_rollbacks(self) -> None:
        for convention in self.rollback_conventions:
            try:
                convention.rollback(self.deployment)
            except Exception:
                # The install error is what the caller must see
                logger.exception(f"Rollback of {convention.name} failed")

    def _run_cleanups(self, raise_errors: bool) -> None:
        for convention in self.rollback_conventions:
            try:
                convention.cleanup(self.deployment)
            except Exception:
                if raise_errors:
                    raise
                logger.exception(f"Cleanup of {convention.name} failed")


# ---------------------------------------------------------------------------
# Journal bookkeeping
# ---------------------------------------------------------------------------


def _write_entry(
    journal: DeploymentJournal,
    deployment: RunningDeployment,
    successful: bool,
    events: DeploymentLogger,
) -> None:
    entry = JournalEntry.from_deployment(deployment, successful)
    journal.add_entry(entry)
    events.log_journal_written(successful, len(entry.files_created), entry.id)


def _journal_unavailable(journal: DeploymentJournal, error: BaseException) -> bool:
    """True when ``error`` is a timeout waiting for this journal's own lock."""
    return isinstance(error, LockTimeout) and error.name == journal.lock_name


def _record_failure(journal: DeploymentJournal, deployment: RunningDeployment, events: DeploymentLogger) -> None:
    """Write the failure entry; a problem here must not hide the step error."""
    try:
        _write_entry(journal, deployment, False, events)
    except Exception:
        logger.exception("Could not record the failed deployment in the journal")


def run_deployment(
    deployment: RunningDeployment,
    conventions: Sequence[Convention],
    journal: DeploymentJournal,
    tracer: Optional[otel_trace.Tracer] = None,
) -> RunningDeployment:
    """
    Run the pipeline and record its outcome in the journal.

    The target identity and the input fingerprint are resolved before any
    convention runs; errors there are configuration errors and leave the
    journal untouched.

    Args:
        deployment: Deployment state for this run
        conventions: Ordered conventions
        journal: Journal receiving the outcome
        tracer: OTel tracer; the global tracer when omitted

    Returns:
        The deployment after all conventions ran

    Raises:
        ConfigurationError: Target identity cannot be determined or package missing
        Exception: The first convention error, unchanged
    """
    target = deployment.target
    try:
        deployment.fingerprint
    except OSError as e:
        raise PackageFileNotFound(deployment.package_file_path) from e

    tracer = tracer or get_tracer()
    events = DeploymentLogger(target=target.key)

    with tracer.start_as_current_span(
        "deploycore.deployment",
        attributes={
            "deployment.target": target.key,
            "deployment.package": deployment.package_file_path.name,
            "deployment.fingerprint": deployment.fingerprint,
        },
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        events.log_deployment_started(deployment.package_file_path.name, len(conventions))
        try:
            ConventionProcessor(deployment, conventions, tracer=tracer, events=events).run_conventions()
            if deployment.skip_journal:
                logger.info("A convention requested that this deployment not be recorded in the journal")
            else:
                _write_entry(journal, deployment, True, events)
        except Exception as error:
            mark_span_failed(span, error)
            events.log_deployment_failed(error)
            if not deployment.skip_journal:
                if _journal_unavailable(journal, error):
                    # The failure entry needs the lock that just timed out
                    logger.error("The journal lock could not be acquired; the failed deployment was not recorded")
                else:
                    _record_failure(journal, deployment, events)
            raise

        events.log_deployment_completed(deployment.skip_remaining_conventions)

    return deployment
