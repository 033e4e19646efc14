"""Environment setup conventions."""

from __future__ import annotations

import logging
import os
import re

from deploycore import special_variables as sv
from deploycore.deployment import RunningDeployment
from deploycore.pipeline import Convention

logger = logging.getLogger(__name__)

_SENSITIVE_NAME = re.compile(r"password|secret|key|token", re.IGNORECASE)


class ContributeEnvironmentVariablesConvention(Convention):
    """Expose the process environment as ``env:NAME`` variables."""

    def execute(self, deployment: RunningDeployment) -> None:
        for name, value in os.environ.items():
            deployment.variables.set(f"{sv.ENVIRONMENT_VARIABLE_PREFIX}{name}", value)


class LogVariablesConvention(Convention):
    """Print the variables when debugging a deployment."""

    def execute(self, deployment: RunningDeployment) -> None:
        if not deployment.variables.get_flag(sv.Debug.PRINT_VARIABLES):
            return

        logger.warning(
            f"{sv.Debug.PRINT_VARIABLES} is enabled. This should only be used for debugging; "
            "turn it off when you are finished."
        )
        logger.info("The following variables are available:")
        for name in sorted(deployment.variables.keys()):
            value = deployment.variables.get(name)
            if value and _SENSITIVE_NAME.search(name):
                value = "********"
            logger.info(f"[{name}] = '{value}'")
