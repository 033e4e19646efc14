"""Copy variable values into appSettings and connectionStrings of ``*.config`` files."""

from __future__ import annotations

import logging

from deploycore import special_variables as sv
from deploycore.configvariables import ConfigurationVariablesReplacer
from deploycore.deployment import RunningDeployment
from deploycore.pipeline import Convention

logger = logging.getLogger(__name__)


class ConfigurationVariablesConvention(Convention):
    def __init__(self, replacer: ConfigurationVariablesReplacer):
        self.replacer = replacer

    def execute(self, deployment: RunningDeployment) -> None:
        if not deployment.variables.get_flag(sv.Package.AUTOMATICALLY_UPDATE_APP_SETTINGS_AND_CONNECTION_STRINGS):
            return

        for config in sorted(p for p in deployment.current_directory.rglob("*.config") if p.is_file()):
            logger.debug(f"Looking for appSettings and connectionStrings in '{config}'")
            self.replacer.modify_configuration_file(config, deployment.variables)
