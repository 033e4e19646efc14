"""Substitute variables into files chosen by glob patterns."""

from __future__ import annotations

import logging

from deploycore import special_variables as sv
from deploycore.deployment import RunningDeployment
from deploycore.pipeline import Convention
from deploycore.substitution import Substituter

logger = logging.getLogger(__name__)


class SubstituteInFilesConvention(Convention):
    def __init__(self, substituter: Substituter):
        self.substituter = substituter

    def execute(self, deployment: RunningDeployment) -> None:
        features = deployment.variables.get_strings(sv.Action.ENABLED_FEATURES)
        if sv.Features.SUBSTITUTE_IN_FILES not in features:
            return

        directory = deployment.current_directory
        for pattern in deployment.variables.get_paths(sv.Package.SUBSTITUTE_IN_FILES_TARGETS):
            matches = sorted(p for p in directory.glob(pattern) if p.is_file())
            if not matches:
                logger.warning(f"No files were found that match the substitution target pattern '{pattern}'")
                continue
            for path in matches:
                self.substituter.perform_substitution(path, deployment.variables)
