"""
Configuration transform convention.

For every ``X.config`` under the current directory, the transforms
``X.Release.config`` and ``X.<Environment>.config`` are applied in that
order when they exist. Any ``*.config`` file qualifies, including names
with dots such as ``App.exe.config``; a file is skipped only when it is
itself the transform of a sibling. The transformation itself is delegated
to a ``ConfigurationTransformer``.

``IgnoreConfigTransformationErrors`` turns transformer errors into
warnings and ``SuppressConfigTransformationLogging`` lowers the
convention's messages to debug.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Protocol, Tuple

from deploycore import special_variables as sv
from deploycore.deployment import RunningDeployment
from deploycore.errors import StepFailure
from deploycore.pipeline import Convention

logger = logging.getLogger(__name__)


class ConfigurationTransformer(Protocol):
    def perform_transform(self, config_file: Path, transform_file: Path, destination_file: Path) -> None:
        ...


class UnavailableConfigurationTransformer:
    """Stands in when no transformer is installed; any transform fails the step."""

    def perform_transform(self, config_file: Path, transform_file: Path, destination_file: Path) -> None:
        raise StepFailure(
            f"Cannot apply {transform_file.name} to {config_file.name}: "
            "no configuration transformer is available on this agent."
        )


class ConfigurationTransformsConvention(Convention):
    def __init__(self, transformer: ConfigurationTransformer):
        self.transformer = transformer

    def _transform_pairs(self, deployment: RunningDeployment) -> List[Tuple[Path, Path]]:
        environment = deployment.variables.get(sv.Environment.NAME) or deployment.target.environment_id
        qualifiers = list(dict.fromkeys(["Release", environment]))
        pairs = []
        for config in sorted(deployment.current_directory.rglob("*.config")):
            if _is_transform_file(config, qualifiers):
                continue
            stem = config.name[: -len(".config")]
            for qualifier in qualifiers:
                transform = config.with_name(f"{stem}.{qualifier}.config")
                if transform.is_file():
                    pairs.append((config, transform))
        return pairs

    def execute(self, deployment: RunningDeployment) -> None:
        variables = deployment.variables
        enabled = (
            variables.get_flag(sv.Package.AUTOMATICALLY_RUN_CONFIGURATION_TRANSFORMATION_FILES)
            or sv.Features.CONFIGURATION_TRANSFORMS in variables.get_strings(sv.Action.ENABLED_FEATURES)
        )
        if not enabled:
            return

        ignore_errors = variables.get_flag(sv.Package.IGNORE_CONFIG_TRANSFORMATION_ERRORS)
        suppressed = variables.get_flag(sv.Package.SUPPRESS_CONFIG_TRANSFORMATION_LOGGING)
        level = logging.DEBUG if suppressed else logging.INFO

        for config, transform in self._transform_pairs(deployment):
            logger.log(level, f"Transforming '{config}' using '{transform}'")
            try:
                self.transformer.perform_transform(config, transform, config)
            except Exception as e:
                if not ignore_errors:
                    raise
                logger.log(
                    logging.DEBUG if suppressed else logging.WARNING,
                    f"Ignoring the error applying '{transform.name}' to '{config.name}': {e}",
                )


def _is_transform_file(path: Path, qualifiers: List[str]) -> bool:
    """True for ``X.<qualifier>.config`` when ``X.config`` sits beside it."""
    for qualifier in qualifiers:
        suffix = f".{qualifier}.config"
        if path.name.endswith(suffix) and len(path.name) > len(suffix):
            if path.with_name(path.name[: -len(suffix)] + ".config").is_file():
                return True
    return False
