"""
Lifecycle script conventions.

Each deployment phase (pre-deploy, deploy, post-deploy) runs up to three
layers of scripts:

- **feature** scripts shipped with the agent for each enabled feature
  (``<feature>_<Stage>.<ext>`` in the feature scripts directory),
- **configured** scripts whose bodies are supplied as variables,
- **packaged** scripts found in the package itself (``<Stage>.<ext>``).

Output variables set by a script are visible to every later step.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import List, Union

from deploycore import special_variables as sv
from deploycore.deployment import RunningDeployment
from deploycore.errors import ScriptFailed
from deploycore.pipeline import Convention, RollbackConvention
from deploycore.scripting import ScriptEngine

logger = logging.getLogger(__name__)


def run_script(engine: ScriptEngine, script: Path, deployment: RunningDeployment) -> None:
    """
    Run ``script`` in the deployment's current directory.

    Raises:
        ScriptFailed: If the script exits with a non-zero code
    """
    result = engine.execute(script, deployment.variables, deployment.current_directory)

    for name, value in result.output_variables.items():
        logger.info(f"Setting output variable '{name}'")
        deployment.variables.set(name, value)

    if result.exit_code != 0:
        raise ScriptFailed(script, result.exit_code, result.stderr)


class _StageConvention(Convention):
    def __init__(self, stage: str, engine: ScriptEngine):
        self.stage = stage
        self.engine = engine

    @property
    def name(self) -> str:
        return f"{type(self).__name__}.{self.stage}"


class FeatureScriptConvention(_StageConvention):
    """Run the agent's scripts for every enabled feature at this stage."""

    def __init__(self, stage: str, engine: ScriptEngine, feature_scripts_dir: Union[str, Path]):
        super().__init__(stage, engine)
        self.feature_scripts_dir = Path(feature_scripts_dir)

    def execute(self, deployment: RunningDeployment) -> None:
        features = deployment.variables.get_strings(sv.Action.ENABLED_FEATURES)
        for feature in features:
            for extension in self.engine.supported_extensions():
                script = self.feature_scripts_dir / f"{feature}_{self.stage}.{extension}"
                if script.is_file():
                    logger.info(f"Running {self.stage} script for feature {feature}")
                    run_script(self.engine, script, deployment)


class ConfiguredScriptConvention(_StageConvention):
    """Run script bodies supplied through the CustomScripts variables."""

    def execute(self, deployment: RunningDeployment) -> None:
        features = deployment.variables.get_strings(sv.Action.ENABLED_FEATURES)
        if sv.Features.CUSTOM_SCRIPTS not in features:
            return

        for extension in self.engine.supported_extensions():
            body = deployment.variables.get(sv.Action.custom_script(self.stage, extension))
            if not body:
                continue

            fd, name = tempfile.mkstemp(
                prefix=f"{self.stage}-",
                suffix=f".{extension}",
                dir=str(deployment.current_directory),
            )
            script = Path(name)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(deployment.variables.evaluate(body))
                logger.info(f"Running configured {self.stage} script")
                run_script(self.engine, script, deployment)
            finally:
                if script.exists():
                    script.unlink()


class PackagedScriptConvention(_StageConvention, RollbackConvention):
    """
    Run ``<Stage>.<ext>`` scripts shipped inside the package.

    Unless disabled with DeleteScriptsOnCleanup, the stage's scripts are
    removed from the installation directory when the run ends.
    """

    def _find_scripts(self, deployment: RunningDeployment) -> List[Path]:
        directory = deployment.current_directory
        return [
            directory / f"{self.stage}.{extension}"
            for extension in self.engine.supported_extensions()
            if (directory / f"{self.stage}.{extension}").is_file()
        ]

    def execute(self, deployment: RunningDeployment) -> None:
        for script in self._find_scripts(deployment):
            logger.info(f"Running packaged {self.stage} script {script.name}")
            run_script(self.engine, script, deployment)

    def cleanup(self, deployment: RunningDeployment) -> None:
        # Nothing was extracted, so the directory is not ours to tidy
        if deployment.staging_directory is None:
            return
        if not deployment.variables.get_flag(sv.Package.DELETE_SCRIPTS_ON_CLEANUP, default=True):
            return
        for script in self._find_scripts(deployment):
            logger.debug(f"Deleting {script}")
            script.unlink()
