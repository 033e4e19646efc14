"""
Well-known variable names read by the engine and the built-in conventions.

Variables are plain strings in the variables file; flags are "True"/"False".
"""

from __future__ import annotations

# =============================================================================
# Target identity
# =============================================================================


class Environment:
    ID = "DeployCore.Environment.Id"
    NAME = "DeployCore.Environment.Name"


class Project:
    ID = "DeployCore.Project.Id"
    NAME = "DeployCore.Project.Name"


class Tenant:
    ID = "DeployCore.Deployment.Tenant.Id"
    NAME = "DeployCore.Deployment.Tenant.Name"


class Deployment:
    ID = "DeployCore.Deployment.Id"
    CREATED = "DeployCore.Deployment.Created"
    TASK_ID = "DeployCore.Task.Id"


# =============================================================================
# Package
# =============================================================================


class Package:
    ID = "DeployCore.Action.Package.PackageId"
    VERSION = "DeployCore.Action.Package.PackageVersion"

    SKIP_IF_ALREADY_INSTALLED = "DeployCore.Action.Package.SkipIfAlreadyInstalled"
    CUSTOM_INSTALLATION_DIRECTORY = "DeployCore.Action.Package.CustomInstallationDirectory"
    CUSTOM_INSTALLATION_DIRECTORY_SHOULD_BE_PURGED = (
        "DeployCore.Action.Package.CustomInstallationDirectoryShouldBePurgedBeforeDeployment"
    )
    AUTOMATICALLY_RUN_CONFIGURATION_TRANSFORMATION_FILES = (
        "DeployCore.Action.Package.AutomaticallyRunConfigurationTransformationFiles"
    )
    IGNORE_CONFIG_TRANSFORMATION_ERRORS = "DeployCore.Action.Package.IgnoreConfigTransformationErrors"
    SUPPRESS_CONFIG_TRANSFORMATION_LOGGING = "DeployCore.Action.Package.SuppressConfigTransformationLogging"
    AUTOMATICALLY_UPDATE_APP_SETTINGS_AND_CONNECTION_STRINGS = (
        "DeployCore.Action.Package.AutomaticallyUpdateAppSettingsAndConnectionStrings"
    )
    UPDATE_WEB_SITE = "DeployCore.Action.Package.UpdateWebSite"
    UPDATE_WEB_SITE_NAME = "DeployCore.Action.Package.UpdateWebSiteName"
    DELETE_SCRIPTS_ON_CLEANUP = "DeployCore.Action.Package.DeleteScriptsOnCleanup"
    SUBSTITUTE_IN_FILES_TARGETS = "DeployCore.Action.SubstituteInFiles.TargetFiles"

    # Output variables, set while the pipeline runs
    OUTPUT_INSTALLATION_DIRECTORY = "DeployCore.Action.Package.Output.InstallationDirectoryPath"
    OUTPUT_CUSTOM_INSTALLATION_DIRECTORY = "DeployCore.Action.Package.Output.CustomInstallationDirectoryPath"
    PREVIOUS_INSTALLATION_DIRECTORY = "DeployCore.Action.Package.PreviousInstallation.InstallationDirectoryPath"
    PREVIOUS_CUSTOM_INSTALLATION_DIRECTORY = (
        "DeployCore.Action.Package.PreviousInstallation.CustomInstallationDirectoryPath"
    )


class Action:
    ENABLED_FEATURES = "DeployCore.Action.EnabledFeatures"

    @staticmethod
    def custom_script(stage: str, extension: str) -> str:
        """Variable holding the body of a user-configured script for a stage."""
        return f"DeployCore.Action.CustomScripts.{stage}.{extension}"


class Features:
    CUSTOM_SCRIPTS = "DeployCore.Features.CustomScripts"
    SUBSTITUTE_IN_FILES = "DeployCore.Features.SubstituteInFiles"
    CONFIGURATION_TRANSFORMS = "DeployCore.Features.ConfigurationTransforms"


class Agent:
    APPLICATION_DIRECTORY_PATH = "DeployCore.Agent.ApplicationDirectoryPath"


class Debug:
    PRINT_VARIABLES = "DeployCore.Debug.PrintVariables"


# Variables that change from one attempt to the next without changing what is
# installed; excluded from the deployment fingerprint.
VOLATILE_VARIABLES = frozenset({
    Deployment.ID,
    Deployment.CREATED,
    Deployment.TASK_ID,
    Package.OUTPUT_INSTALLATION_DIRECTORY,
    Package.OUTPUT_CUSTOM_INSTALLATION_DIRECTORY,
    Package.PREVIOUS_INSTALLATION_DIRECTORY,
    Package.PREVIOUS_CUSTOM_INSTALLATION_DIRECTORY,
})

ENVIRONMENT_VARIABLE_PREFIX = "env:"


# =============================================================================
# Deployment stages
# =============================================================================


class DeploymentStages:
    BEFORE_PRE_DEPLOY = "BeforePreDeploy"
    PRE_DEPLOY = "PreDeploy"
    AFTER_PRE_DEPLOY = "AfterPreDeploy"
    BEFORE_DEPLOY = "BeforeDeploy"
    DEPLOY = "Deploy"
    AFTER_DEPLOY = "AfterDeploy"
    BEFORE_POST_DEPLOY = "BeforePostDeploy"
    POST_DEPLOY = "PostDeploy"
    AFTER_POST_DEPLOY = "AfterPostDeploy"
