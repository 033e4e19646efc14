"""
The deploy-package command: extract and install one package.

``deploy_package`` validates the inputs, loads the variables, wires the
standard convention pipeline and runs it with journal bookkeeping. Input
problems surface as ``ConfigurationError`` before any step runs.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

from opentelemetry import trace as otel_trace

from deploycore.config import DeployCoreConfig, get_config
from deploycore.configvariables import ConfigurationVariablesReplacer, XmlConfigurationVariablesReplacer
from deploycore.conventions import (
    AlreadyInstalledConvention,
    ConfigurationTransformer,
    ConfigurationTransformsConvention,
    ConfigurationVariablesConvention,
    ConfiguredScriptConvention,
    ContributeEnvironmentVariablesConvention,
    ContributePreviousInstallationConvention,
    CopyPackageToCustomInstallationDirectoryConvention,
    ExtractPackageToApplicationDirectoryConvention,
    FeatureScriptConvention,
    LogVariablesConvention,
    PackagedScriptConvention,
    SubstituteInFilesConvention,
    UnavailableConfigurationTransformer,
    UnavailableWebServer,
    WebServer,
    WebServerRegistrationConvention,
)
from deploycore.deployment import RunningDeployment
from deploycore.errors import ConfigurationError, PackageFileNotFound
from deploycore.journal import DeploymentJournal
from deploycore.locking import SystemSemaphore
from deploycore.packages import ArchivePackageExtractor, PackageExtractor
from deploycore.pipeline import Convention, run_deployment
from deploycore.scripting import CombinedScriptEngine, ScriptEngine
from deploycore.sensitive import load_variables
from deploycore.special_variables import DeploymentStages as Stages
from deploycore.substitution import FileSubstituter, Substituter

logger = logging.getLogger(__name__)

__all__ = ["create_semaphore", "create_journal", "build_conventions", "deploy_package"]


def create_semaphore(config: DeployCoreConfig) -> SystemSemaphore:
    return SystemSemaphore(config.get_lock_dir(), poll_interval=config.lock_poll_interval_seconds)


def create_journal(config: DeployCoreConfig, semaphore: Optional[SystemSemaphore] = None) -> DeploymentJournal:
    return DeploymentJournal(
        config.get_journal_path(),
        semaphore or create_semaphore(config),
        lock_timeout=config.lock_timeout_seconds,
        history_limit=config.journal_history_limit,
    )


def build_conventions(
    config: DeployCoreConfig,
    journal: DeploymentJournal,
    semaphore: SystemSemaphore,
    script_engine: Optional[ScriptEngine] = None,
    extractor: Optional[PackageExtractor] = None,
    substituter: Optional[Substituter] = None,
    transformer: Optional[ConfigurationTransformer] = None,
    replacer: Optional[ConfigurationVariablesReplacer] = None,
    web_server: Optional[WebServer] = None,
) -> List[Convention]:
    """
    The standard deploy-package pipeline, in execution order.

    Journal-reading conventions come before anything that changes the
    filesystem, so the already-installed decision is made first.
    """
    engine = script_engine or CombinedScriptEngine()
    features_dir = config.get_feature_scripts_dir()
    timeout = config.lock_timeout_seconds

    return [
        ContributeEnvironmentVariablesConvention(),
        ContributePreviousInstallationConvention(journal),
        LogVariablesConvention(),
        AlreadyInstalledConvention(journal),
        ExtractPackageToApplicationDirectoryConvention(
            extractor or ArchivePackageExtractor(),
            semaphore,
            config.get_applications_dir(),
            lock_timeout=timeout,
        ),
        FeatureScriptConvention(Stages.BEFORE_PRE_DEPLOY, engine, features_dir),
        ConfiguredScriptConvention(Stages.PRE_DEPLOY, engine),
        PackagedScriptConvention(Stages.PRE_DEPLOY, engine),
        FeatureScriptConvention(Stages.AFTER_PRE_DEPLOY, engine, features_dir),
        SubstituteInFilesConvention(substituter or FileSubstituter()),
        ConfigurationTransformsConvention(transformer or UnavailableConfigurationTransformer()),
        ConfigurationVariablesConvention(replacer or XmlConfigurationVariablesReplacer()),
        CopyPackageToCustomInstallationDirectoryConvention(semaphore, lock_timeout=timeout),
        FeatureScriptConvention(Stages.BEFORE_DEPLOY, engine, features_dir),
        ConfiguredScriptConvention(Stages.DEPLOY, engine),
        PackagedScriptConvention(Stages.DEPLOY, engine),
        FeatureScriptConvention(Stages.AFTER_DEPLOY, engine, features_dir),
        WebServerRegistrationConvention(web_server or UnavailableWebServer()),
        FeatureScriptConvention(Stages.BEFORE_POST_DEPLOY, engine, features_dir),
        ConfiguredScriptConvention(Stages.POST_DEPLOY, engine),
        PackagedScriptConvention(Stages.POST_DEPLOY, engine),
        FeatureScriptConvention(Stages.AFTER_POST_DEPLOY, engine, features_dir),
    ]


def deploy_package(
    package_file: Optional[Union[str, Path]],
    variables_file: Optional[Union[str, Path]] = None,
    password: Optional[str] = None,
    salt: Optional[str] = None,
    sensitive_variables_file: Optional[Union[str, Path]] = None,
    config: Optional[DeployCoreConfig] = None,
    script_engine: Optional[ScriptEngine] = None,
    tracer: Optional[otel_trace.Tracer] = None,
) -> RunningDeployment:
    """
    Deploy one package.

    Args:
        package_file: Package artifact to install
        variables_file: JSON variables file
        password: Sensitive-variables password
        salt: Base64 encoded sensitive-variables initialization vector
        sensitive_variables_file: Encrypted variables file
        config: Agent configuration; the global configuration when omitted
        script_engine: Script engine override
        tracer: OTel tracer override

    Returns:
        The completed deployment

    Raises:
        ConfigurationError: Inputs are missing or invalid (nothing was run)
        SensitiveVariablesDecryptError: Sensitive variables could not be decrypted
        LockTimeout, JournalCorrupt: Shared state could not be used safely
        Exception: The first failing convention's error
    """
    if package_file is None or not str(package_file).strip():
        raise ConfigurationError("No package file was specified. Please pass --package YourPackage.zip")

    package_path = Path(package_file).absolute()
    if not package_path.is_file():
        raise PackageFileNotFound(package_path)

    config = config or get_config()

    logger.info(f"Deploying package:    {package_path}")
    if variables_file:
        logger.info(f"Using variables from: {variables_file}")

    variables = load_variables(variables_file, password, salt, sensitive_variables_file)

    semaphore = create_semaphore(config)
    journal = create_journal(config, semaphore)
    conventions = build_conventions(config, journal, semaphore, script_engine=script_engine)

    deployment = RunningDeployment(package_path, variables)
    return run_deployment(deployment, conventions, journal, tracer=tracer)
