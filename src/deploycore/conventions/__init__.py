"""
Built-in pipeline conventions.

Public API::

    from deploycore.conventions import (
        # Environment
        ContributeEnvironmentVariablesConvention,
        LogVariablesConvention,
        # Journal
        ContributePreviousInstallationConvention,
        AlreadyInstalledConvention,
        # Files
        ExtractPackageToApplicationDirectoryConvention,
        CopyPackageToCustomInstallationDirectoryConvention,
        SubstituteInFilesConvention,
        ConfigurationTransformsConvention,
        ConfigurationVariablesConvention,
        # Scripts
        FeatureScriptConvention,
        ConfiguredScriptConvention,
        PackagedScriptConvention,
        # Web server
        WebServerRegistrationConvention,
    )
"""

from deploycore.conventions.configvariables import ConfigurationVariablesConvention
from deploycore.conventions.environment import (
    ContributeEnvironmentVariablesConvention,
    LogVariablesConvention,
)
from deploycore.conventions.extraction import (
    CopyPackageToCustomInstallationDirectoryConvention,
    ExtractPackageToApplicationDirectoryConvention,
)
from deploycore.conventions.journal import (
    AlreadyInstalledConvention,
    ContributePreviousInstallationConvention,
)
from deploycore.conventions.scripts import (
    ConfiguredScriptConvention,
    FeatureScriptConvention,
    PackagedScriptConvention,
)
from deploycore.conventions.substitution import SubstituteInFilesConvention
from deploycore.conventions.transforms import (
    ConfigurationTransformer,
    ConfigurationTransformsConvention,
    UnavailableConfigurationTransformer,
)
from deploycore.conventions.webserver import (
    UnavailableWebServer,
    WebServer,
    WebServerRegistrationConvention,
)

__all__ = [
    # Environment
    "ContributeEnvironmentVariablesConvention",
    "LogVariablesConvention",
    # Journal
    "ContributePreviousInstallationConvention",
    "AlreadyInstalledConvention",
    # Files
    "ExtractPackageToApplicationDirectoryConvention",
    "CopyPackageToCustomInstallationDirectoryConvention",
    "SubstituteInFilesConvention",
    "ConfigurationTransformsConvention",
    "ConfigurationTransformer",
    "UnavailableConfigurationTransformer",
    "ConfigurationVariablesConvention",
    # Scripts
    "FeatureScriptConvention",
    "ConfiguredScriptConvention",
    "PackagedScriptConvention",
    # Web server
    "WebServerRegistrationConvention",
    "WebServer",
    "UnavailableWebServer",
]
