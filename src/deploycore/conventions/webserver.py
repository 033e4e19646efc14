"""Point an existing web site at the freshly installed directory."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from deploycore import special_variables as sv
from deploycore.deployment import RunningDeployment
from deploycore.errors import WebSiteNotFound
from deploycore.pipeline import Convention

logger = logging.getLogger(__name__)


class WebServer(Protocol):
    def overwrite_home_directory(self, site_name: str, path: Path) -> bool:
        """Set the site's home directory; return False when the site does not exist."""
        ...


class UnavailableWebServer:
    """No web server integration on this host; every site is reported missing."""

    def overwrite_home_directory(self, site_name: str, path: Path) -> bool:
        logger.warning("No web server integration is available on this agent")
        return False


class WebServerRegistrationConvention(Convention):
    def __init__(self, web_server: WebServer):
        self.web_server = web_server

    def execute(self, deployment: RunningDeployment) -> None:
        variables = deployment.variables
        if not variables.get_flag(sv.Package.UPDATE_WEB_SITE):
            return

        site_name = variables.get(sv.Package.UPDATE_WEB_SITE_NAME) or deployment.target.package_id
        path = deployment.current_directory
        logger.info(f"Updating web site named '{site_name}' to point at {path}")

        if not self.web_server.overwrite_home_directory(site_name, path):
            raise WebSiteNotFound(site_name)

        logger.info(f"The web site '{site_name}' was updated")
