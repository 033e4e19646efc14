"""
deploycore CLI - Run package deployments and inspect the deployment journal.

Commands:
    deploycore deploy-package   Extract and install a package
    deploycore journal          Inspect recorded deployments
"""

import click

from deploycore.config import get_config
from deploycore.logger import configure_logging

# Import command groups
from .deploy import deploy_package_command
from .journal import journal


@click.group()
@click.version_option(package_name="deploycore")
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), default=None,
              help="Override DEPLOYCORE_LOG_LEVEL")
@click.option("--log-format", type=click.Choice(["text", "json"]), default=None,
              help="Override DEPLOYCORE_LOG_FORMAT")
def main(log_level, log_format):
    """deploycore - Idempotent package deployments for this machine."""
    config = get_config()
    configure_logging(log_level or config.log_level, log_format or config.log_format)


main.add_command(deploy_package_command)
main.add_command(journal)


if __name__ == "__main__":
    main()
