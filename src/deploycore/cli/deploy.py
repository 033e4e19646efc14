"""deploycore CLI - deploy-package command."""

import logging

import click

from deploycore.deploy import deploy_package
from deploycore.errors import DeployCoreError

logger = logging.getLogger(__name__)


@click.command("deploy-package")
@click.option("--package", "package_file", type=click.Path(dir_okay=False),
              help="Path to the package to install.")
@click.option("--variables", "variables_file", type=click.Path(dir_okay=False),
              help="Path to a JSON file containing variables.")
@click.option("--sensitive-variables", "sensitive_variables_file", type=click.Path(dir_okay=False),
              help="Path to the encrypted sensitive-variables file (defaults to <variables>.secret).")
@click.option("--sensitive-variables-password", "password",
              help="Password used to decrypt sensitive-variables (only applicable to offline-drop deployments).")
@click.option("--sensitive-variables-salt", "salt",
              help="Base64 encoded initialization-vector used to decrypt sensitive-variables.")
def deploy_package_command(package_file, variables_file, sensitive_variables_file, password, salt):
    """Extract and install a package.

    Exits 0 when the deployment succeeded (or was already installed) and
    1 otherwise, with the error written to stderr.

    \b
    Examples:
        deploycore deploy-package --package Acme.Web.1.0.0.zip --variables vars.json
    """
    try:
        deployment = deploy_package(
            package_file,
            variables_file=variables_file,
            password=password,
            salt=salt,
            sensitive_variables_file=sensitive_variables_file,
        )
    except DeployCoreError as e:
        raise click.ClickException(str(e)) from e
    except Exception as e:
        logger.exception("Deployment failed")
        raise click.ClickException(f"{type(e).__name__}: {e}") from e

    if deployment.skip_remaining_conventions:
        click.echo(f"{deployment.target} is already installed at {deployment.current_directory}")
    else:
        click.echo(f"Deployed {deployment.package_file_path.name} to {deployment.current_directory}")
