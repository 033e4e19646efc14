"""deploycore CLI - Deployment journal commands."""

import json

import click

from deploycore.config import get_config
from deploycore.deploy import create_journal
from deploycore.errors import DeployCoreError
from deploycore.journal import TargetIdentity


@click.group()
def journal():
    """Inspect recorded deployments."""
    pass


@journal.command("show")
@click.option("--environment", "environment_id", required=True, help="Environment id")
@click.option("--project", "project_id", required=True, help="Project id")
@click.option("--package", "package_id", required=True, help="Package id")
@click.option("--tenant", "tenant_id", default=None, help="Tenant id (omit for untenanted)")
@click.option("--successful", is_flag=True, help="Show the latest successful entry instead of the current one")
def show(environment_id, project_id, package_id, tenant_id, successful):
    """Print the current journal entry for a target as JSON."""
    target = TargetIdentity(environment_id, project_id, package_id, tenant_id)
    try:
        deployment_journal = create_journal(get_config())
        if successful:
            entry = deployment_journal.try_get_latest_successful_entry(target)
        else:
            entry = deployment_journal.try_get_entry(target)
    except DeployCoreError as e:
        raise click.ClickException(str(e)) from e

    if entry is None:
        raise click.ClickException(f"No journal entry found for {target}")
    click.echo(json.dumps(entry.to_dict(), indent=2))


@journal.command("list")
@click.option("--limit", type=click.IntRange(min=1), default=50, show_default=True, help="Most recent entries to show")
def list_entries(limit):
    """List recent journal entries, newest first."""
    try:
        entries = create_journal(get_config()).get_entries()
    except DeployCoreError as e:
        raise click.ClickException(str(e)) from e

    if not entries:
        click.echo("No deployments recorded.")
        return

    for entry in reversed(entries[-limit:]):
        status = click.style("success", fg="green") if entry.was_successful else click.style("failed", fg="red")
        click.echo(
            f"{entry.installed_on}  {status}  {entry.target}  "
            f"{entry.package_version or '-'}  {entry.installation_directory or '-'}"
        )
