"""
Tests for the deploycore command line.
"""

import json

from click.testing import CliRunner

from deploycore import special_variables as sv
from deploycore.cli import main
from deploycore.config import get_config
from deploycore.deploy import create_journal


def invoke(*args):
    return CliRunner().invoke(main, list(args))


class TestDeployPackageCommand:
    """Tests for `deploycore deploy-package`."""

    def test_success_exits_zero(self, make_package, write_variables, base_variables):
        result = invoke(
            "deploy-package",
            "--package", str(make_package()),
            "--variables", str(write_variables(base_variables)),
        )

        assert result.exit_code == 0, result.output
        assert "Deployed Acme.Web.1.0.0.zip" in result.output
        assert len(create_journal(get_config()).get_entries()) == 1

    def test_already_installed_exits_zero(self, make_package, write_variables, base_variables):
        package = str(make_package())
        variables = str(write_variables({**base_variables, sv.Package.SKIP_IF_ALREADY_INSTALLED: "True"}))

        first = invoke("deploy-package", "--package", package, "--variables", variables)
        second = invoke("deploy-package", "--package", package, "--variables", variables)

        assert first.exit_code == 0, first.output
        assert second.exit_code == 0, second.output
        assert "already installed" in second.output

    def test_missing_package_exits_one(self, tmp_path):
        result = invoke("deploy-package", "--package", str(tmp_path / "nope.1.0.0.zip"))

        assert result.exit_code == 1
        assert "Could not find package file" in result.output

    def test_no_package_exits_one(self):
        result = invoke("deploy-package")

        assert result.exit_code == 1
        assert "No package file was specified" in result.output

    def test_salt_without_password_exits_one(self, make_package, write_variables, base_variables):
        result = invoke(
            "deploy-package",
            "--package", str(make_package()),
            "--variables", str(write_variables(base_variables)),
            "--sensitive-variables-salt", "AAAAAAAAAAAAAAAAAAAAAA==",
        )

        assert result.exit_code == 1
        assert "sensitiveVariablesPassword" in result.output

    def test_step_failure_exits_one_and_is_journaled(self, make_package, write_variables, base_variables):
        variables = {**base_variables, sv.Package.UPDATE_WEB_SITE: "True"}

        result = invoke(
            "deploy-package",
            "--package", str(make_package()),
            "--variables", str(write_variables(variables)),
        )

        assert result.exit_code == 1
        assert "Could not find a web site" in result.output
        entries = create_journal(get_config()).get_entries()
        assert [e.was_successful for e in entries] == [False]


class TestJournalCommands:
    """Tests for `deploycore journal`."""

    def test_list_empty(self):
        result = invoke("journal", "list")

        assert result.exit_code == 0
        assert "No deployments recorded." in result.output

    def test_list_limit_must_be_positive(self):
        result = invoke("journal", "list", "--limit", "0")

        assert result.exit_code == 2
        assert "--limit" in result.output

    def test_show_and_list(self, make_package, write_variables, base_variables):
        invoke(
            "deploy-package",
            "--package", str(make_package()),
            "--variables", str(write_variables(base_variables)),
        )

        shown = invoke(
            "journal", "show",
            "--environment", "Environments-1",
            "--project", "Projects-7",
            "--package", "Acme.Web",
        )
        assert shown.exit_code == 0, shown.output
        entry = json.loads(shown.stdout)
        assert entry["was_successful"] is True
        assert entry["target"]["package_id"] == "Acme.Web"

        listed = invoke("journal", "list")
        assert listed.exit_code == 0
        assert "Environments-1/Projects-7/untenanted/Acme.Web" in listed.output
        assert "success" in listed.output

    def test_show_unknown_target(self):
        result = invoke(
            "journal", "show",
            "--environment", "Environments-1",
            "--project", "Projects-7",
            "--package", "Unknown",
        )

        assert result.exit_code == 1
        assert "No journal entry found" in result.output

    def test_corrupt_journal_is_reported(self):
        path = get_config().get_journal_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("{corrupt")

        result = invoke("journal", "list")

        assert result.exit_code == 1
        assert "unreadable" in result.output
