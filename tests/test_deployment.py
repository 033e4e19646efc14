"""
Tests for RunningDeployment state and input fingerprints.
"""

from pathlib import Path

from deploycore import special_variables as sv
from deploycore.deployment import RunningDeployment, compute_fingerprint
from deploycore.journal import JournalEntry
from deploycore.variables import VariableDictionary


class TestFingerprint:
    """Tests for compute_fingerprint."""

    def test_same_inputs_same_fingerprint(self, make_package, base_variables):
        package = make_package()

        a = compute_fingerprint(package, VariableDictionary(base_variables))
        b = compute_fingerprint(package, VariableDictionary(base_variables))

        assert a == b
        assert len(a) == 64

    def test_variable_change_changes_fingerprint(self, make_package, base_variables):
        package = make_package()
        changed = VariableDictionary(base_variables)
        changed.set("Greeting", "Hi")

        assert compute_fingerprint(package, VariableDictionary(base_variables)) != compute_fingerprint(package, changed)

    def test_package_change_changes_fingerprint(self, make_package, base_variables):
        variables = VariableDictionary(base_variables)
        first = compute_fingerprint(make_package({"a.txt": "1"}, name="one.1.0.zip"), variables)
        second = compute_fingerprint(make_package({"a.txt": "2"}, name="two.1.0.zip"), variables)

        assert first != second

    def test_volatile_and_environment_variables_are_ignored(self, make_package, base_variables):
        package = make_package()
        noisy = VariableDictionary(base_variables)
        noisy.set(sv.Deployment.ID, "Deployments-99")
        noisy.set(sv.ENVIRONMENT_VARIABLE_PREFIX + "PATH", "/usr/bin")

        assert compute_fingerprint(package, noisy) == compute_fingerprint(package, VariableDictionary(base_variables))


class TestRunningDeployment:
    """Tests for RunningDeployment."""

    def test_current_directory_precedence(self, tmp_path, variables):
        deployment = RunningDeployment(tmp_path / "pkg" / "Acme.Web.1.0.0.zip", variables)
        assert deployment.current_directory == tmp_path / "pkg"

        deployment.staging_directory = tmp_path / "staging"
        assert deployment.current_directory == tmp_path / "staging"

        deployment.custom_installation_directory = tmp_path / "custom"
        assert deployment.current_directory == tmp_path / "custom"

    def test_package_version_falls_back_to_file_name(self, tmp_path):
        deployment = RunningDeployment(tmp_path / "Acme.Web.2.3.4.zip", VariableDictionary())
        assert deployment.package_version == "2.3.4"

    def test_fingerprint_is_pinned(self, make_package, variables):
        deployment = RunningDeployment(make_package(), variables)
        pinned = deployment.fingerprint

        deployment.variables.set("Greeting", "changed mid-run")

        assert deployment.fingerprint == pinned

    def test_side_effects_are_deduplicated(self, tmp_path, variables):
        deployment = RunningDeployment(tmp_path / "a.zip", variables)
        deployment.record_file_created(tmp_path / "x.txt")
        deployment.record_file_created(str(tmp_path / "x.txt"))
        deployment.record_directory_created(tmp_path)

        assert deployment.files_created == [tmp_path / "x.txt"]
        assert deployment.directories_created == [tmp_path]

    def test_stale_files(self, tmp_path, variables):
        install = tmp_path / "install"
        deployment = RunningDeployment(tmp_path / "a.zip", variables)
        deployment.previous_installation = JournalEntry(
            target=deployment.target,
            was_successful=True,
            files_created=[
                str(install / "kept.txt"),
                str(install / "removed.txt"),
                str(tmp_path / "elsewhere" / "other.txt"),
            ],
        )
        deployment.record_file_created(install / "kept.txt")

        assert deployment.stale_files(install) == [install / "removed.txt"]

    def test_no_previous_installation_means_no_stale_files(self, tmp_path, variables):
        deployment = RunningDeployment(tmp_path / "a.zip", variables)
        assert deployment.stale_files(tmp_path) == []

    def test_adopt_previous_installation(self, tmp_path, variables):
        deployment = RunningDeployment(tmp_path / "a.zip", variables)
        entry = JournalEntry(
            target=deployment.target,
            was_successful=True,
            extracted_to=str(tmp_path / "staging"),
            custom_installation_directory=str(tmp_path / "custom"),
            files_created=[str(tmp_path / "custom" / "a.txt")],
            directories_created=[str(tmp_path / "staging")],
        )

        deployment.adopt_previous_installation(entry)

        assert deployment.staging_directory == tmp_path / "staging"
        assert deployment.current_directory == tmp_path / "custom"
        assert deployment.files_created == [Path(entry.files_created[0])]
