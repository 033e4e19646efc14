"""
Tests for the durable deployment journal.
"""

import json
import os
import threading

import pytest

from deploycore import special_variables as sv
from deploycore.errors import ConfigurationError, JournalCorrupt
from deploycore.journal import SCHEMA_VERSION, DeploymentJournal, JournalEntry, TargetIdentity
from deploycore.variables import VariableDictionary

TARGET = TargetIdentity("Environments-1", "Projects-7", "Acme.Web")
OTHER = TargetIdentity("Environments-2", "Projects-7", "Acme.Web")


def make_entry(target=TARGET, successful=True, **kwargs):
    kwargs.setdefault("package_version", "1.0.0")
    kwargs.setdefault("extracted_to", "/srv/Applications/Production/Acme.Web/1.0.0")
    return JournalEntry(target=target, was_successful=successful, **kwargs)


class TestTargetIdentity:
    """Tests for TargetIdentity."""

    def test_key_distinguishes_tenants(self):
        tenanted = TargetIdentity("Environments-1", "Projects-7", "Acme.Web", "Tenants-3")

        assert TARGET.key == "Environments-1/Projects-7/untenanted/Acme.Web"
        assert tenanted.key == "Environments-1/Projects-7/Tenants-3/Acme.Web"

    def test_from_variables(self, variables):
        variables.set(sv.Tenant.ID, "Tenants-3")

        target = TargetIdentity.from_variables(variables)

        assert target == TargetIdentity("Environments-1", "Projects-7", "Acme.Web", "Tenants-3")

    def test_package_id_falls_back_to_file_name(self, base_variables):
        del base_variables[sv.Package.ID]
        target = TargetIdentity.from_variables(VariableDictionary(base_variables), "Acme.Api.2.1.0.zip")

        assert target.package_id == "Acme.Api"

    def test_missing_identifiers(self):
        with pytest.raises(ConfigurationError, match=sv.Environment.ID):
            TargetIdentity.from_variables(VariableDictionary({sv.Project.ID: "Projects-7"}), "a.1.0.zip")


class TestJournalEntry:
    """Tests for entry serialization and migration."""

    def test_round_trip(self):
        entry = make_entry(files_created=["/srv/a.txt"], fingerprint="abc")

        restored = JournalEntry.from_dict(json.loads(json.dumps(entry.to_dict())))

        assert restored == entry

    def test_installation_directory_prefers_custom(self):
        entry = make_entry(custom_installation_directory="/var/www/web")
        assert entry.installation_directory == "/var/www/web"
        assert make_entry().installation_directory == make_entry().extracted_to

    def test_v1_entry_is_migrated(self):
        raw = {
            "id": "legacy",
            "target": TARGET.to_dict(),
            "was_successful": True,
            "package_version": "0.9.0",
            "extracted_to": "/old",
            "installed_on": "2020-01-01T00:00:00+00:00",
        }

        entry = JournalEntry.from_dict(raw)

        assert entry.schema_version == SCHEMA_VERSION
        assert entry.files_created == []
        assert entry.fingerprint is None

    def test_unknown_fields_are_ignored_when_parsing(self):
        raw = make_entry().to_dict()
        raw["added_later"] = {"x": 1}

        assert JournalEntry.from_dict(raw).package_version == "1.0.0"

    @pytest.mark.parametrize("field,value", [
        ("was_successful", "yes"),
        ("files_created", "a.txt"),
    ])
    def test_malformed_fields(self, field, value):
        raw = make_entry().to_dict()
        raw[field] = value

        with pytest.raises(TypeError):
            JournalEntry.from_dict(raw)


class TestDeploymentJournal:
    """Tests for reading and writing the journal store."""

    def test_empty_journal(self, journal):
        assert journal.try_get_entry(TARGET) is None
        assert journal.try_get_latest_successful_entry(TARGET) is None
        assert journal.get_entries() == []

    def test_newest_entry_is_current(self, journal):
        first = make_entry(package_version="1.0.0")
        second = make_entry(package_version="1.1.0", successful=False)
        journal.add_entry(first)
        journal.add_entry(second)
        journal.add_entry(make_entry(target=OTHER))

        assert journal.try_get_entry(TARGET).id == second.id
        assert journal.try_get_latest_successful_entry(TARGET).id == first.id
        assert [e.id for e in journal.get_entries(TARGET)] == [first.id, second.id]
        assert len(journal.get_entries()) == 3

    def test_store_layout_and_permissions(self, journal):
        journal.add_entry(make_entry())

        data = json.loads(journal.path.read_text())
        assert data["schema_version"] == SCHEMA_VERSION
        assert len(data["entries"]) == 1
        if os.name == "posix":
            assert journal.path.stat().st_mode & 0o777 == 0o600
        # No temporary files left behind
        assert [p.name for p in journal.path.parent.iterdir() if p.name.startswith(".deployment-journal-")] == []

    def test_survives_new_instance(self, journal, semaphore):
        entry = make_entry()
        journal.add_entry(entry)

        reopened = DeploymentJournal(journal.path, semaphore, lock_timeout=5)

        assert reopened.try_get_entry(TARGET) == entry

    def test_v1_store_is_upgraded_on_write(self, journal):
        legacy = {
            "id": "legacy",
            "target": TARGET.to_dict(),
            "was_successful": True,
            "extracted_to": "/old",
            "installed_on": "2020-01-01T00:00:00+00:00",
        }
        journal.path.parent.mkdir(parents=True, exist_ok=True)
        journal.path.write_text(json.dumps([legacy]))

        assert journal.try_get_entry(TARGET).id == "legacy"

        journal.add_entry(make_entry())

        data = json.loads(journal.path.read_text())
        assert data["schema_version"] == SCHEMA_VERSION
        assert [e["id"] for e in data["entries"]][0] == "legacy"

    def test_unknown_fields_survive_rewrite(self, journal):
        raw = make_entry().to_dict()
        raw["added_later"] = "keep me"
        journal.path.parent.mkdir(parents=True, exist_ok=True)
        journal.path.write_text(json.dumps({"schema_version": SCHEMA_VERSION, "entries": [raw]}))

        journal.add_entry(make_entry(target=OTHER))

        data = json.loads(journal.path.read_text())
        assert data["entries"][0]["added_later"] == "keep me"

    @pytest.mark.parametrize("content", [
        "{not json",
        '"a string"',
        '{"entries": []}',
        '{"schema_version": 2, "entries": [1, 2]}',
    ])
    def test_corrupt_store_is_never_overwritten(self, journal, content):
        journal.path.parent.mkdir(parents=True, exist_ok=True)
        journal.path.write_text(content)

        with pytest.raises(JournalCorrupt):
            journal.add_entry(make_entry())
        with pytest.raises(JournalCorrupt):
            journal.try_get_entry(TARGET)

        assert journal.path.read_text() == content

    def test_malformed_entry_reports_corrupt(self, journal):
        raw = make_entry().to_dict()
        del raw["was_successful"]
        journal.path.parent.mkdir(parents=True, exist_ok=True)
        journal.path.write_text(json.dumps({"schema_version": SCHEMA_VERSION, "entries": [raw]}))

        with pytest.raises(JournalCorrupt, match="malformed entry"):
            journal.get_entries()

    def test_history_is_pruned_per_target(self, config, semaphore):
        journal = DeploymentJournal(config.get_journal_path(), semaphore, lock_timeout=5, history_limit=2)
        other = make_entry(target=OTHER)
        journal.add_entry(other)
        added = []
        for i in range(5):
            entry = make_entry(package_version=f"1.0.{i}")
            journal.add_entry(entry)
            added.append(entry.id)

        assert [e.id for e in journal.get_entries(TARGET)] == added[-3:]
        assert journal.try_get_entry(OTHER).id == other.id

    def test_concurrent_writers_lose_no_entries(self, journal, semaphore):
        errors = []

        def writer(n):
            try:
                own = DeploymentJournal(journal.path, semaphore, lock_timeout=30)
                for i in range(5):
                    own.add_entry(make_entry(package_version=f"{n}.{i}"))
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert errors == []
        assert len(journal.get_entries(TARGET)) == 20

    def test_readers_never_see_partial_store(self, journal):
        journal.add_entry(make_entry())
        stop = threading.Event()
        bad_reads = []

        def reader():
            while not stop.is_set():
                try:
                    json.loads(journal.path.read_text())
                except ValueError as e:
                    bad_reads.append(e)

        thread = threading.Thread(target=reader)
        thread.start()
        try:
            for i in range(20):
                journal.add_entry(make_entry(package_version=f"2.0.{i}", files_created=["x"] * 200))
        finally:
            stop.set()
            thread.join(timeout=10)

        assert bad_reads == []
