"""
Unit tests for the command-line interface.

Every test runs the real CLI against a SQLite state database created in
tmp_path through a YAML configuration file.
"""

import json

import pytest
from click.testing import CliRunner

from appwrite_transfer.cli.main import cli


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"database:\n"
        f"  url: sqlite:///{tmp_path / 'cli.db'}\n"
        f"realtime:\n"
        f"  sink: memory\n"
    )
    return path


@pytest.fixture
def invoke(config_file):
    runner = CliRunner()

    def run(*args, input=None):
        return runner.invoke(cli, ["--config", str(config_file), *args], input=input)

    return run


@pytest.fixture
def initialized(invoke):
    """State database with tables and one registered project."""
    assert invoke("db", "init").exit_code == 0
    assert invoke("projects", "create", "p1", "--name", "Shop", "--team-id", "t1").exit_code == 0
    return invoke


def create(invoke, *args, project="p1"):
    return invoke("migrations", "create", "--project", project, *args)


@pytest.fixture
def credentials_file(tmp_path):
    path = tmp_path / "nhost.json"
    path.write_text(json.dumps({"subdomain": "abc", "region": "eu-central-1"}))
    return path


class TestDatabaseCommands:
    def test_init_is_repeatable(self, invoke):
        assert invoke("db", "init").exit_code == 0

        result = invoke("db", "init")

        assert result.exit_code == 0
        assert "State database ready" in result.output

    def test_check(self, invoke):
        result = invoke("db", "check")

        assert result.exit_code == 0
        assert "reachable" in result.output


class TestProjectCommands:
    def test_show(self, initialized):
        result = initialized("projects", "show", "p1")

        assert result.exit_code == 0
        assert "Shop" in result.output

    def test_duplicate(self, initialized):
        result = initialized("projects", "create", "p1")

        assert result.exit_code == 2
        assert "already exists" in result.output

    def test_show_unknown(self, initialized):
        assert initialized("projects", "show", "nope").exit_code == 2


class TestMigrationCommands:
    """Tests for migrations create, show and list."""

    def test_create_and_show(self, initialized, credentials_file):
        result = initialized(
            "migrations",
            "create",
            "--project",
            "p1",
            "--source",
            "nhost",
            "--credentials",
            str(credentials_file),
            "--resource",
            "documents",
            "--resource",
            "users",
            "--id",
            "m1",
        )

        assert result.exit_code == 0, result.output
        assert "Migration created: m1" in result.output
        assert "Resources: users, documents" in result.output

        shown = initialized("migrations", "show", "m1", "--project", "p1", "--json")
        assert shown.exit_code == 0
        document = json.loads(shown.output)
        assert document["status"] == "pending"
        assert document["resources"] == ["users", "documents"]
        assert "credentials" not in document

    def test_group_expands_to_types(self, initialized):
        result = create(initialized, "--source", "appwrite", "--group", "storage", "--id", "m2")

        assert result.exit_code == 0, result.output
        assert "Resources: buckets, files" in result.output

    def test_unknown_resource_type(self, initialized):
        result = create(initialized, "--source", "nhost", "--resource", "widgets")

        assert result.exit_code == 2
        assert "widgets" in result.output

    def test_resource_id_requires_type(self, initialized):
        result = create(
            initialized, "--source", "nhost", "--resource", "users", "--resource-id", "db1"
        )

        assert result.exit_code == 2

    def test_unknown_project(self, initialized):
        result = create(initialized, "--source", "nhost", "--resource", "users", project="ghost")

        assert result.exit_code == 2
        assert "Project not found" in result.output

    def test_show_other_project(self, initialized):
        create(initialized, "--source", "nhost", "--resource", "users", "--id", "m1")
        assert initialized("projects", "create", "p2").exit_code == 0

        assert initialized("migrations", "show", "m1", "--project", "p2").exit_code == 2

    def test_list_with_filter(self, initialized):
        for migration_id, source in (("m1", "nhost"), ("m2", "supabase")):
            create(initialized, "--source", source, "--resource", "users", "--id", migration_id)

        result = initialized(
            "migrations", "list", "--project", "p1", "--filter", "source=supabase"
        )

        assert result.exit_code == 0, result.output
        assert "m2" in result.output
        assert "m1" not in result.output

    def test_list_invalid_filter_attribute(self, initialized):
        result = initialized("migrations", "list", "--project", "p1", "--filter", "secret=x")

        assert result.exit_code == 2

    def test_list_empty(self, initialized):
        result = initialized("migrations", "list", "--project", "p1")

        assert result.exit_code == 0
        assert "No migrations found" in result.output


class TestWorkerCommands:
    """Tests for worker process and consume."""

    def create_migration(self, invoke, credentials_file, migration_id="m1"):
        result = create(
            invoke,
            "--source",
            "nhost",
            "--credentials",
            str(credentials_file),
            "--resource",
            "users",
            "--id",
            migration_id,
        )
        assert result.exit_code == 0, result.output

    def test_process_failed_migration(self, initialized, credentials_file):
        """Incomplete credentials fail the migration with exit code 6."""
        self.create_migration(initialized, credentials_file)

        result = initialized("worker", "process", "--project", "p1", "--migration", "m1")

        assert result.exit_code == 6
        assert "Migration m1 failed" in result.output
        assert "Invalid credentials for nhost" in result.output

        shown = initialized("migrations", "show", "m1", "--project", "p1", "--json")
        assert json.loads(shown.output)["status"] == "failed"

    def test_process_unknown_migration(self, initialized):
        result = initialized("worker", "process", "--project", "p1", "--migration", "nope")

        assert result.exit_code == 2

    def test_consume_skips_echoes(self, initialized):
        echo = {"events": ["migrations.m1.update"], "project": "p1", "migration": "m1"}
        console = {"project": "console", "migration": "m1"}
        lines = "\n".join([json.dumps(echo), json.dumps(console)])

        result = initialized("worker", "consume", input=lines)

        assert result.exit_code == 0, result.output
        assert "Handled 0, skipped 2, failed 0" in result.output

    def test_consume_reports_failures(self, initialized, credentials_file):
        self.create_migration(initialized, credentials_file, "m1")
        self.create_migration(initialized, credentials_file, "m2")
        lines = "\n".join(
            json.dumps({"project": {"$id": "p1"}, "migration": {"$id": m}}) for m in ("m1", "m2")
        )

        result = initialized("worker", "consume", input=lines)

        assert result.exit_code == 6
        assert "failed 2" in result.output

    def test_consume_stops_on_first_failure(self, initialized, credentials_file):
        self.create_migration(initialized, credentials_file, "m1")
        self.create_migration(initialized, credentials_file, "m2")
        lines = "\n".join(json.dumps({"project": "p1", "migration": m}) for m in ("m1", "m2"))

        result = initialized("worker", "consume", "--stop-on-failure", input=lines)

        assert result.exit_code == 6
        assert "failed 1" in result.output

    def test_consume_invalid_line(self, initialized):
        result = initialized("worker", "consume", input="{not json}\n")

        assert result.exit_code == 2
        assert "Line 1" in result.output
