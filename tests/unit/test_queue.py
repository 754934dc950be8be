"""
Unit tests for inbound queue messages.
"""

import pytest

from appwrite_transfer.client.exceptions import InvalidJobError
from appwrite_transfer.queue import DocumentRef, MigrationJob, parse_lines


class TestDocumentRef:
    @pytest.mark.parametrize(
        "value",
        ["m1", {"$id": "m1"}, {"id": "m1"}, {"$id": "m1", "name": "ignored"}],
    )
    def test_accepted_forms(self, value):
        assert DocumentRef.from_payload(value).id == "m1"

    def test_rejects_other_types(self):
        with pytest.raises(ValueError):
            DocumentRef.from_payload(42)


class TestMigrationJob:
    def test_from_payload(self):
        job = MigrationJob.from_payload({"project": {"$id": "p1"}, "migration": "m1"})

        assert job.project.id == "p1"
        assert job.migration.id == "m1"
        assert not job.is_echo

    def test_echo(self):
        job = MigrationJob.from_payload(
            {"events": ["migrations.m1.update"], "project": "p1", "migration": "m1"}
        )

        assert job.is_echo

    @pytest.mark.parametrize("payload", [None, {}])
    def test_missing_payload(self, payload):
        with pytest.raises(InvalidJobError, match="Missing payload"):
            MigrationJob.from_payload(payload)

    def test_missing_migration(self):
        with pytest.raises(InvalidJobError, match="Invalid migration job"):
            MigrationJob.from_payload({"project": "p1"})

    def test_empty_id(self):
        with pytest.raises(InvalidJobError):
            MigrationJob.from_payload({"project": {"$id": ""}, "migration": "m1"})


class TestParseLines:
    def test_blank_lines_are_skipped(self):
        lines = iter(
            [
                '{"project": "p1", "migration": "m1"}\n',
                "\n",
                "   \n",
                '{"project": "p1", "migration": "m2"}\n',
            ]
        )

        assert [job.migration.id for job in parse_lines(lines)] == ["m1", "m2"]

    def test_invalid_json_names_the_line(self):
        lines = iter(['{"project": "p1", "migration": "m1"}', "{oops"])
        jobs = parse_lines(lines)

        assert next(jobs).migration.id == "m1"
        with pytest.raises(InvalidJobError, match="Line 2 is not valid JSON"):
            next(jobs)

    def test_non_object(self):
        with pytest.raises(InvalidJobError, match="Line 1 is not a JSON object"):
            list(parse_lines(iter(["[1, 2]"])))
