"""
Migration record commands.

This module provides commands for creating migration records and for
inspecting their progress, counters and errors.
"""

import json
import uuid
from pathlib import Path

import click

from appwrite_transfer.cli.context import TransferContext
from appwrite_transfer.cli.decorators import handle_errors, pass_context, requires_config
from appwrite_transfer.cli.utils import (
    echo_error,
    echo_info,
    echo_success,
    echo_warning,
    format_count,
    format_status,
    format_timestamp,
    load_json_or_yaml,
    print_table,
)
from appwrite_transfer.migration.records import Migration
from appwrite_transfer.providers import DESTINATION_FACTORIES, SOURCE_FACTORIES
from appwrite_transfer.resources import (
    GROUP_AUTH,
    GROUP_DATABASES,
    GROUP_FUNCTIONS,
    GROUP_STORAGE,
    get_all_types,
    get_types_in_group,
    is_valid_type,
    sort_by_migration_order,
)
from appwrite_transfer.utils.logging import get_logger
from appwrite_transfer.validation.query_validator import Query, parse_filter_option

logger = get_logger(__name__)

GROUPS = (GROUP_AUTH, GROUP_DATABASES, GROUP_STORAGE, GROUP_FUNCTIONS)


@click.group(name="migrations")
def migrations() -> None:
    """Migration record commands.

    Create migrations and inspect their progress.
    """
    pass


@migrations.command(name="create")
@click.option("--project", "project_id", required=True, help="Owning project ID")
@click.option(
    "--source",
    type=click.Choice(sorted(SOURCE_FACTORIES)),
    required=True,
    help="Source provider",
)
@click.option(
    "--destination",
    type=click.Choice(sorted(DESTINATION_FACTORIES)),
    default="appwrite",
    show_default=True,
    help="Destination provider",
)
@click.option(
    "--credentials",
    "credentials_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON or YAML file with the provider credentials",
)
@click.option(
    "--resource",
    "resources",
    multiple=True,
    help="Resource type to transfer (repeatable)",
)
@click.option(
    "--group",
    "groups",
    type=click.Choice(GROUPS),
    multiple=True,
    help="Transfer every resource type of a group (repeatable)",
)
@click.option("--resource-id", help="Scope the transfer to this root resource")
@click.option("--resource-type", help="Type of --resource-id")
@click.option("--id", "migration_id", help="Migration ID (generated when omitted)")
@pass_context
@requires_config
@handle_errors
def create_migration(
    ctx: TransferContext,
    project_id: str,
    source: str,
    destination: str,
    credentials_path: Path | None,
    resources: tuple[str, ...],
    groups: tuple[str, ...],
    resource_id: str | None,
    resource_type: str | None,
    migration_id: str | None,
) -> None:
    """Create a pending migration record.

    Examples:

        # Users and databases from NHost
        appwrite-transfer migrations create --project p1 --source nhost \\
            --credentials nhost.json --resource users --resource databases \\
            --resource collections --resource documents

        # Everything in storage from another Appwrite project
        appwrite-transfer migrations create --project p1 --source appwrite \\
            --credentials peer.yaml --group storage
    """
    requested = list(resources)
    for group in groups:
        requested.extend(get_types_in_group(group))
    if not requested:
        raise click.BadParameter("at least one --resource or --group is required")

    unknown = [name for name in requested if not is_valid_type(name)]
    if unknown:
        raise click.BadParameter(
            f"unknown resource type(s): {', '.join(unknown)}. "
            f"Valid types: {', '.join(get_all_types())}"
        )
    if bool(resource_id) != bool(resource_type):
        raise click.BadParameter("--resource-id and --resource-type must be given together")
    if resource_type is not None and not is_valid_type(resource_type):
        raise click.BadParameter(f"unknown resource type: {resource_type}")

    if ctx.store.get_document("projects", project_id) is None:
        echo_error(f"Project not found: {project_id}")
        raise click.exceptions.Exit(2)

    credentials = load_json_or_yaml(credentials_path) if credentials_path else {}

    migration = ctx.store.create_document(
        "migrations",
        Migration(
            id=migration_id or uuid.uuid4().hex,
            project_id=project_id,
            source=source,
            destination=destination,
            credentials=credentials,
            resources=sort_by_migration_order(requested),
            resource_id=resource_id,
            resource_type=resource_type,
        ),
    )

    logger.info("migration_created", migration_id=migration.id, source=source)
    echo_success(f"Migration created: {migration.id}")
    echo_info(f"Resources: {', '.join(migration.resources)}")


@migrations.command(name="show")
@click.argument("migration_id")
@click.option("--project", "project_id", required=True, help="Owning project ID")
@click.option("--json", "as_json", is_flag=True, help="Print the public document as JSON")
@pass_context
@requires_config
@handle_errors
def show_migration(ctx: TransferContext, migration_id: str, project_id: str, as_json: bool) -> None:
    """Show status, stage, counters and errors of a migration."""
    migration = ctx.store.get_document("migrations", migration_id)
    if migration is None or migration.project_id != project_id:
        echo_error(f"Migration not found: {project_id}/{migration_id}")
        raise click.exceptions.Exit(2)

    if as_json:
        click.echo(json.dumps(migration.to_public_dict(), indent=2))
        return

    print_table(
        f"Migration {migration.id}",
        ["Field", "Value"],
        [
            ["Source", migration.source],
            ["Destination", migration.destination],
            ["Stage", migration.stage],
            ["Status", format_status(str(migration.status))],
            ["Resources", ", ".join(migration.resources)],
            ["Created", format_timestamp(migration.created_at)],
            ["Updated", format_timestamp(migration.updated_at)],
        ],
    )

    counters = json.loads(migration.status_counters or "{}")
    if counters:
        rows = [
            [
                resource_type,
                format_count(counts.get("pending", 0)),
                format_count(counts.get("success", 0)),
                format_count(counts.get("skipped", 0)),
                format_count(counts.get("error", 0)),
            ]
            for resource_type, counts in counters.items()
        ]
        print_table("Status Counters", ["Type", "Pending", "Success", "Skipped", "Error"], rows)

    if migration.errors:
        click.echo()
        echo_warning(f"{len(migration.errors)} error(s):")
        for message in migration.errors:
            click.echo(f"  - {message}")


@migrations.command(name="list")
@click.option("--project", "project_id", required=True, help="Owning project ID")
@click.option(
    "--filter",
    "filters",
    multiple=True,
    help="attribute=value, or attribute~value for array attributes (repeatable)",
)
@click.option("--limit", type=int, default=25, show_default=True)
@click.option("--offset", type=int, default=0, show_default=True)
@click.option("--order", help="Attribute to order by")
@click.option("--desc", is_flag=True, help="Order descending")
@pass_context
@requires_config
@handle_errors
def list_migrations(
    ctx: TransferContext,
    project_id: str,
    filters: tuple[str, ...],
    limit: int,
    offset: int,
    order: str | None,
    desc: bool,
) -> None:
    """List the migrations of a project.

    Examples:

        appwrite-transfer migrations list --project p1 --filter status=failed

        appwrite-transfer migrations list --project p1 --filter resources~users \\
            --order '$createdAt' --desc
    """
    queries = [parse_filter_option(option) for option in filters]
    queries.append(Query("limit", values=(limit,)))
    queries.append(Query("offset", values=(offset,)))
    if order:
        queries.append(Query("orderDesc" if desc else "orderAsc", order))

    found = ctx.store.find_migrations(project_id, queries)
    if not found:
        echo_info("No migrations found")
        return

    rows = [
        [
            migration.id,
            migration.source,
            migration.stage,
            format_status(str(migration.status)),
            ", ".join(migration.resources),
            len(migration.errors),
            format_timestamp(migration.updated_at),
        ]
        for migration in found
    ]
    print_table(
        f"Migrations of {project_id}",
        ["ID", "Source", "Stage", "Status", "Resources", "Errors", "Updated"],
        rows,
    )
