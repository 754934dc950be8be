"""
Worker commands.

``process`` runs a single migration. ``consume`` reads queue messages,
one JSON object per line, from a file or standard input and handles them
in order.
"""

import asyncio

import click

from appwrite_transfer.cli.context import TransferContext
from appwrite_transfer.cli.decorators import handle_errors, pass_context, requires_config
from appwrite_transfer.cli.utils import echo_error, echo_info, echo_success
from appwrite_transfer.client.exceptions import MigrationFailedError, MigrationNotFoundError
from appwrite_transfer.queue import parse_lines
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="worker")
def worker() -> None:
    """Migration worker commands."""
    pass


@worker.command(name="process")
@click.option("--project", "project_id", required=True, help="Owning project ID")
@click.option("--migration", "migration_id", required=True, help="Migration ID")
@pass_context
@requires_config
@handle_errors
def process_migration(ctx: TransferContext, project_id: str, migration_id: str) -> None:
    """Run one migration to completion.

    Exits with code 6 when the migration finishes as failed.

    Examples:

        appwrite-transfer worker process --project p1 --migration m1
    """
    migration = asyncio.run(ctx.worker.process(project_id, migration_id))
    echo_success(f"Migration {migration.id}: {migration.stage} / {migration.status}")


@worker.command(name="consume")
@click.argument("source", type=click.File("r"), default="-")
@click.option("--stop-on-failure", is_flag=True, help="Stop at the first failed migration")
@pass_context
@requires_config
@handle_errors
def consume(ctx: TransferContext, source, stop_on_failure: bool) -> None:
    """Handle queue messages read from SOURCE (a file, or - for stdin).

    Each line is one message of the form
    {"project": {"$id": ...}, "migration": {"$id": ...}}. Messages carrying
    "events" are change echoes and are skipped.

    Examples:

        appwrite-transfer worker consume jobs.jsonl

        echo '{"project": "p1", "migration": "m1"}' | appwrite-transfer worker consume
    """

    async def run_jobs() -> tuple[int, int, int]:
        handled = skipped = failed = 0
        for job in parse_lines(source):
            try:
                migration = await ctx.worker.handle(job)
            except (MigrationFailedError, MigrationNotFoundError) as e:
                failed += 1
                echo_error(str(e))
                if stop_on_failure:
                    break
                continue

            if migration is None:
                skipped += 1
                continue
            handled += 1
            click.echo(f"{migration.id}: {migration.status}")
        return handled, skipped, failed

    handled, skipped, failed = asyncio.run(run_jobs())
    logger.info("worker_consume_finished", handled=handled, skipped=skipped, failed=failed)
    echo_info(f"Handled {handled}, skipped {skipped}, failed {failed}")

    if failed:
        raise click.exceptions.Exit(6)
