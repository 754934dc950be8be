"""
Main CLI entry point for appwrite-transfer.

This module provides the command-line interface for creating, running and
inspecting migrations.
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from appwrite_transfer import __version__
from appwrite_transfer.cli.commands import db as db_commands
from appwrite_transfer.cli.commands import migrations as migration_commands
from appwrite_transfer.cli.commands import projects as project_commands
from appwrite_transfer.cli.commands import worker as worker_commands
from appwrite_transfer.cli.context import TransferContext
from appwrite_transfer.utils.logging import configure_logging, get_logger

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="appwrite-transfer")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
    envvar="APPWRITE_TRANSFER_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Set console logging level",
    envvar="APPWRITE_TRANSFER_LOG_LEVEL",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Also write JSON logs to this file",
    envvar="APPWRITE_TRANSFER_LOG_FILE",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    log_level: str,
    log_file: Path | None,
) -> None:
    """Appwrite Transfer - move project resources between platforms.

    Examples:

        # Create the state tables
        appwrite-transfer db init

        # Queue a migration from NHost
        appwrite-transfer migrations create --project p1 --source nhost \\
            --credentials nhost.json --resource users --resource databases

        # Run it
        appwrite-transfer worker process --project p1 --migration <id>

        # Inspect it
        appwrite-transfer migrations show <id> --project p1
    """
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    configure_logging(level=log_level, log_file=str(log_file) if log_file else None)

    ctx.obj = TransferContext(
        config_path=config,
        log_level=log_level,
        log_file=log_file,
    )
    ctx.call_on_close(ctx.obj.cleanup)

    logger.debug(
        "cli_initialized",
        config=str(config) if config else None,
        log_level=log_level,
    )


cli.add_command(db_commands.db)
cli.add_command(project_commands.projects)
cli.add_command(migration_commands.migrations)
cli.add_command(worker_commands.worker)


def main() -> int:
    """Main entry point for CLI."""
    try:
        # Without standalone mode click returns the exit code of ctx.exit/Exit
        result = cli(standalone_mode=False)
        return result if isinstance(result, int) else 0
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except Exception as e:
        logger.error("unexpected_error", error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
