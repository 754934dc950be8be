"""
State database commands.
"""

import click

from appwrite_transfer.cli.context import TransferContext
from appwrite_transfer.cli.decorators import handle_errors, pass_context, requires_config
from appwrite_transfer.cli.utils import echo_error, echo_info, echo_success
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="db")
def db() -> None:
    """State database commands."""
    pass


@db.command(name="init")
@pass_context
@requires_config
@handle_errors
def init_db(ctx: TransferContext) -> None:
    """Create the projects, keys and migrations tables.

    Safe to run more than once.

    Examples:

        appwrite-transfer db init
    """
    echo_info(f"Initializing state database: {ctx.config.database.url}")
    ctx.database.create_tables()
    echo_success("State database ready")


@db.command(name="check")
@pass_context
@requires_config
@handle_errors
def check_db(ctx: TransferContext) -> None:
    """Check that the state database is reachable."""
    if ctx.database.ping():
        echo_success("State database reachable")
        return
    echo_error("State database not reachable")
    raise click.exceptions.Exit(5)
