"""
Decorators for CLI commands.

This module provides decorators for error handling, context passing and
configuration loading.
"""

import functools
from collections.abc import Callable

import click

from appwrite_transfer.cli.context import TransferContext
from appwrite_transfer.client.exceptions import (
    APIError,
    ConfigurationError,
    ConnectivityError,
    InvalidCredentialsError,
    InvalidJobError,
    MigrationError,
    MigrationFailedError,
    NetworkError,
    PersistenceError,
    QueryValidationError,
    UnsupportedProviderError,
)
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)


def pass_context(f: Callable) -> Callable:
    """
    Decorator to pass TransferContext to command function.

    Usage:
        @click.command()
        @pass_context
        def my_command(ctx: TransferContext):
            print(ctx.config)
    """

    @click.pass_context
    @functools.wraps(f)
    def wrapper(click_ctx: click.Context, *args, **kwargs):
        transfer_ctx: TransferContext = click_ctx.obj
        return f(transfer_ctx, *args, **kwargs)

    return wrapper


def handle_errors(f: Callable) -> Callable:
    """
    Decorator to handle common errors in CLI commands.

    Exit codes:
        0: Success
        1: Unexpected error
        2: Configuration or input error
        3: Credentials or provider error
        4: Connectivity error
        5: Persistence error
        6: Migration failed
    """

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)

        except click.exceptions.Exit:
            raise

        except (ConfigurationError, QueryValidationError, InvalidJobError) as e:
            logger.error("configuration_error", error=str(e))
            click.echo(f"Configuration Error: {e}", err=True)
            raise click.exceptions.Exit(2) from e

        except (InvalidCredentialsError, UnsupportedProviderError) as e:
            logger.error("credentials_error", error=str(e))
            click.echo(f"Credentials Error: {e}", err=True)
            click.echo("\nPlease verify the provider and its credentials.", err=True)
            raise click.exceptions.Exit(3) from e

        except (ConnectivityError, APIError, NetworkError) as e:
            logger.error("connectivity_error", error=str(e))
            click.echo(f"Connectivity Error: {e}", err=True)
            if isinstance(e, APIError) and e.status_code:
                click.echo(f"\nResponse status: {e.status_code}", err=True)
            raise click.exceptions.Exit(4) from e

        except PersistenceError as e:
            logger.error("persistence_error", error=str(e))
            click.echo(f"Persistence Error: {e}", err=True)
            click.echo(
                "\nThe state database could not be read or written. "
                "Check database.url and run 'appwrite-transfer db init'.",
                err=True,
            )
            raise click.exceptions.Exit(5) from e

        except MigrationFailedError as e:
            logger.error("migration_failed", migration_id=e.migration_id, errors=len(e.errors))
            click.echo(f"Migration {e.migration_id} failed", err=True)
            for message in e.errors:
                click.echo(f"  - {message}", err=True)
            raise click.exceptions.Exit(6) from e

        except MigrationError as e:
            logger.error("migration_error", error=str(e))
            click.echo(f"Migration Error: {e}", err=True)
            raise click.exceptions.Exit(2) from e

        except Exception as e:
            logger.error("unexpected_error", error=str(e), exc_info=True)
            click.echo(f"Unexpected Error: {e}", err=True)
            click.echo(
                "\nAn unexpected error occurred. Please check the logs for details.",
                err=True,
            )
            raise click.exceptions.Exit(1) from e

    return wrapper


def requires_config(f: Callable) -> Callable:
    """
    Decorator to ensure configuration loads before the command runs.

    Without --config the configuration comes from the environment alone.
    """

    @functools.wraps(f)
    def wrapper(ctx: TransferContext, *args, **kwargs):
        try:
            _ = ctx.config
        except (OSError, ValueError) as e:
            click.echo(f"Error loading configuration: {e}", err=True)
            raise click.exceptions.Exit(2) from e

        return f(ctx, *args, **kwargs)

    return wrapper
