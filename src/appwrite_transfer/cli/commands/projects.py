"""
Project commands.

Projects normally exist already on the platform; these commands register
them in a standalone state database so migrations can be created and run
against it.
"""

import click

from appwrite_transfer.cli.context import TransferContext
from appwrite_transfer.cli.decorators import handle_errors, pass_context, requires_config
from appwrite_transfer.cli.utils import echo_error, echo_success, print_table
from appwrite_transfer.migration.records import Project
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="projects")
def projects() -> None:
    """Project registration commands."""
    pass


@projects.command(name="create")
@click.argument("project_id")
@click.option("--name", default="", help="Display name")
@click.option("--team-id", default="", help="Owning team; receives live updates")
@pass_context
@requires_config
@handle_errors
def create_project(ctx: TransferContext, project_id: str, name: str, team_id: str) -> None:
    """Register a project.

    Examples:

        appwrite-transfer projects create p1 --name "Shop" --team-id t1
    """
    if ctx.store.get_document("projects", project_id) is not None:
        echo_error(f"Project already exists: {project_id}")
        raise click.exceptions.Exit(2)

    project = ctx.store.create_document(
        "projects", Project(id=project_id, name=name or project_id, team_id=team_id)
    )
    echo_success(f"Project created: {project.id}")


@projects.command(name="show")
@click.argument("project_id")
@pass_context
@requires_config
@handle_errors
def show_project(ctx: TransferContext, project_id: str) -> None:
    """Show a registered project."""
    project = ctx.store.get_document("projects", project_id)
    if project is None:
        echo_error(f"Project not found: {project_id}")
        raise click.exceptions.Exit(2)

    print_table(
        f"Project {project.id}",
        ["Field", "Value"],
        [["Name", project.name], ["Team", project.team_id or "-"]],
    )
