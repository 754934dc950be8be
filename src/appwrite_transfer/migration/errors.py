"""Human-readable messages for errors recorded on a migration.

The message layout is consumed by the console, so it stays stable:

    Error occurred while fetching 'user:u1' from source with message: 'boom'

When the failure wraps an underlying exception, its message and the file
and line where it was raised are appended.
"""

import traceback
from collections.abc import Iterable
from typing import Literal

from appwrite_transfer.client.exceptions import TransferError

Direction = Literal["fetch", "push"]

_TEMPLATES: dict[str, str] = {
    "fetch": "Error occurred while fetching '{name}:{id}' from source with message: '{message}'",
    "push": "Error occurred while pushing '{name}:{id}' to destination with message: '{message}'",
}


def _cause_location(cause: BaseException) -> tuple[str | None, int | None]:
    """File and line of the innermost frame of ``cause``'s traceback."""
    if cause.__traceback__ is None:
        return None, None
    frames = traceback.extract_tb(cause.__traceback__)
    if not frames:
        return None, None
    frame = frames[-1]
    return frame.filename, frame.lineno


def format_transfer_error(error: TransferError, direction: Direction) -> str:
    """Format one per-resource failure.

    Args:
        error: The captured failure
        direction: "fetch" for source errors, "push" for destination errors

    Returns:
        The formatted message
    """
    message = _TEMPLATES[direction].format(
        name=error.resource_name, id=error.resource_id, message=error.message
    )

    cause = error.cause
    if cause is not None:
        message += f" Message: {cause}"
        filename, line = _cause_location(cause)
        if filename is not None:
            message += f" File: {filename}"
        if line is not None:
            message += f" Line: {line}"

    return message


def collect_error_messages(
    source_errors: Iterable[TransferError],
    destination_errors: Iterable[TransferError],
) -> list[str]:
    """Format source errors followed by destination errors, preserving order."""
    messages = [format_transfer_error(error, "fetch") for error in source_errors]
    messages.extend(format_transfer_error(error, "push") for error in destination_errors)
    return messages


def format_structural_error(error: BaseException) -> str:
    """Message recorded for an error that aborted the whole run."""
    return str(error) or type(error).__name__
