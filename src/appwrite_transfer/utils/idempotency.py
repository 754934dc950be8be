"""Idempotency utilities for resource pushes.

A re-delivered job runs a full pass again. Destinations use the content
fingerprint below to recognise resources that were already transferred
unchanged and report them as skipped instead of failing on a conflict.
"""

import hashlib
import json
from collections.abc import Iterable
from typing import Any

from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)


def strip_fields(resource: dict[str, Any], exclude_fields: Iterable[str]) -> dict[str, Any]:
    """Return a shallow copy of ``resource`` without ``exclude_fields``.

    Args:
        resource: Resource dictionary
        exclude_fields: Top-level keys to drop

    Returns:
        New dictionary
    """
    excluded = set(exclude_fields)
    return {key: value for key, value in resource.items() if key not in excluded}


def hash_resource(
    resource: dict[str, Any],
    exclude_fields: Iterable[str] | None = None,
) -> str:
    """Generate SHA-256 hash of a resource for comparison.

    Creates a deterministic hash of a resource dictionary. Field order
    does not affect the hash.

    Args:
        resource: Resource dictionary to hash
        exclude_fields: Optional fields to exclude from hash
            (e.g., ["$id", "$createdAt", "$updatedAt"])

    Returns:
        SHA-256 hash as hex string (64 characters)

    Examples:
        >>> a = {"name": "alpha", "$id": "1"}
        >>> b = {"$id": "2", "name": "alpha"}
        >>> hash_resource(a, ["$id"]) == hash_resource(b, ["$id"])
        True
    """
    resource_copy = strip_fields(resource, exclude_fields or ())
    json_str = json.dumps(resource_copy, sort_keys=True, default=str)
    return hashlib.sha256(json_str.encode()).hexdigest()


def compare_resources(
    resource1: dict[str, Any],
    resource2: dict[str, Any],
    ignore_fields: Iterable[str] | None = None,
) -> bool:
    """Compare two resources for equality, ignoring server-managed fields.

    Only keys present in ``resource1`` are compared: the destination copy
    may carry extra attributes the destination platform adds on its own.

    Args:
        resource1: Resource as produced by the source
        resource2: Resource as currently stored at the destination
        ignore_fields: Fields to leave out of the comparison

    Returns:
        True if both fingerprints match
    """
    ignored = set(ignore_fields or ())
    projected = {key: resource2.get(key) for key in resource1 if key not in ignored}

    hash1 = hash_resource(resource1, exclude_fields=ignored)
    hash2 = hash_resource(projected)
    if hash1 != hash2:
        logger.debug("resource_fingerprint_mismatch", source_hash=hash1, destination_hash=hash2)
        return False
    return True
