"""Central resource type definitions - single source of truth.

This module provides the registry of every resource type the transfer engine
can move. Sources, destinations, the transfer loop and the CLI all import
from here rather than defining their own lists.

Types are keyed by their plural name (``users``, ``documents``); error
messages use the singular name (``user``, ``document``).
"""

from dataclasses import dataclass, field
from typing import Any

GROUP_AUTH = "auth"
GROUP_DATABASES = "databases"
GROUP_STORAGE = "storage"
GROUP_FUNCTIONS = "functions"


@dataclass(frozen=True)
class ResourceTypeInfo:
    """Metadata for a resource type."""

    name: str
    singular: str
    description: str
    group: str
    migration_order: int  # Lower = earlier in transfer (dependency order)
    parent: str | None = None


RESOURCE_REGISTRY: dict[str, ResourceTypeInfo] = {
    "users": ResourceTypeInfo(
        name="users",
        singular="user",
        description="Users",
        group=GROUP_AUTH,
        migration_order=10,
    ),
    "teams": ResourceTypeInfo(
        name="teams",
        singular="team",
        description="Teams",
        group=GROUP_AUTH,
        migration_order=20,
    ),
    # Memberships reference both a team and a user
    "memberships": ResourceTypeInfo(
        name="memberships",
        singular="membership",
        description="Team memberships",
        group=GROUP_AUTH,
        migration_order=30,
        parent="teams",
    ),
    "databases": ResourceTypeInfo(
        name="databases",
        singular="database",
        description="Databases",
        group=GROUP_DATABASES,
        migration_order=40,
    ),
    "collections": ResourceTypeInfo(
        name="collections",
        singular="collection",
        description="Collections (with attributes and indexes)",
        group=GROUP_DATABASES,
        migration_order=50,
        parent="databases",
    ),
    "documents": ResourceTypeInfo(
        name="documents",
        singular="document",
        description="Documents",
        group=GROUP_DATABASES,
        migration_order=60,
        parent="collections",
    ),
    "buckets": ResourceTypeInfo(
        name="buckets",
        singular="bucket",
        description="Storage buckets",
        group=GROUP_STORAGE,
        migration_order=70,
    ),
    "files": ResourceTypeInfo(
        name="files",
        singular="file",
        description="Files",
        group=GROUP_STORAGE,
        migration_order=80,
        parent="buckets",
    ),
    "functions": ResourceTypeInfo(
        name="functions",
        singular="function",
        description="Functions",
        group=GROUP_FUNCTIONS,
        migration_order=90,
    ),
}


@dataclass(frozen=True)
class ResourceScope:
    """Restricts a transfer to one pre-existing root resource and its descendants."""

    resource_type: str
    resource_id: str

    def includes_type(self, resource_type: str) -> bool:
        """Whether instances of ``resource_type`` can fall inside this scope."""
        return resource_type == self.resource_type or self.resource_type in get_ancestors(
            resource_type
        )

    def includes(self, resource: "Resource") -> bool:
        """Whether ``resource`` is the scoped root or one of its descendants."""
        if resource.type == self.resource_type:
            return resource.id == self.resource_id
        return resource.parent_id(self.resource_type) == self.resource_id


@dataclass(frozen=True, eq=False)
class Resource:
    """One resource instance read from a source.

    Attributes:
        type: Plural resource type (registry key)
        id: Identifier, unique among siblings under the same parents
        data: Provider-neutral attributes to push
        parents: Ordered (type, id) pairs from the root down
    """

    type: str
    id: str
    data: dict[str, Any] = field(default_factory=dict)
    parents: tuple[tuple[str, str], ...] = ()

    @property
    def name(self) -> str:
        """Singular resource name used in error messages."""
        return get_singular(self.type)

    @property
    def cache_key(self) -> str:
        """Identifier qualified by its parents, unique within the type."""
        return "/".join([*(parent_id for _, parent_id in self.parents), self.id])

    def parent_id(self, resource_type: str) -> str | None:
        """Return the ID of the ancestor of ``resource_type``, if any."""
        for parent_type, parent_id in self.parents:
            if parent_type == resource_type:
                return parent_id
        return None


# ============================================
# Helper Functions - Derived from Registry
# ============================================


def get_all_types() -> list[str]:
    """Get all supported resource types in registry order."""
    return list(RESOURCE_REGISTRY.keys())


def get_migration_order() -> list[str]:
    """Get resource types in transfer dependency order.

    Returns:
        List of resource type names, dependencies first
    """
    return sorted(
        RESOURCE_REGISTRY.keys(),
        key=lambda x: RESOURCE_REGISTRY[x].migration_order,
    )


def sort_by_migration_order(resource_types: list[str]) -> list[str]:
    """Order requested types by dependency, dropping duplicates.

    Args:
        resource_types: Requested resource type names

    Returns:
        Known types in migration order

    Raises:
        KeyError: If a type is not in the registry
    """
    unique = dict.fromkeys(resource_types)
    for resource_type in unique:
        if resource_type not in RESOURCE_REGISTRY:
            raise KeyError(f"Unknown resource type: {resource_type}")
    return sorted(unique, key=lambda x: RESOURCE_REGISTRY[x].migration_order)


def get_info(resource_type: str) -> ResourceTypeInfo:
    """Get full metadata for a resource type.

    Raises:
        KeyError: If resource type is not in registry
    """
    return RESOURCE_REGISTRY[resource_type]


def get_singular(resource_type: str) -> str:
    """Singular name of a resource type, or the type itself when unknown."""
    info = RESOURCE_REGISTRY.get(resource_type)
    return info.singular if info else resource_type


def get_ancestors(resource_type: str) -> list[str]:
    """Parent chain of a resource type, nearest parent first."""
    ancestors = []
    parent = RESOURCE_REGISTRY[resource_type].parent
    while parent is not None:
        ancestors.append(parent)
        parent = RESOURCE_REGISTRY[parent].parent
    return ancestors


def get_types_in_group(group: str) -> list[str]:
    """Resource types belonging to a group (auth, databases, storage, functions)."""
    return [name for name, info in RESOURCE_REGISTRY.items() if info.group == group]


def is_valid_type(resource_type: str) -> bool:
    """Check if a resource type is valid."""
    return resource_type in RESOURCE_REGISTRY
