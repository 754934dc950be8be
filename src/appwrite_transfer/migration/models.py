"""
SQLAlchemy models for the platform records the worker reads and writes.

The worker shares the platform database with the rest of the system. It
only touches three collections: ``projects`` (read), ``keys`` (temporary
transfer credentials) and ``migrations`` (the record it drives).
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class ProjectRow(Base):
    """A tenant project in the console database."""

    __tablename__ = "projects"

    internal_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    team_id: Mapped[str] = mapped_column(
        String(255), nullable=False, default="", comment="Team owning the project"
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class KeyRow(Base):
    """An API key owned by a project."""

    __tablename__ = "keys"

    internal_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    project_internal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.internal_id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    scopes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    expire: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Null means the key never expires"
    )
    secret: Mapped[str] = mapped_column(Text, nullable=False)
    sdks: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    accessed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class MigrationRow(Base):
    """A migration record inside a project database."""

    __tablename__ = "migrations"

    internal_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    project_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    stage: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    source: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    destination: Mapped[str] = mapped_column(String(64), nullable=False)
    credentials: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    resources: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    resource_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    resource_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resource_data: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    status_counters: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    errors: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_migrations_status",
        ),
        CheckConstraint(
            "stage IN ('pending', 'processing', 'migrating', 'finished')",
            name="ck_migrations_stage",
        ),
    )
