"""SQLAlchemy declarative base and common mixins."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

from poscore.core.errors import ConflictError


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class VersionMixin:
    """Optimistic locking via a version counter.

    The ``version`` column is the mapper's ``version_id_col``: SQLAlchemy
    bumps it on every UPDATE and raises ``StaleDataError`` when the row was
    changed by someone else since it was loaded. ``check_version()`` lets a
    client that remembers the version it saw fail early.
    """

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    @declared_attr.directive
    def __mapper_args__(cls) -> Dict[str, Any]:
        return {"version_id_col": cls.version}

    def check_version(self, expected: Optional[int]) -> None:
        """Raise ConflictError if *expected* doesn't match current version."""
        if expected is not None and expected != self.version:
            raise ConflictError(
                f"Version conflict: expected {expected}, current {self.version}",
                expected_version=expected,
                current_version=self.version,
            )


class SoftDeleteMixin:
    """Soft-delete support via ``is_deleted`` flag and ``deleted_at`` timestamp."""

    is_deleted: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="0", nullable=False, index=True,
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None,
    )

    def soft_delete(self) -> None:
        """Mark this row as deleted."""
        self.is_deleted = True
        self.deleted_at = datetime.now(timezone.utc)

    @classmethod
    def not_deleted(cls):
        """SQLAlchemy filter expression: ``WHERE is_deleted = FALSE``."""
        return cls.is_deleted.is_(False)
