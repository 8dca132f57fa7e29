"""
Base configurations and mixins for database models.

Every table in the schema shares the declarative ``Base`` and some of the
mixins below: UUID primary keys, timestamps, audit columns and the soft-delete
flag. Nothing in recordbase is hard-deleted once data may reference it, so
``SoftDeleteMixin`` is applied to every user-editable table.
"""

import uuid
from datetime import date, datetime, time

from sqlalchemy import Boolean, Column, DateTime, String, inspect
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql.functions import now as db_now

from recordbase.config import settings


class CustomBase:
    """
    Custom base class for SQLAlchemy models with dictionary serialization.

    UUIDs become strings and temporal values become ISO 8601 strings.
    """

    def to_dict(self) -> dict:
        d = {}
        if not self:
            return d
        for column in inspect(self).mapper.column_attrs:
            value = getattr(self, column.key)
            if isinstance(value, uuid.UUID):
                d[column.key] = str(value)
            elif isinstance(value, (datetime, date, time)):
                d[column.key] = value.isoformat()
            else:
                d[column.key] = value
        return d


Base = declarative_base(cls=CustomBase)


class TimestampMixin:
    """created_at / updated_at columns managed by the database."""

    created_at = Column(
        DateTime(timezone=True),
        server_default=db_now(),
        nullable=False,
        comment="Timestamp when the record was created",
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=db_now(),
        onupdate=db_now(),
        nullable=False,
        comment="Timestamp when the record was last updated",
    )


class UUIDMixin:
    """UUID4 primary key generated on the client side."""

    id = Column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
        comment="Primary key using UUID4 format",
    )


class AuditMixin:
    """Who created and last modified a record; identity comes from the caller."""

    created_by = Column(
        String(255),
        nullable=True,
        comment="Identifier of the actor that created the record",
    )
    last_modified_by = Column(
        String(255),
        nullable=True,
        comment="Identifier of the actor that last modified the record",
    )


class SoftDeleteMixin:
    """Rows are hidden with ``is_deleted`` instead of being removed."""

    is_deleted = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default="f",
        comment="Soft-delete flag; deleted rows are invisible to all reads",
    )


SCHEMA_NAME = settings.schema_name

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "AuditMixin",
    "SoftDeleteMixin",
    "SCHEMA_NAME",
]
