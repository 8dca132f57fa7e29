"""
EntityInstance model: one record of a user-defined entity.

The instance row carries identity and audit data only. Its attribute values
live in ``PropertyInstance`` rows, one per scalar value or list element.
"""

from sqlalchemy import Column, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from recordbase.models.base import (
    SCHEMA_NAME,
    AuditMixin,
    Base,
    SoftDeleteMixin,
    TimestampMixin,
    UUIDMixin,
)


class EntityInstance(Base, UUIDMixin, TimestampMixin, AuditMixin, SoftDeleteMixin):
    __tablename__ = "entity_instances"
    __table_args__ = (
        Index("ix_entity_instances_entity_id_created_at", "entity_id", "created_at"),
        {"schema": SCHEMA_NAME},
    )

    entity_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.entities.id"),
        nullable=False,
        comment="Entity this record is an instance of",
    )

    entity = relationship("Entity", back_populates="instances")

    property_instances = relationship(
        "PropertyInstance",
        back_populates="entity_instance",
        cascade="all, delete-orphan",
        order_by="PropertyInstance.sort_order",
        doc="Stored values of this record, including soft-deleted ones",
    )

    def __repr__(self):
        return f"<EntityInstance(id={self.id}, entity_id={self.entity_id})>"
