"""
PropertyInstance model: one stored value of a property on an entity instance.

Values are string-encoded by the value codec. A non-list property has at most
one live row per (instance, property); a list property has one row per
element, ordered strictly by ``sort_order``.
"""

from sqlalchemy import Column, ForeignKey, Index, Integer, Text
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


class PropertyInstance(Base, UUIDMixin, TimestampMixin, AuditMixin, SoftDeleteMixin):
    __tablename__ = "property_instances"
    __table_args__ = (
        # Filter phase looks rows up by property, fetch phase by instance
        Index("ix_property_instances_property_id", "property_id"),
        Index(
            "ix_property_instances_entity_instance_id_sort_order",
            "entity_instance_id",
            "sort_order",
        ),
        {"schema": SCHEMA_NAME},
    )

    entity_instance_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.entity_instances.id", ondelete="CASCADE"),
        nullable=False,
        comment="Record this value belongs to",
    )

    property_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.properties.id"),
        nullable=False,
        comment="Property this value is for",
    )

    value = Column(
        Text,
        nullable=True,
        comment="String-encoded value",
    )

    sort_order = Column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Element position for list properties, 0 otherwise",
    )

    entity_instance = relationship("EntityInstance", back_populates="property_instances")

    definition = relationship("Property")

    def __repr__(self):
        return (
            f"<PropertyInstance(id={self.id}, "
            f"entity_instance_id={self.entity_instance_id}, "
            f"property_id={self.property_id}, "
            f"sort_order={self.sort_order})>"
        )
