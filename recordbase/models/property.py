"""
Property model for typed field definitions of an entity.

Properties describe the attributes half of the entity/attribute-value store.
Values are always persisted as strings in ``PropertyInstance.value``; the
property type decides how they are cast, validated and compared.

Architecture:
    Entity → Property → PropertyInstance
    Property(property_type='entity') → referenced Entity
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship, validates

from recordbase.models.base import (
    SCHEMA_NAME,
    AuditMixin,
    Base,
    SoftDeleteMixin,
    TimestampMixin,
    UUIDMixin,
)
from recordbase.models.enums import PropertyType


class Property(Base, UUIDMixin, TimestampMixin, AuditMixin, SoftDeleteMixin):
    """
    Typed, optionally multi-valued field of an entity.

    ``property_name`` is the machine name (camelCase of ``name`` unless given
    explicitly) and is what instance payloads and display-string placeholders
    refer to. ``referenced_entity_id`` is only meaningful when
    ``property_type`` is ``entity``.
    """

    __tablename__ = "properties"
    __table_args__ = (
        Index(
            "uq_properties_entity_property_name_live",
            "entity_id",
            "property_name",
            unique=True,
            postgresql_where=text("is_deleted = false"),
        ),
        Index("ix_properties_entity_id", "entity_id"),
        Index("ix_properties_referenced_entity_id", "referenced_entity_id"),
        CheckConstraint(
            "property_type IN ('string', 'number', 'boolean', 'date', 'datetime', 'time', 'entity')",
            name="ck_properties_property_type",
        ),
        {"schema": SCHEMA_NAME},
    )

    entity_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.entities.id"),
        nullable=False,
        comment="Entity this property belongs to",
    )

    name = Column(
        String(255),
        nullable=False,
        comment="Display name shown to administrators",
    )

    property_name = Column(
        String(255),
        nullable=False,
        comment="Machine name (camelCase), unique among live properties of the entity",
    )

    property_type = Column(
        String(20),
        nullable=False,
        comment="One of string, number, boolean, date, datetime, time, entity",
    )

    is_list = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default="f",
        comment="Whether the property holds an ordered list of values",
    )

    is_required = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default="f",
        comment="Whether instances must provide a value",
    )

    default_value = Column(
        Text,
        nullable=True,
        comment="String-encoded default value, validated against property_type",
    )

    referenced_entity_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.entities.id"),
        nullable=True,
        comment="Target entity for entity-reference properties",
    )

    sort_order = Column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Position of the property within its entity",
    )

    entity = relationship(
        "Entity",
        back_populates="properties",
        foreign_keys=[entity_id],
    )

    referenced_entity = relationship(
        "Entity",
        foreign_keys=[referenced_entity_id],
        doc="Entity targeted by a reference property",
    )

    @validates("property_type")
    def validate_property_type(self, key, value):
        return PropertyType(value).value

    @property
    def type(self) -> PropertyType:
        return PropertyType(self.property_type)

    def __repr__(self):
        return (
            f"<Property(id={self.id}, "
            f"entity_id={self.entity_id}, "
            f"property_name='{self.property_name}', "
            f"property_type='{self.property_type}', "
            f"is_list={self.is_list})>"
        )
