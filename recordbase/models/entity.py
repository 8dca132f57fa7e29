"""
Entity model for user-defined record types.

An entity is the schema half of the entity/attribute-value store: it names a
record type inside a project and owns the property definitions that its
instances are filled in with.

Architecture:
    Entity → Property (field definitions)
    Entity → EntityInstance → PropertyInstance (stored values)
    Property(type=entity) → Entity (reference edges, kept acyclic)

Key Features:
    - Name unique among the live entities of a project
    - Display-string template that renders an instance to a label
    - Soft delete; entities are never removed once data may reference them
"""

from sqlalchemy import Column, Index, String, Text, text
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


class Entity(Base, UUIDMixin, TimestampMixin, AuditMixin, SoftDeleteMixin):
    """
    User-defined record type within a project.

    ``display_string`` is a template such as ``"{firstName} {lastName}"``;
    placeholders name properties of this entity by their machine name.
    """

    __tablename__ = "entities"
    __table_args__ = (
        Index(
            "uq_entities_project_name_live",
            "project_id",
            "name",
            unique=True,
            postgresql_where=text("is_deleted = false"),
        ),
        Index("ix_entities_project_id", "project_id"),
        {"schema": SCHEMA_NAME},
    )

    project_id = Column(
        PG_UUID(as_uuid=True),
        nullable=False,
        comment="Owning project; projects themselves live outside this service",
    )

    name = Column(
        String(255),
        nullable=False,
        comment="Entity name, unique among non-deleted entities of the project",
    )

    display_string = Column(
        Text,
        nullable=False,
        server_default="",
        comment="Template rendering an instance to a label, e.g. '{firstName} {lastName}'",
    )

    properties = relationship(
        "Property",
        back_populates="entity",
        foreign_keys="Property.entity_id",
        order_by="Property.sort_order",
        doc="Field definitions of this entity, including soft-deleted ones",
    )

    instances = relationship(
        "EntityInstance",
        back_populates="entity",
        doc="Records of this entity",
    )

    def __repr__(self):
        return (
            f"<Entity(id={self.id}, "
            f"project_id={self.project_id}, "
            f"name='{self.name}')>"
        )
