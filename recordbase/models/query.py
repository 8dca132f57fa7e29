"""
Saved query models: a named filter over one entity.

A query owns a tree of groups. Each group combines its rules and child groups
with AND or OR; exactly one group per query has no parent (the root). Child
groups point at their parent by id assigned at creation, so the structure is
always a tree.

Architecture:
    Query → QueryGroup (root) → QueryGroup (nested) ...
                              → QueryRule → Property
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String, Text
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


class Query(Base, UUIDMixin, TimestampMixin, AuditMixin, SoftDeleteMixin):
    __tablename__ = "queries"
    __table_args__ = (
        Index("ix_queries_project_id", "project_id"),
        Index("ix_queries_entity_id", "entity_id"),
        {"schema": SCHEMA_NAME},
    )

    project_id = Column(
        PG_UUID(as_uuid=True),
        nullable=False,
        comment="Owning project",
    )

    entity_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.entities.id"),
        nullable=False,
        comment="Entity whose instances this query filters",
    )

    name = Column(String(255), nullable=False, comment="Query name")

    entity = relationship("Entity")

    groups = relationship(
        "QueryGroup",
        back_populates="query",
        cascade="all, delete-orphan",
        order_by="QueryGroup.sort_order",
        doc="All groups of the query, flat; the tree is rebuilt from parent ids",
    )

    def __repr__(self):
        return f"<Query(id={self.id}, entity_id={self.entity_id}, name='{self.name}')>"


class QueryGroup(Base, UUIDMixin, TimestampMixin, AuditMixin):
    __tablename__ = "query_groups"
    __table_args__ = (
        Index("ix_query_groups_query_id", "query_id"),
        Index("ix_query_groups_parent_group_id", "parent_group_id"),
        CheckConstraint("operator IN ('AND', 'OR')", name="ck_query_groups_operator"),
        {"schema": SCHEMA_NAME},
    )

    query_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.queries.id", ondelete="CASCADE"),
        nullable=False,
    )

    parent_group_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.query_groups.id", ondelete="CASCADE"),
        nullable=True,
        comment="Parent group; NULL only for the root group of a query",
    )

    operator = Column(String(3), nullable=False, default="AND", server_default="AND")

    sort_order = Column(Integer, nullable=False, default=0, server_default="0")

    query = relationship("Query", back_populates="groups")

    rules = relationship(
        "QueryRule",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="QueryRule.sort_order",
    )

    def __repr__(self):
        return (
            f"<QueryGroup(id={self.id}, query_id={self.query_id}, "
            f"parent_group_id={self.parent_group_id}, operator='{self.operator}')>"
        )


class QueryRule(Base, UUIDMixin, TimestampMixin, AuditMixin):
    __tablename__ = "query_rules"
    __table_args__ = (
        Index("ix_query_rules_query_group_id", "query_group_id"),
        {"schema": SCHEMA_NAME},
    )

    query_group_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.query_groups.id", ondelete="CASCADE"),
        nullable=False,
    )

    property_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.properties.id"),
        nullable=False,
    )

    operator = Column(String(30), nullable=False)

    value = Column(Text, nullable=True, comment="Literal operand; NULL for unary operators")

    sort_order = Column(Integer, nullable=False, default=0, server_default="0")

    group = relationship("QueryGroup", back_populates="rules")

    def __repr__(self):
        return (
            f"<QueryRule(id={self.id}, property_id={self.property_id}, "
            f"operator='{self.operator}', value={self.value!r})>"
        )
