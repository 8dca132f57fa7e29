"""
Database models for the recordbase entity/attribute-value store.

Architecture: Entity → Property (schema), EntityInstance → PropertyInstance
(data), Query → QueryGroup → QueryRule (saved filters).
"""

from recordbase.models.entity import Entity
from recordbase.models.entity_instance import EntityInstance
from recordbase.models.enums import GroupOperator, PropertyType, QueryOperator
from recordbase.models.property import Property
from recordbase.models.property_instance import PropertyInstance
from recordbase.models.query import Query, QueryGroup, QueryRule

__all__ = [
    # Schema models
    "Entity",
    "Property",
    # Data models
    "EntityInstance",
    "PropertyInstance",
    # Saved query models
    "Query",
    "QueryGroup",
    "QueryRule",
    # Enumerations
    "PropertyType",
    "GroupOperator",
    "QueryOperator",
]
