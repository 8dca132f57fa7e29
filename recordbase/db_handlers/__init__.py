from recordbase.db_handlers.attribute_store import SQLAttributeStore
from recordbase.db_handlers.base import BaseDBHandler, check_local_db, live
from recordbase.db_handlers.entity import EntityDBHandler
from recordbase.db_handlers.entity_instance import EntityInstanceDBHandler
from recordbase.db_handlers.property import PropertyDBHandler
from recordbase.db_handlers.property_instance import PropertyInstanceDBHandler
from recordbase.db_handlers.query import QueryDBHandler

__all__ = [
    "BaseDBHandler",
    "check_local_db",
    "live",
    "EntityDBHandler",
    "PropertyDBHandler",
    "EntityInstanceDBHandler",
    "PropertyInstanceDBHandler",
    "QueryDBHandler",
    "SQLAttributeStore",
]
