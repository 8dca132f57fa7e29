from recordbase.dependencies.services import (
    get_actor,
    get_instance_service,
    get_query_service,
    get_schema_service,
)

__all__ = [
    "get_actor",
    "get_schema_service",
    "get_instance_service",
    "get_query_service",
]
