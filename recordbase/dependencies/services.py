from fastapi import Header

from recordbase.services.instance_service import InstanceService
from recordbase.services.query_service import QueryService
from recordbase.services.schema_service import SchemaService


def get_schema_service() -> SchemaService:
    return SchemaService()


def get_instance_service() -> InstanceService:
    return InstanceService()


def get_query_service() -> QueryService:
    return QueryService()


async def get_actor(
    x_actor_id: str | None = Header(
        default=None, description="Identifier recorded in the audit columns"
    ),
) -> str | None:
    """
    Audit identity of the caller.

    There is no authentication; whoever fronts the service passes the
    acting user's id in ``X-Actor-Id``.
    """
    return x_actor_id.strip() if x_actor_id and x_actor_id.strip() else None
