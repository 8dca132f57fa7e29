"""
HTTP API Routes - REST endpoints for entities, properties, instances and queries.

All routes are scoped to a project. Validation problems come back as 400 with
field errors, missing rows as 404, rejected query trees as 400 with a detail
message.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status

from recordbase.config import settings
from recordbase.dependencies import (
    get_actor,
    get_instance_service,
    get_query_service,
    get_schema_service,
)
from recordbase.errors import (
    InstanceValidationError,
    NotFoundError,
    QueryEvaluationError,
    SchemaValidationError,
)
from recordbase.schemas import (
    DraftQueryRequest,
    EntityCreate,
    EntityResponse,
    EntityUpdate,
    ExecuteQueryRequest,
    HydratedInstance,
    InstanceListResponse,
    InstanceWrite,
    MessageResponse,
    PropertyCreate,
    PropertyResponse,
    PropertyUpdate,
    QueryCreate,
    QueryGroupNode,
    QueryResponse,
    QueryResult,
    ReorderPropertiesRequest,
)
from recordbase.services.instance_service import InstanceService
from recordbase.services.query_service import QueryService
from recordbase.services.schema_service import SchemaService
from recordbase.utils.logger import setup_logger
from recordbase.utils.retry_utils import is_retryable_db_error

logger = setup_logger("api")

router = APIRouter(prefix="/api")


def to_http_exception(e: Exception, operation: str) -> HTTPException:
    """Map a service error onto the response the client should see."""
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, SchemaValidationError):
        return HTTPException(status_code=400, detail={"errors": e.to_dict()})
    if isinstance(e, InstanceValidationError):
        return HTTPException(status_code=400, detail={"errors": e.errors})
    if isinstance(e, QueryEvaluationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if is_retryable_db_error(e):
        logger.error(f"Failed to {operation}: database unavailable ({e})")
        return HTTPException(status_code=503, detail=settings.db_unavailable_hint)

    logger.error(f"Failed to {operation}: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Failed to {operation}")


@router.get("/")
async def read_root():
    """API health check endpoint."""
    return {"message": "recordbase API is running!"}


# ===== Entities =====


@router.get("/projects/{project_id}/entities", response_model=list[EntityResponse])
async def list_entities(
    project_id: uuid.UUID,
    schema_service: SchemaService = Depends(get_schema_service),
):
    try:
        return await schema_service.list_entities(project_id)
    except Exception as e:
        raise to_http_exception(e, "list entities") from e


@router.post(
    "/projects/{project_id}/entities",
    response_model=EntityResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_entity(
    project_id: uuid.UUID,
    data: EntityCreate,
    actor: str | None = Depends(get_actor),
    schema_service: SchemaService = Depends(get_schema_service),
):
    try:
        return await schema_service.create_entity(project_id, data, actor)
    except Exception as e:
        raise to_http_exception(e, "create entity") from e


@router.get(
    "/projects/{project_id}/entities/{entity_id}", response_model=EntityResponse
)
async def get_entity(
    project_id: uuid.UUID,
    entity_id: uuid.UUID,
    schema_service: SchemaService = Depends(get_schema_service),
):
    try:
        return await schema_service.get_entity(project_id, entity_id)
    except Exception as e:
        raise to_http_exception(e, "get entity") from e


@router.put(
    "/projects/{project_id}/entities/{entity_id}", response_model=EntityResponse
)
async def update_entity(
    project_id: uuid.UUID,
    entity_id: uuid.UUID,
    data: EntityUpdate,
    actor: str | None = Depends(get_actor),
    schema_service: SchemaService = Depends(get_schema_service),
):
    try:
        return await schema_service.update_entity(project_id, entity_id, data, actor)
    except Exception as e:
        raise to_http_exception(e, "update entity") from e


@router.delete(
    "/projects/{project_id}/entities/{entity_id}", response_model=MessageResponse
)
async def delete_entity(
    project_id: uuid.UUID,
    entity_id: uuid.UUID,
    actor: str | None = Depends(get_actor),
    schema_service: SchemaService = Depends(get_schema_service),
):
    """Soft-delete an entity and its properties."""
    try:
        await schema_service.delete_entity(project_id, entity_id, actor)
        return MessageResponse(message="Entity deleted")
    except Exception as e:
        raise to_http_exception(e, "delete entity") from e


# ===== Properties =====


@router.get(
    "/projects/{project_id}/entities/{entity_id}/properties",
    response_model=list[PropertyResponse],
)
async def list_properties(
    project_id: uuid.UUID,
    entity_id: uuid.UUID,
    schema_service: SchemaService = Depends(get_schema_service),
):
    try:
        return await schema_service.list_properties(project_id, entity_id)
    except Exception as e:
        raise to_http_exception(e, "list properties") from e


@router.post(
    "/projects/{project_id}/entities/{entity_id}/properties",
    response_model=PropertyResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_property(
    project_id: uuid.UUID,
    entity_id: uuid.UUID,
    data: PropertyCreate,
    actor: str | None = Depends(get_actor),
    schema_service: SchemaService = Depends(get_schema_service),
):
    """
    Add a property to an entity.

    Entity-reference properties are rejected when they would close a cycle in
    the project's reference graph.
    """
    try:
        return await schema_service.create_property(project_id, entity_id, data, actor)
    except Exception as e:
        raise to_http_exception(e, "create property") from e


# Declared before the {property_id} routes so "reorder" is not taken for an id
@router.post(
    "/projects/{project_id}/entities/{entity_id}/properties/reorder",
    response_model=list[PropertyResponse],
)
async def reorder_properties(
    project_id: uuid.UUID,
    entity_id: uuid.UUID,
    data: ReorderPropertiesRequest,
    actor: str | None = Depends(get_actor),
    schema_service: SchemaService = Depends(get_schema_service),
):
    try:
        return await schema_service.reorder_properties(
            project_id, entity_id, data.property_ids, actor
        )
    except Exception as e:
        raise to_http_exception(e, "reorder properties") from e


@router.put(
    "/projects/{project_id}/entities/{entity_id}/properties/{property_id}",
    response_model=PropertyResponse,
)
async def update_property(
    project_id: uuid.UUID,
    entity_id: uuid.UUID,
    property_id: uuid.UUID,
    data: PropertyUpdate,
    actor: str | None = Depends(get_actor),
    schema_service: SchemaService = Depends(get_schema_service),
):
    try:
        return await schema_service.update_property(
            project_id, entity_id, property_id, data, actor
        )
    except Exception as e:
        raise to_http_exception(e, "update property") from e


@router.delete(
    "/projects/{project_id}/entities/{entity_id}/properties/{property_id}",
    response_model=MessageResponse,
)
async def delete_property(
    project_id: uuid.UUID,
    entity_id: uuid.UUID,
    property_id: uuid.UUID,
    actor: str | None = Depends(get_actor),
    schema_service: SchemaService = Depends(get_schema_service),
):
    try:
        await schema_service.delete_property(project_id, entity_id, property_id, actor)
        return MessageResponse(message="Property deleted")
    except Exception as e:
        raise to_http_exception(e, "delete property") from e


# ===== Instances =====


@router.get(
    "/projects/{project_id}/entities/{entity_id}/instances",
    response_model=InstanceListResponse,
)
async def list_instances(
    project_id: uuid.UUID,
    entity_id: uuid.UUID,
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, ge=1),
    instance_service: InstanceService = Depends(get_instance_service),
):
    """Instances newest first, each with its resolved display string."""
    try:
        return await instance_service.list_instances(
            project_id, entity_id, page, page_size
        )
    except Exception as e:
        raise to_http_exception(e, "list instances") from e


@router.post(
    "/projects/{project_id}/entities/{entity_id}/instances",
    response_model=HydratedInstance,
    status_code=status.HTTP_201_CREATED,
)
async def create_instance(
    project_id: uuid.UUID,
    entity_id: uuid.UUID,
    data: InstanceWrite,
    actor: str | None = Depends(get_actor),
    instance_service: InstanceService = Depends(get_instance_service),
):
    try:
        instance = await instance_service.create_instance(
            project_id, entity_id, data.properties, actor
        )
        return await instance_service.get_instance(project_id, entity_id, instance.id)
    except Exception as e:
        raise to_http_exception(e, "create instance") from e


@router.get(
    "/projects/{project_id}/entities/{entity_id}/instances/{instance_id}",
    response_model=HydratedInstance,
)
async def get_instance(
    project_id: uuid.UUID,
    entity_id: uuid.UUID,
    instance_id: uuid.UUID,
    instance_service: InstanceService = Depends(get_instance_service),
):
    try:
        return await instance_service.get_instance(project_id, entity_id, instance_id)
    except Exception as e:
        raise to_http_exception(e, "get instance") from e


@router.put(
    "/projects/{project_id}/entities/{entity_id}/instances/{instance_id}",
    response_model=HydratedInstance,
)
async def update_instance(
    project_id: uuid.UUID,
    entity_id: uuid.UUID,
    instance_id: uuid.UUID,
    data: InstanceWrite,
    actor: str | None = Depends(get_actor),
    instance_service: InstanceService = Depends(get_instance_service),
):
    try:
        return await instance_service.update_instance(
            project_id, entity_id, instance_id, data.properties, actor
        )
    except Exception as e:
        raise to_http_exception(e, "update instance") from e


@router.delete(
    "/projects/{project_id}/entities/{entity_id}/instances/{instance_id}",
    response_model=MessageResponse,
)
async def delete_instance(
    project_id: uuid.UUID,
    entity_id: uuid.UUID,
    instance_id: uuid.UUID,
    actor: str | None = Depends(get_actor),
    instance_service: InstanceService = Depends(get_instance_service),
):
    try:
        await instance_service.delete_instance(project_id, entity_id, instance_id, actor)
        return MessageResponse(message="Instance deleted")
    except Exception as e:
        raise to_http_exception(e, "delete instance") from e


# ===== Queries =====


@router.get("/projects/{project_id}/queries", response_model=list[QueryResponse])
async def list_queries(
    project_id: uuid.UUID,
    query_service: QueryService = Depends(get_query_service),
):
    """Saved queries of a project, without their trees."""
    try:
        return await query_service.list_queries(project_id)
    except Exception as e:
        raise to_http_exception(e, "list queries") from e


@router.post(
    "/projects/{project_id}/queries",
    response_model=QueryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_query(
    project_id: uuid.UUID,
    data: QueryCreate,
    actor: str | None = Depends(get_actor),
    query_service: QueryService = Depends(get_query_service),
):
    try:
        return await query_service.create_query(project_id, data, actor)
    except Exception as e:
        raise to_http_exception(e, "create query") from e


@router.post("/projects/{project_id}/queries/test", response_model=QueryResult)
async def run_draft_query(
    project_id: uuid.UUID,
    data: DraftQueryRequest,
    query_service: QueryService = Depends(get_query_service),
):
    """Run an unsaved tree; the first group in ``groups`` is the root."""
    try:
        root = data.groups[0] if data.groups else None
        return await query_service.run(
            project_id, data.entity_id, root, data.page, data.page_size
        )
    except Exception as e:
        raise to_http_exception(e, "test query") from e


@router.get("/projects/{project_id}/queries/{query_id}", response_model=QueryResponse)
async def get_query(
    project_id: uuid.UUID,
    query_id: uuid.UUID,
    query_service: QueryService = Depends(get_query_service),
):
    try:
        return await query_service.load_query(project_id, query_id)
    except Exception as e:
        raise to_http_exception(e, "load query") from e


@router.put(
    "/projects/{project_id}/queries/{query_id}/tree", response_model=QueryResponse
)
async def save_query_tree(
    project_id: uuid.UUID,
    query_id: uuid.UUID,
    root: QueryGroupNode,
    actor: str | None = Depends(get_actor),
    query_service: QueryService = Depends(get_query_service),
):
    """Replace the whole group tree of a saved query."""
    try:
        return await query_service.save_tree(project_id, query_id, root, actor)
    except Exception as e:
        raise to_http_exception(e, "save query") from e


@router.delete(
    "/projects/{project_id}/queries/{query_id}", response_model=MessageResponse
)
async def delete_query(
    project_id: uuid.UUID,
    query_id: uuid.UUID,
    actor: str | None = Depends(get_actor),
    query_service: QueryService = Depends(get_query_service),
):
    try:
        await query_service.delete_query(project_id, query_id, actor)
        return MessageResponse(message="Query deleted")
    except Exception as e:
        raise to_http_exception(e, "delete query") from e


@router.post(
    "/projects/{project_id}/queries/{query_id}/execute", response_model=QueryResult
)
async def execute_query(
    project_id: uuid.UUID,
    query_id: uuid.UUID,
    data: ExecuteQueryRequest | None = None,
    query_service: QueryService = Depends(get_query_service),
):
    """Run a saved query, or an unsaved ``groups`` override in its place."""
    data = data or ExecuteQueryRequest()
    try:
        return await query_service.execute_query(
            project_id, query_id, data.page, data.page_size, data.groups
        )
    except Exception as e:
        raise to_http_exception(e, "execute query") from e
