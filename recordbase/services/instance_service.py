"""
Instance write path and listing.

Incoming values are validated against the entity's live properties; every
problem is collected and reported together. Values are encoded with the value
codec before they are stored, one row per scalar value or list element.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from recordbase.config import settings
from recordbase.db_handlers import (
    EntityDBHandler,
    EntityInstanceDBHandler,
    PropertyDBHandler,
    PropertyInstanceDBHandler,
    SQLAttributeStore,
)
from recordbase.errors import InstanceValidationError, NotFoundError
from recordbase.models import Entity, EntityInstance, Property
from recordbase.schemas import HydratedInstance, InstanceListResponse
from recordbase.services.query_evaluator import ALL, fetch_instances, hydrate_instance
from recordbase.services.value_codec import (
    REQUIRED_MESSAGE,
    cast_value,
    format_value,
    validate_value,
)
from recordbase.utils.logger import log_performance, setup_logger

logger = setup_logger("instance_service")


def validate_instance_values(
    values: Mapping[str, Any],
    properties: Iterable[Any],
    require_all: bool = True,
) -> dict[str, str]:
    """
    Field errors for ``values`` keyed by property machine name.

    Unknown keys are reported as such. With ``require_all`` a required
    property that is absent from ``values`` is an error too; partial updates
    pass False and only check what they send.
    """
    property_map = {prop.property_name: prop for prop in properties}
    errors: dict[str, str] = {}

    for name, value in values.items():
        prop = property_map.get(name)
        if prop is None:
            errors[name] = f"Unknown property: {name}"
            continue
        result = validate_value(value, prop.property_type, prop.is_required, prop.is_list)
        if not result.valid:
            errors[name] = result.error

    if require_all:
        for name, prop in property_map.items():
            if prop.is_required and name not in values:
                errors[name] = REQUIRED_MESSAGE

    return errors


def encode_instance_values(
    values: Mapping[str, Any], properties: Iterable[Any]
) -> dict[uuid.UUID, list[str]]:
    """Stored rows per property id; values that encode to None are skipped."""
    property_map = {prop.property_name: prop for prop in properties}
    rows: dict[uuid.UUID, list[str]] = {}

    for name, value in values.items():
        prop = property_map[name]
        items = value if prop.is_list and isinstance(value, (list, tuple)) else [value]
        encoded = [format_value(item, prop.property_type) for item in items]
        rows[prop.id] = [item for item in encoded if item is not None]

    return rows


def with_defaults(values: Mapping[str, Any], properties: Iterable[Any]) -> dict[str, Any]:
    """Fill properties absent from ``values`` with their typed default value."""
    filled = dict(values)
    for prop in properties:
        if prop.property_name in filled or prop.default_value in (None, ""):
            continue
        default = cast_value(prop.default_value, prop.property_type)
        if default is not None:
            filled[prop.property_name] = [default] if prop.is_list else default
    return filled


class InstanceService:
    """Create, list, update and delete entity instances."""

    def __init__(
        self,
        entity_handler: EntityDBHandler | None = None,
        property_handler: PropertyDBHandler | None = None,
        instance_handler: EntityInstanceDBHandler | None = None,
        value_handler: PropertyInstanceDBHandler | None = None,
    ):
        self.entity_handler = entity_handler or EntityDBHandler()
        self.property_handler = property_handler or PropertyDBHandler()
        self.instance_handler = instance_handler or EntityInstanceDBHandler()
        self.value_handler = value_handler or PropertyInstanceDBHandler()
        self.store = SQLAttributeStore(self.instance_handler, self.value_handler)

    async def _load_schema(
        self, project_id: uuid.UUID, entity_id: uuid.UUID
    ) -> tuple[Entity, list[Property]]:
        entity = await self.entity_handler.get_in_project(project_id, entity_id)
        if entity is None:
            raise NotFoundError(f"Entity {entity_id} not found")
        properties = await self.property_handler.list_properties(entity_id)
        return entity, properties

    async def create_instance(
        self,
        project_id: uuid.UUID,
        entity_id: uuid.UUID,
        values: Mapping[str, Any],
        actor: str | None = None,
    ) -> EntityInstance:
        _, properties = await self._load_schema(project_id, entity_id)

        values = with_defaults(values, properties)
        errors = validate_instance_values(values, properties)
        if errors:
            raise InstanceValidationError(errors)

        instance = await self.instance_handler.create(
            {"entity_id": entity_id, "created_by": actor, "last_modified_by": actor}
        )
        rows = encode_instance_values(values, properties)
        try:
            await self.value_handler.upsert_property_instances(instance.id, rows, actor)
        except Exception:
            logger.error(
                f"Storing values of instance {instance.id} failed; removing the instance",
                exc_info=True,
            )
            await self.instance_handler.remove(instance.id)
            raise

        logger.info(f"Created instance {instance.id} of entity {entity_id}")
        return instance

    async def get_instance(
        self, project_id: uuid.UUID, entity_id: uuid.UUID, instance_id: uuid.UUID
    ) -> HydratedInstance:
        entity, properties = await self._load_schema(project_id, entity_id)
        rows, _ = await self.instance_handler.fetch_instances_by_ids(
            entity_id, {instance_id}, limit=1
        )
        if not rows:
            raise NotFoundError(f"Instance {instance_id} not found")
        return hydrate_instance(rows[0], properties, entity.display_string)

    async def list_instances(
        self,
        project_id: uuid.UUID,
        entity_id: uuid.UUID,
        page: int = 1,
        page_size: int | None = None,
    ) -> InstanceListResponse:
        entity, properties = await self._load_schema(project_id, entity_id)
        page_size = min(page_size or settings.default_page_size, settings.max_page_size)
        with log_performance(logger, f"list instances of entity {entity_id}"):
            result = await fetch_instances(
                entity_id,
                ALL,
                properties,
                self.store,
                limit=page_size,
                offset=(page - 1) * page_size,
                display_template=entity.display_string,
            )
        return InstanceListResponse(
            instances=result.records, total=result.total, page=page, page_size=page_size
        )

    async def update_instance(
        self,
        project_id: uuid.UUID,
        entity_id: uuid.UUID,
        instance_id: uuid.UUID,
        values: Mapping[str, Any],
        actor: str | None = None,
    ) -> HydratedInstance:
        """Replace the values of the properties present in ``values``."""
        _, properties = await self._load_schema(project_id, entity_id)
        instance = await self.instance_handler.get_in_entity(entity_id, instance_id)
        if instance is None:
            raise NotFoundError(f"Instance {instance_id} not found")

        errors = validate_instance_values(values, properties, require_all=False)
        if errors:
            raise InstanceValidationError(errors)

        rows = encode_instance_values(values, properties)
        await self.value_handler.upsert_property_instances(instance_id, rows, actor)
        await self.instance_handler.update(instance, {"last_modified_by": actor})
        return await self.get_instance(project_id, entity_id, instance_id)

    async def delete_instance(
        self,
        project_id: uuid.UUID,
        entity_id: uuid.UUID,
        instance_id: uuid.UUID,
        actor: str | None = None,
    ) -> None:
        await self._load_schema(project_id, entity_id)
        instance = await self.instance_handler.get_in_entity(entity_id, instance_id)
        if instance is None:
            raise NotFoundError(f"Instance {instance_id} not found")
        await self.instance_handler.soft_delete(instance_id, actor=actor)
        await self.value_handler.soft_delete_property_instances(instance_id, actor=actor)
        logger.info(f"Soft-deleted instance {instance_id} of entity {entity_id}")
