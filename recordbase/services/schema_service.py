"""
Schema write path: entities and their property definitions.

Every mutation is checked before it is persisted: names must be unique among
live rows, default values must parse as their property type, and entity
reference properties must keep the project's reference graph acyclic. The
cycle check reads the whole graph, so reference edits are serialized per
project.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from typing import Any

from recordbase.db_handlers import EntityDBHandler, PropertyDBHandler
from recordbase.errors import CircularReferenceError, NotFoundError, SchemaValidationError
from recordbase.models import Entity, Property, PropertyType
from recordbase.schemas import EntityCreate, EntityUpdate, PropertyCreate, PropertyUpdate
from recordbase.services.cycle_detector import detect_cycle
from recordbase.services.display_string import validate_display_string
from recordbase.services.value_codec import validate_stored_value
from recordbase.utils.logger import setup_logger

logger = setup_logger("schema_service")

_project_locks: defaultdict[uuid.UUID, asyncio.Lock] = defaultdict(asyncio.Lock)


def project_lock(project_id: uuid.UUID) -> asyncio.Lock:
    """The lock serializing reference-graph edits of one project."""
    return _project_locks[project_id]


class SchemaService:
    """Create, update and soft-delete entities and properties."""

    def __init__(
        self,
        entity_handler: EntityDBHandler | None = None,
        property_handler: PropertyDBHandler | None = None,
    ):
        self.entity_handler = entity_handler or EntityDBHandler()
        self.property_handler = property_handler or PropertyDBHandler()

    # --- Entities ---------------------------------------------------------

    async def list_entities(self, project_id: uuid.UUID) -> list[Entity]:
        return await self.entity_handler.list_entities(project_id)

    async def get_entity(self, project_id: uuid.UUID, entity_id: uuid.UUID) -> Entity:
        entity = await self.entity_handler.get_in_project(project_id, entity_id)
        if entity is None:
            raise NotFoundError(f"Entity {entity_id} not found")
        return entity

    async def create_entity(
        self, project_id: uuid.UUID, data: EntityCreate, actor: str | None = None
    ) -> Entity:
        name = data.name.strip()
        if await self.entity_handler.name_exists(project_id, name):
            raise SchemaValidationError("name", "An entity with this name already exists")

        entity = await self.entity_handler.create(
            {
                "project_id": project_id,
                "name": name,
                "display_string": data.display_string,
                "created_by": actor,
                "last_modified_by": actor,
            }
        )
        logger.info(f"Created entity '{name}' ({entity.id}) in project {project_id}")
        return entity

    async def update_entity(
        self,
        project_id: uuid.UUID,
        entity_id: uuid.UUID,
        data: EntityUpdate,
        actor: str | None = None,
    ) -> Entity:
        entity = await self.get_entity(project_id, entity_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        if "name" in changes:
            changes["name"] = changes["name"].strip()
            if await self.entity_handler.name_exists(
                project_id, changes["name"], exclude_id=entity_id
            ):
                raise SchemaValidationError(
                    "name", "An entity with this name already exists"
                )

        if "display_string" in changes:
            properties = await self.property_handler.list_properties(entity_id)
            missing = validate_display_string(changes["display_string"], properties)
            if missing:
                logger.warning(
                    f"Display string of entity {entity_id} references unknown properties: {missing}"
                )

        changes["last_modified_by"] = actor
        return await self.entity_handler.update(entity, changes)

    async def delete_entity(
        self, project_id: uuid.UUID, entity_id: uuid.UUID, actor: str | None = None
    ) -> None:
        await self.get_entity(project_id, entity_id)
        await self.entity_handler.soft_delete_with_properties(entity_id, actor)

    # --- Properties -------------------------------------------------------

    async def list_properties(
        self, project_id: uuid.UUID, entity_id: uuid.UUID
    ) -> list[Property]:
        await self.get_entity(project_id, entity_id)
        return await self.property_handler.list_properties(entity_id)

    async def _get_property(
        self, project_id: uuid.UUID, entity_id: uuid.UUID, property_id: uuid.UUID
    ) -> Property:
        await self.get_entity(project_id, entity_id)
        prop = await self.property_handler.get_for_entity(entity_id, property_id)
        if prop is None:
            raise NotFoundError(f"Property {property_id} not found")
        return prop

    async def _check_definition(
        self,
        project_id: uuid.UUID,
        entity_id: uuid.UUID,
        fields: dict[str, Any],
        property_id: uuid.UUID | None = None,
    ) -> None:
        """Validate a full property definition; raises on the first problem."""
        property_type = PropertyType(fields["property_type"])

        if not fields.get("property_name"):
            raise SchemaValidationError("property_name", "Property name is required")
        if await self.property_handler.property_name_exists(
            entity_id, fields["property_name"], exclude_id=property_id
        ):
            raise SchemaValidationError(
                "property_name", "A property with this name already exists"
            )

        if not validate_stored_value(fields.get("default_value"), property_type):
            raise SchemaValidationError(
                "default_value", f"Default value is not a valid {property_type.value}"
            )

        if property_type != PropertyType.ENTITY:
            return

        target_id = fields.get("referenced_entity_id")
        if target_id is None:
            raise SchemaValidationError(
                "referenced_entity_id",
                "Entity reference properties require a referenced entity",
            )
        if await self.entity_handler.get_in_project(project_id, target_id) is None:
            raise SchemaValidationError(
                "referenced_entity_id", "Referenced entity does not exist"
            )

        entities = await self.entity_handler.list_entities(project_id)
        references = await self.property_handler.list_reference_properties(
            [e.id for e in entities]
        )
        if detect_cycle(
            entities,
            references,
            entity_id,
            target_id,
            exclude_property_id=property_id,
        ):
            logger.info(
                f"Rejected reference {entity_id} -> {target_id}: would create a cycle"
            )
            raise CircularReferenceError()

    async def create_property(
        self,
        project_id: uuid.UUID,
        entity_id: uuid.UUID,
        data: PropertyCreate,
        actor: str | None = None,
    ) -> Property:
        await self.get_entity(project_id, entity_id)
        fields = data.model_dump()
        if fields["property_type"] != PropertyType.ENTITY:
            fields["referenced_entity_id"] = None
        fields["property_type"] = PropertyType(fields["property_type"]).value

        async with project_lock(project_id):
            await self._check_definition(project_id, entity_id, fields)
            if fields.get("sort_order") is None:
                fields["sort_order"] = await self.property_handler.next_sort_order(
                    entity_id
                )
            prop = await self.property_handler.create(
                {
                    **fields,
                    "entity_id": entity_id,
                    "created_by": actor,
                    "last_modified_by": actor,
                }
            )

        logger.info(
            f"Created {prop.property_type} property '{prop.property_name}' on entity {entity_id}"
        )
        return prop

    async def update_property(
        self,
        project_id: uuid.UUID,
        entity_id: uuid.UUID,
        property_id: uuid.UUID,
        data: PropertyUpdate,
        actor: str | None = None,
    ) -> Property:
        prop = await self._get_property(project_id, entity_id, property_id)
        changes = data.model_dump(exclude_unset=True)
        # Only these two may be cleared explicitly with null
        changes = {
            k: v
            for k, v in changes.items()
            if v is not None or k in ("default_value", "referenced_entity_id")
        }
        if "property_type" in changes:
            changes["property_type"] = PropertyType(changes["property_type"]).value

        merged = {
            "property_type": prop.property_type,
            "property_name": prop.property_name,
            "default_value": prop.default_value,
            "referenced_entity_id": prop.referenced_entity_id,
            **changes,
        }
        if merged["property_type"] != PropertyType.ENTITY.value:
            merged["referenced_entity_id"] = None
            if prop.referenced_entity_id is not None:
                changes["referenced_entity_id"] = None

        async with project_lock(project_id):
            await self._check_definition(project_id, entity_id, merged, property_id)
            changes["last_modified_by"] = actor
            return await self.property_handler.update(prop, changes)

    async def delete_property(
        self,
        project_id: uuid.UUID,
        entity_id: uuid.UUID,
        property_id: uuid.UUID,
        actor: str | None = None,
    ) -> None:
        await self._get_property(project_id, entity_id, property_id)
        await self.property_handler.soft_delete(property_id, actor=actor)
        logger.info(f"Soft-deleted property {property_id} of entity {entity_id}")

    async def reorder_properties(
        self,
        project_id: uuid.UUID,
        entity_id: uuid.UUID,
        property_ids: list[uuid.UUID],
        actor: str | None = None,
    ) -> list[Property]:
        await self.get_entity(project_id, entity_id)
        return await self.property_handler.reorder(entity_id, property_ids, actor)
