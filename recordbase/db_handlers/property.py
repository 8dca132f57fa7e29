from __future__ import annotations

import uuid
from collections.abc import Iterable

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from recordbase.db_handlers.base import BaseDBHandler, check_local_db, live
from recordbase.models.entity import Entity
from recordbase.models.enums import PropertyType
from recordbase.models.property import Property
from recordbase.utils.logger import setup_logger

logger = setup_logger("property_db_handler")


class PropertyDBHandler(BaseDBHandler[Property]):
    def __init__(self):
        super().__init__(Property)

    @check_local_db
    async def list_properties(
        self, entity_id: uuid.UUID, *, db: AsyncSession = None
    ) -> list[Property]:
        """Live properties of an entity in display order."""
        return await self.get_multi_by_attributes(
            entity_id=entity_id,
            order_by=[Property.sort_order, Property.created_at],
            db=db,
        )

    @check_local_db
    async def list_reference_properties(
        self, entity_ids: Iterable[uuid.UUID], *, db: AsyncSession = None
    ) -> list[Property]:
        """Live entity-reference properties declared on any of ``entity_ids``."""
        entity_ids = list(entity_ids)
        if not entity_ids:
            return []
        stmt = self.select_live().where(
            Property.entity_id.in_(entity_ids),
            Property.property_type == PropertyType.ENTITY.value,
            Property.referenced_entity_id.is_not(None),
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @check_local_db
    async def list_project_reference_properties(
        self, project_id: uuid.UUID, *, db: AsyncSession = None
    ) -> list[Property]:
        """Every live reference property of a project's live entities."""
        stmt = (
            self.select_live()
            .join(Entity, Entity.id == Property.entity_id)
            .where(
                live(Entity),
                Entity.project_id == project_id,
                Property.property_type == PropertyType.ENTITY.value,
                Property.referenced_entity_id.is_not(None),
            )
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @check_local_db
    async def get_for_entity(
        self, entity_id: uuid.UUID, property_id: uuid.UUID, *, db: AsyncSession = None
    ) -> Property | None:
        return await self.get_by_attributes(id=property_id, entity_id=entity_id, db=db)

    @check_local_db
    async def property_name_exists(
        self,
        entity_id: uuid.UUID,
        property_name: str,
        exclude_id: uuid.UUID | None = None,
        *,
        db: AsyncSession = None,
    ) -> bool:
        stmt = select(Property.id).where(
            live(Property),
            Property.entity_id == entity_id,
            Property.property_name == property_name,
        )
        if exclude_id is not None:
            stmt = stmt.where(Property.id != exclude_id)
        result = await db.execute(stmt.limit(1))
        return result.first() is not None

    @check_local_db
    async def next_sort_order(
        self, entity_id: uuid.UUID, *, db: AsyncSession = None
    ) -> int:
        stmt = select(func.max(Property.sort_order)).where(
            live(Property), Property.entity_id == entity_id
        )
        current = (await db.execute(stmt)).scalar()
        return 0 if current is None else current + 1

    @check_local_db
    async def reorder(
        self,
        entity_id: uuid.UUID,
        property_ids: list[uuid.UUID],
        actor: str | None = None,
        *,
        db: AsyncSession = None,
    ) -> list[Property]:
        """Assign sort_order by position in ``property_ids``; unknown ids are ignored."""
        properties = {p.id: p for p in await self.list_properties(entity_id, db=db)}
        for position, property_id in enumerate(property_ids):
            prop = properties.get(property_id)
            if prop is None:
                logger.warning(
                    f"Reorder skipped property {property_id}: not a live property of entity {entity_id}"
                )
                continue
            prop.sort_order = position
            if actor is not None:
                prop.last_modified_by = actor
        await db.flush()
        return sorted(properties.values(), key=lambda p: p.sort_order)
