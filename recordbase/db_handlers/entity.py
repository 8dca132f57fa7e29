from __future__ import annotations

import uuid

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from recordbase.db_handlers.base import BaseDBHandler, check_local_db, live
from recordbase.models.entity import Entity
from recordbase.models.property import Property
from recordbase.utils.logger import setup_logger

logger = setup_logger("entity_db_handler")


class EntityDBHandler(BaseDBHandler[Entity]):
    def __init__(self):
        super().__init__(Entity)

    @check_local_db
    async def list_entities(
        self, project_id: uuid.UUID, *, db: AsyncSession = None
    ) -> list[Entity]:
        """Live entities of a project, oldest first."""
        return await self.get_multi_by_attributes(
            project_id=project_id,
            order_by=[Entity.created_at, Entity.name],
            db=db,
        )

    @check_local_db
    async def get_in_project(
        self, project_id: uuid.UUID, entity_id: uuid.UUID, *, db: AsyncSession = None
    ) -> Entity | None:
        return await self.get_by_attributes(id=entity_id, project_id=project_id, db=db)

    @check_local_db
    async def name_exists(
        self,
        project_id: uuid.UUID,
        name: str,
        exclude_id: uuid.UUID | None = None,
        *,
        db: AsyncSession = None,
    ) -> bool:
        """Case-insensitive check against the live entity names of a project."""
        stmt = select(Entity.id).where(
            live(Entity),
            Entity.project_id == project_id,
            func.lower(Entity.name) == name.strip().lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Entity.id != exclude_id)
        result = await db.execute(stmt.limit(1))
        return result.first() is not None

    @check_local_db
    async def soft_delete_with_properties(
        self,
        entity_id: uuid.UUID,
        actor: str | None = None,
        *,
        db: AsyncSession = None,
    ) -> bool:
        """Soft-delete an entity together with its properties."""
        deleted = await self.soft_delete(entity_id, actor=actor, db=db)
        if not deleted:
            return False

        await db.execute(
            update(Property)
            .where(Property.entity_id == entity_id, live(Property))
            .values(is_deleted=True, last_modified_by=actor)
        )
        logger.info(f"Soft-deleted entity {entity_id} and its properties")
        return True
