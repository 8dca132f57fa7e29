from __future__ import annotations

import uuid
from collections.abc import Collection

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from recordbase.db_handlers.base import BaseDBHandler, check_local_db, live
from recordbase.db_handlers.property_instance import PropertyInstanceDBHandler
from recordbase.models.entity_instance import EntityInstance
from recordbase.schemas import InstanceRow, StoredValue
from recordbase.utils.logger import setup_logger

logger = setup_logger("entity_instance_db_handler")


class EntityInstanceDBHandler(BaseDBHandler[EntityInstance]):
    def __init__(self):
        super().__init__(EntityInstance)
        self.values = PropertyInstanceDBHandler()

    @check_local_db
    async def get_in_entity(
        self, entity_id: uuid.UUID, instance_id: uuid.UUID, *, db: AsyncSession = None
    ) -> EntityInstance | None:
        return await self.get_by_attributes(id=instance_id, entity_id=entity_id, db=db)

    @check_local_db
    async def fetch_instances_by_ids(
        self,
        entity_id: uuid.UUID,
        ids: Collection[uuid.UUID] | None,
        limit: int,
        offset: int = 0,
        *,
        db: AsyncSession = None,
    ) -> tuple[list[InstanceRow], int]:
        """
        One page of live instances with their live values, newest first.

        ``ids=None`` means every instance of the entity; an empty collection
        matches nothing. Returns the page and the total number of matches.
        """
        conditions = [live(EntityInstance), EntityInstance.entity_id == entity_id]
        if ids is not None:
            if not ids:
                return [], 0
            conditions.append(EntityInstance.id.in_(list(ids)))

        total = (
            await db.execute(select(func.count(EntityInstance.id)).where(*conditions))
        ).scalar_one()

        page_stmt = (
            select(EntityInstance)
            .where(*conditions)
            .order_by(EntityInstance.created_at.desc(), EntityInstance.id.desc())
            .offset(offset)
            .limit(limit)
        )
        instances = list((await db.execute(page_stmt)).scalars().all())

        value_rows = await self.values.list_for_instances(
            [instance.id for instance in instances], db=db
        )
        values_by_instance: dict[uuid.UUID, list[StoredValue]] = {}
        for row in value_rows:
            values_by_instance.setdefault(row.entity_instance_id, []).append(
                StoredValue.model_validate(row)
            )

        rows = [
            InstanceRow(
                id=instance.id,
                entity_id=instance.entity_id,
                created_at=instance.created_at,
                updated_at=instance.updated_at,
                created_by=instance.created_by,
                last_modified_by=instance.last_modified_by,
                values=values_by_instance.get(instance.id, []),
            )
            for instance in instances
        ]
        return rows, total
