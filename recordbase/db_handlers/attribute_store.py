from __future__ import annotations

import uuid
from typing import Any

from recordbase.db_handlers.entity_instance import EntityInstanceDBHandler
from recordbase.db_handlers.property_instance import PropertyInstanceDBHandler
from recordbase.models.enums import QueryOperator
from recordbase.schemas import InstanceRow
from recordbase.services.query_evaluator import ALL, InstanceIds


class SQLAttributeStore:
    """
    The query evaluator's store, backed by the db handlers.

    Every call opens its own session, so sibling rules can be evaluated
    concurrently.
    """

    def __init__(
        self,
        instance_handler: EntityInstanceDBHandler | None = None,
        value_handler: PropertyInstanceDBHandler | None = None,
    ):
        self.instance_handler = instance_handler or EntityInstanceDBHandler()
        self.value_handler = value_handler or PropertyInstanceDBHandler()

    async def query_property_instances(
        self, entity_id: uuid.UUID, prop: Any, operator: QueryOperator, literal: Any
    ) -> set[uuid.UUID]:
        return await self.value_handler.match_instance_ids(
            entity_id, prop.id, prop.property_type, operator, literal
        )

    async def fetch_instances_by_ids(
        self, entity_id: uuid.UUID, ids: InstanceIds, limit: int, offset: int
    ) -> tuple[list[InstanceRow], int]:
        return await self.instance_handler.fetch_instances_by_ids(
            entity_id, None if ids is ALL else ids, limit, offset
        )
