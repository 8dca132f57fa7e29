from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from recordbase.db_handlers.base import BaseDBHandler, check_local_db
from recordbase.models.query import Query, QueryGroup, QueryRule
from recordbase.utils.logger import setup_logger

logger = setup_logger("query_db_handler")


class QueryDBHandler(BaseDBHandler[Query]):
    def __init__(self):
        super().__init__(Query)

    @check_local_db
    async def get_in_project(
        self, project_id: uuid.UUID, query_id: uuid.UUID, *, db: AsyncSession = None
    ) -> Query | None:
        return await self.get_by_attributes(id=query_id, project_id=project_id, db=db)

    @check_local_db
    async def list_queries(
        self, project_id: uuid.UUID, *, db: AsyncSession = None
    ) -> list[Query]:
        return await self.get_multi_by_attributes(
            project_id=project_id, order_by=Query.created_at, db=db
        )

    @check_local_db
    async def load_tree_rows(
        self, query_id: uuid.UUID, *, db: AsyncSession = None
    ) -> tuple[list[QueryGroup], list[QueryRule]]:
        """All groups and rules of a query as flat rows, in sort order."""
        groups = (
            await db.execute(
                select(QueryGroup)
                .where(QueryGroup.query_id == query_id)
                .order_by(QueryGroup.sort_order, QueryGroup.created_at)
            )
        ).scalars().all()
        if not groups:
            return [], []

        rules = (
            await db.execute(
                select(QueryRule)
                .where(QueryRule.query_group_id.in_([g.id for g in groups]))
                .order_by(QueryRule.sort_order, QueryRule.created_at)
            )
        ).scalars().all()
        return list(groups), list(rules)

    @check_local_db
    async def replace_tree(
        self,
        query_id: uuid.UUID,
        groups: list[dict[str, Any]],
        rules: list[dict[str, Any]],
        *,
        db: AsyncSession = None,
    ) -> None:
        """
        Swap a query's whole group tree in one transaction.

        ``groups`` must be ordered parents first; ids are assigned by the
        caller so children can point at their parent.
        """
        # Rules go with their groups through ON DELETE CASCADE
        await db.execute(delete(QueryGroup).where(QueryGroup.query_id == query_id))

        for group in groups:
            db.add(QueryGroup(query_id=query_id, **group))
            # Flush per group so each parent row exists before its children
            await db.flush()
        if rules:
            db.add_all([QueryRule(**rule) for rule in rules])
            await db.flush()
        logger.info(
            f"Saved tree of query {query_id}: {len(groups)} groups, {len(rules)} rules"
        )
