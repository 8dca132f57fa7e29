"""
Saved queries: persistence of the group tree and execution.

The tree is stored flat (``query_groups`` with parent ids, ``query_rules``
per group) and rebuilt into a ``QueryGroupNode`` when loaded. Saving always
replaces the whole tree.
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Sequence
from datetime import datetime

from recordbase.config import settings
from recordbase.db_handlers import (
    EntityDBHandler,
    PropertyDBHandler,
    QueryDBHandler,
    SQLAttributeStore,
)
from recordbase.errors import NotFoundError, QueryEvaluationError
from recordbase.models import Query, QueryGroup, QueryRule
from recordbase.schemas import (
    QueryCreate,
    QueryGroupNode,
    QueryResponse,
    QueryResult,
    QueryRuleNode,
)
from recordbase.services.query_evaluator import (
    AttributeStore,
    build_property_index,
    compile_group,
    evaluate_group,
    fetch_instances,
)
from recordbase.utils.logger import PerformanceLogger, setup_logger

logger = setup_logger("query_service")
perf_logger = PerformanceLogger(logger, threshold_ms=settings.slow_query_threshold_ms)


def flatten_tree(
    root: QueryGroupNode,
) -> tuple[list[dict], list[dict]]:
    """Group and rule rows for ``root``, parents before children, fresh ids."""
    groups: list[dict] = []
    rules: list[dict] = []

    def visit(node: QueryGroupNode, parent_id: uuid.UUID | None, position: int):
        group_id = uuid.uuid4()
        groups.append(
            {
                "id": group_id,
                "parent_group_id": parent_id,
                "operator": node.operator.value,
                "sort_order": position,
            }
        )
        for index, rule in enumerate(node.rules):
            rules.append(
                {
                    "query_group_id": group_id,
                    "property_id": rule.property_id,
                    "operator": rule.operator,
                    "value": rule.value,
                    "sort_order": index,
                }
            )
        for index, child in enumerate(node.groups):
            visit(child, group_id, index)

    visit(root, None, 0)
    return groups, rules


def build_tree(
    groups: Sequence[QueryGroup], rules: Sequence[QueryRule]
) -> QueryGroupNode | None:
    """Rebuild the nested tree from flat rows; None when the query has no root."""
    nodes = {
        group.id: QueryGroupNode(
            id=group.id, operator=group.operator, sort_order=group.sort_order
        )
        for group in groups
    }
    for rule in sorted(rules, key=lambda r: r.sort_order):
        node = nodes.get(rule.query_group_id)
        if node is not None:
            node.rules.append(QueryRuleNode.model_validate(rule))

    root = None
    for group in sorted(groups, key=lambda g: g.sort_order):
        if group.parent_group_id is None:
            if root is None:
                root = nodes[group.id]
            else:
                logger.warning(f"Query {group.query_id} has more than one root group")
        elif group.parent_group_id in nodes:
            nodes[group.parent_group_id].groups.append(nodes[group.id])
    return root


def clamp_page_size(page_size: int | None) -> int:
    return min(page_size or settings.default_page_size, settings.max_page_size)


class QueryService:
    """Create, save, load and execute queries."""

    def __init__(
        self,
        query_handler: QueryDBHandler | None = None,
        entity_handler: EntityDBHandler | None = None,
        property_handler: PropertyDBHandler | None = None,
        store: AttributeStore | None = None,
    ):
        self.query_handler = query_handler or QueryDBHandler()
        self.entity_handler = entity_handler or EntityDBHandler()
        self.property_handler = property_handler or PropertyDBHandler()
        self.store = store or SQLAttributeStore()

    async def _get_query(self, project_id: uuid.UUID, query_id: uuid.UUID) -> Query:
        query = await self.query_handler.get_in_project(project_id, query_id)
        if query is None:
            raise NotFoundError(f"Query {query_id} not found")
        return query

    async def create_query(
        self, project_id: uuid.UUID, data: QueryCreate, actor: str | None = None
    ) -> QueryResponse:
        if await self.entity_handler.get_in_project(project_id, data.entity_id) is None:
            raise NotFoundError(f"Entity {data.entity_id} not found")

        query = await self.query_handler.create(
            {
                "project_id": project_id,
                "entity_id": data.entity_id,
                "name": data.name,
                "created_by": actor,
                "last_modified_by": actor,
            }
        )
        root = QueryGroupNode()
        await self.query_handler.replace_tree(query.id, *flatten_tree(root))
        return await self.load_query(project_id, query.id)

    async def list_queries(self, project_id: uuid.UUID) -> list[Query]:
        return await self.query_handler.list_queries(project_id)

    async def load_query(
        self, project_id: uuid.UUID, query_id: uuid.UUID
    ) -> QueryResponse:
        query = await self._get_query(project_id, query_id)
        groups, rules = await self.query_handler.load_tree_rows(query_id)
        return QueryResponse(
            id=query.id,
            project_id=query.project_id,
            entity_id=query.entity_id,
            name=query.name,
            root=build_tree(groups, rules),
        )

    async def save_tree(
        self,
        project_id: uuid.UUID,
        query_id: uuid.UUID,
        root: QueryGroupNode,
        actor: str | None = None,
    ) -> QueryResponse:
        """Replace the stored tree after checking it against the entity's properties."""
        query = await self._get_query(project_id, query_id)
        properties = await self.property_handler.list_properties(query.entity_id)
        compile_group(root, build_property_index(properties), datetime.now())

        await self.query_handler.replace_tree(query_id, *flatten_tree(root))
        await self.query_handler.update(query, {"last_modified_by": actor})
        return await self.load_query(project_id, query_id)

    async def delete_query(
        self, project_id: uuid.UUID, query_id: uuid.UUID, actor: str | None = None
    ) -> None:
        await self._get_query(project_id, query_id)
        await self.query_handler.soft_delete(query_id, actor=actor)

    async def execute_query(
        self,
        project_id: uuid.UUID,
        query_id: uuid.UUID,
        page: int = 1,
        page_size: int | None = None,
        groups: list[QueryGroupNode] | None = None,
    ) -> QueryResult:
        """Run a saved query, or the unsaved ``groups`` in its place."""
        query = await self._get_query(project_id, query_id)
        if groups is not None:
            root = groups[0] if groups else None
        else:
            root = (await self.load_query(project_id, query_id)).root
        return await self.run(project_id, query.entity_id, root, page, page_size)

    async def run(
        self,
        project_id: uuid.UUID,
        entity_id: uuid.UUID,
        root: QueryGroupNode | None,
        page: int = 1,
        page_size: int | None = None,
    ) -> QueryResult:
        """Evaluate ``root`` against ``entity_id`` and fetch one page."""
        entity = await self.entity_handler.get_in_project(project_id, entity_id)
        if entity is None:
            raise NotFoundError(f"Entity {entity_id} not found")
        if page < 1:
            raise QueryEvaluationError("Page must be 1 or greater")

        page_size = clamp_page_size(page_size)
        properties = await self.property_handler.list_properties(entity_id)

        with perf_logger.measure("execute query"):
            ids = await evaluate_group(
                root, build_property_index(properties), self.store, entity_id
            )
            result = await fetch_instances(
                entity_id,
                ids,
                properties,
                self.store,
                limit=page_size,
                offset=(page - 1) * page_size,
                display_template=entity.display_string,
            )

        return QueryResult(
            data=result.records,
            total=result.total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(result.total / page_size),
        )
