"""
Two-phase query evaluation over the entity/attribute-value store.

Filter phase
    ``evaluate_group`` walks a query tree and produces the set of matching
    entity-instance ids. Rules on the same property inside one group are
    OR'ed; the per-property results and the results of nested groups are then
    combined with the group's own AND/OR. An empty root group yields the
    ``ALL`` sentinel ("no filtering"), which is distinct from an empty set.

Fetch phase
    ``fetch_instances`` materializes one page of fully hydrated instances for
    an id set, plus the total count used for pagination.

The whole tree is checked before the first store call: an unknown operator,
a property outside the entity, an operator the property type does not
support, or a malformed literal raises ``QueryEvaluationError`` and nothing
is returned. Store errors propagate unchanged; nothing here retries.
"""

from __future__ import annotations

import asyncio
import enum
import math
from collections.abc import Coroutine, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from recordbase.errors import QueryEvaluationError
from recordbase.models.enums import GroupOperator, PropertyType, QueryOperator
from recordbase.schemas import HydratedInstance, InstanceRow
from recordbase.services.display_string import resolve_display_string
from recordbase.services.query_operators import (
    WINDOW_OPERATORS,
    calendar_window,
    check_rule,
)
from recordbase.services.value_codec import cast_value
from recordbase.utils.logger import setup_logger

logger = setup_logger(__name__)


class MatchAll(enum.Enum):
    ALL = "all"


ALL = MatchAll.ALL

InstanceIds = set[UUID] | MatchAll


class AttributeStore(Protocol):
    """What the evaluator needs from the storage layer."""

    async def query_property_instances(
        self, entity_id: UUID, prop: Any, operator: QueryOperator, literal: Any
    ) -> set[UUID]:
        """Ids of live instances of ``entity_id`` whose ``prop`` matches."""
        ...

    async def fetch_instances_by_ids(
        self, entity_id: UUID, ids: InstanceIds, limit: int, offset: int
    ) -> tuple[list[InstanceRow], int]:
        """One page of live instances (newest first) and the total count."""
        ...


@dataclass(frozen=True)
class CompiledRule:
    prop: Any
    operator: QueryOperator
    literal: Any


@dataclass
class CompiledGroup:
    operator: GroupOperator
    rules_by_property: dict[UUID, list[CompiledRule]] = field(default_factory=dict)
    groups: list[CompiledGroup] = field(default_factory=list)


@dataclass
class FetchResult:
    records: list[HydratedInstance]
    total: int

    def total_pages(self, page_size: int) -> int:
        return math.ceil(self.total / page_size) if page_size else 0


def build_property_index(properties: Iterable[Any]) -> dict[UUID, Any]:
    return {_as_uuid(prop.id): prop for prop in properties}


def _as_uuid(value: Any) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def compile_group(
    group: Any, property_index: Mapping[UUID, Any], now: datetime
) -> CompiledGroup:
    """Check a query tree and resolve every rule to (property, operator, literal)."""
    try:
        operator = GroupOperator(group.operator)
    except ValueError:
        raise QueryEvaluationError(
            f"Unknown group operator: {group.operator!r}"
        ) from None

    compiled = CompiledGroup(operator=operator)

    for rule in group.rules or []:
        try:
            property_id = _as_uuid(rule.property_id)
        except ValueError:
            raise QueryEvaluationError(
                f"Malformed property id: {rule.property_id!r}"
            ) from None
        prop = property_index.get(property_id)
        if prop is None:
            raise QueryEvaluationError(
                f"Property {property_id} does not belong to the queried entity"
            )

        property_type = PropertyType(prop.property_type)
        op, literal = check_rule(rule.operator, rule.value, property_type)
        if op in WINDOW_OPERATORS:
            literal = calendar_window(op, literal, property_type, now)

        compiled.rules_by_property.setdefault(property_id, []).append(
            CompiledRule(prop=prop, operator=op, literal=literal)
        )

    for child in group.groups or []:
        compiled.groups.append(compile_group(child, property_index, now))

    return compiled


def combine(operator: GroupOperator, sets: list[set[UUID]]) -> set[UUID]:
    """AND -> intersection, OR -> union; no operands -> empty set."""
    if not sets:
        return set()
    if operator == GroupOperator.AND:
        return set.intersection(*sets)
    return set().union(*sets)


async def _run_siblings(
    coros: Iterable[Coroutine[Any, Any, set[UUID]]],
) -> list[set[UUID]]:
    """Await ``coros`` together; the first failure cancels the rest and is re-raised."""
    try:
        async with asyncio.TaskGroup() as tg:
            tasks = [tg.create_task(coro) for coro in coros]
    except ExceptionGroup as eg:
        raise eg.exceptions[0] from None
    return [task.result() for task in tasks]


async def _evaluate_property(
    entity_id: UUID, rules: list[CompiledRule], store: AttributeStore
) -> set[UUID]:
    matches = await _run_siblings(
        store.query_property_instances(entity_id, rule.prop, rule.operator, rule.literal)
        for rule in rules
    )
    return set().union(*matches)


async def _evaluate_compiled(
    entity_id: UUID, group: CompiledGroup, store: AttributeStore
) -> set[UUID]:
    # Siblings run together; one failing lookup cancels the others
    operands = await _run_siblings(
        [
            *(
                _evaluate_property(entity_id, rules, store)
                for rules in group.rules_by_property.values()
            ),
            *(_evaluate_compiled(entity_id, child, store) for child in group.groups),
        ]
    )
    return combine(group.operator, operands)



async def evaluate_group(
    group: Any | None,
    property_index: Mapping[UUID, Any],
    store: AttributeStore,
    entity_id: UUID,
    now: datetime | None = None,
) -> InstanceIds:
    """
    Filter phase: matching instance ids for ``group``, or ``ALL``.

    ``now`` fixes the reference time of the relative date operators; it
    defaults to the current local server time.
    """
    if group is None or (not group.rules and not group.groups):
        return ALL

    compiled = compile_group(group, property_index, now or datetime.now())
    ids = await _evaluate_compiled(entity_id, compiled, store)
    logger.debug(f"Query on entity {entity_id} matched {len(ids)} instances")
    return ids


def hydrate_instance(
    row: InstanceRow, properties: Iterable[Any], display_template: str | None = None
) -> HydratedInstance:
    """Cast stored values per property, lists in sort order, scalars first row."""
    properties = list(properties)
    by_property: dict[UUID, list] = {}
    for stored in row.values:
        by_property.setdefault(stored.property_id, []).append(stored)

    values: dict[str, Any] = {}
    for prop in properties:
        stored_values = sorted(
            by_property.get(_as_uuid(prop.id), []), key=lambda s: s.sort_order
        )
        if prop.is_list:
            cast = (cast_value(s.value, prop.property_type) for s in stored_values)
            values[prop.property_name] = [v for v in cast if v is not None]
        else:
            values[prop.property_name] = (
                cast_value(stored_values[0].value, prop.property_type)
                if stored_values
                else None
            )

    display_string = None
    if display_template is not None:
        display_string = resolve_display_string(values, properties, display_template)

    return HydratedInstance(
        id=row.id,
        entity_id=row.entity_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        created_by=row.created_by,
        last_modified_by=row.last_modified_by,
        properties=values,
        display_string=display_string,
    )


async def fetch_instances(
    entity_id: UUID,
    ids: InstanceIds,
    properties: Iterable[Any],
    store: AttributeStore,
    limit: int,
    offset: int = 0,
    display_template: str | None = None,
) -> FetchResult:
    """Fetch phase: a page of hydrated instances for ``ids`` and the total."""
    if ids is not ALL and not ids:
        return FetchResult(records=[], total=0)

    rows, total = await store.fetch_instances_by_ids(entity_id, ids, limit, offset)
    properties = list(properties)
    records = [hydrate_instance(row, properties, display_template) for row in rows]
    return FetchResult(records=records, total=total)
