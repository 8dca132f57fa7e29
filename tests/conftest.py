"""
This file contains shared fixtures and configuration for the test suite.

Pytest will automatically discover and use the fixtures defined in this file.

No test needs a running database: the query evaluator is exercised against
``InMemoryAttributeStore`` below, which applies the same operator semantics
as the SQL conditions in ``recordbase.db_handlers.property_instance``.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from recordbase.models.enums import PropertyType, QueryOperator
from recordbase.schemas import InstanceRow, StoredValue
from recordbase.services.query_evaluator import ALL
from recordbase.services.query_operators import Window
from recordbase.services.value_codec import format_value, parse_number

Op = QueryOperator

TRUE_VALUES = ("true", "1")
FALSE_VALUES = ("false", "0")


def _row_matches(op: QueryOperator, value, literal, property_type: PropertyType) -> bool:
    if op == Op.IS_NOT_NULL:
        return value is not None
    if op == Op.IS_EMPTY:
        return value is None or value == ""
    if op == Op.IS_NOT_EMPTY:
        return value is not None and value != ""
    if op == Op.IS_TRUE:
        return value in TRUE_VALUES
    if op == Op.IS_FALSE:
        return value in FALSE_VALUES
    if op == Op.NOT_CONTAINS:
        return value is None or literal.lower() not in value.lower()
    if op == Op.NOT_EQUALS:
        return not _row_matches(Op.EQUALS, value, literal, property_type)
    if value is None:
        return False

    if op == Op.EQUALS:
        if property_type == PropertyType.NUMBER:
            return parse_number(value) == literal
        if property_type == PropertyType.BOOLEAN:
            return value in (TRUE_VALUES if literal == "true" else FALSE_VALUES)
        return value == literal
    if op == Op.CONTAINS:
        return literal.lower() in value.lower()
    if op == Op.STARTS_WITH:
        return value.lower().startswith(literal.lower())
    if op == Op.ENDS_WITH:
        return value.lower().endswith(literal.lower())
    if op in (
        Op.GREATER_THAN,
        Op.LESS_THAN,
        Op.GREATER_THAN_OR_EQUAL,
        Op.LESS_THAN_OR_EQUAL,
    ):
        number = parse_number(value)
        if number is None:
            return False
        return {
            Op.GREATER_THAN: number > literal,
            Op.LESS_THAN: number < literal,
            Op.GREATER_THAN_OR_EQUAL: number >= literal,
            Op.LESS_THAN_OR_EQUAL: number <= literal,
        }[op]
    if op == Op.BEFORE:
        return value < literal
    if op == Op.AFTER:
        return value > literal
    if isinstance(literal, Window):
        upper_ok = value <= literal.upper if literal.upper_inclusive else value < literal.upper
        return value >= literal.lower and upper_ok
    raise AssertionError(f"operator {op} not modelled by the in-memory store")


@dataclass(eq=False)
class PropertyDef:
    """Property definition shaped like a ``models.Property`` row.

    Compared and hashed by identity like ORM rows, so a definition can key
    the value maps handed to ``InMemoryAttributeStore.add_instance``.
    """

    id: uuid.UUID
    entity_id: uuid.UUID
    name: str
    property_name: str
    property_type: str
    is_list: bool = False
    is_required: bool = False
    default_value: str | None = None
    referenced_entity_id: uuid.UUID | None = None
    sort_order: int = 0
    is_deleted: bool = False


class InMemoryAttributeStore:
    """Attribute store over plain dicts; records every call it receives."""

    def __init__(self):
        self.instances: dict[uuid.UUID, SimpleNamespace] = {}
        self.rows: list[SimpleNamespace] = []
        self.query_calls: list[tuple] = []
        self.fetch_calls: list[tuple] = []
        self._clock = datetime(2024, 1, 1, tzinfo=UTC)

    def add_instance(self, entity_id, values=None, is_deleted=False) -> uuid.UUID:
        """``values`` maps property objects to a scalar or a list of typed values."""
        instance_id = uuid.uuid4()
        self._clock += timedelta(seconds=1)
        self.instances[instance_id] = SimpleNamespace(
            id=instance_id,
            entity_id=entity_id,
            created_at=self._clock,
            is_deleted=is_deleted,
        )
        for prop, value in (values or {}).items():
            items = value if isinstance(value, list) else [value]
            for position, item in enumerate(items):
                self.add_row(instance_id, prop, format_value(item, prop.property_type), position)
        return instance_id

    def add_row(self, instance_id, prop, raw, sort_order=0, is_deleted=False):
        self.rows.append(
            SimpleNamespace(
                entity_instance_id=instance_id,
                property_id=prop.id,
                value=raw,
                sort_order=sort_order,
                is_deleted=is_deleted,
            )
        )

    def _live_instances(self, entity_id):
        return [
            i
            for i in self.instances.values()
            if i.entity_id == entity_id and not i.is_deleted
        ]

    def _live_rows(self, instance_id, property_id=None):
        return [
            r
            for r in self.rows
            if r.entity_instance_id == instance_id
            and not r.is_deleted
            and (property_id is None or r.property_id == property_id)
        ]

    async def query_property_instances(self, entity_id, prop, operator, literal):
        self.query_calls.append((prop.id, operator, literal))
        property_type = PropertyType(prop.property_type)
        matched = set()
        for instance in self._live_instances(entity_id):
            rows = self._live_rows(instance.id, prop.id)
            if operator == Op.IS_NULL:
                if not any(r.value is not None for r in rows):
                    matched.add(instance.id)
            elif any(_row_matches(operator, r.value, literal, property_type) for r in rows):
                matched.add(instance.id)
        return matched

    async def fetch_instances_by_ids(self, entity_id, ids, limit, offset):
        self.fetch_calls.append((ids, limit, offset))
        instances = [
            i for i in self._live_instances(entity_id) if ids is ALL or i.id in ids
        ]
        instances.sort(key=lambda i: i.created_at, reverse=True)
        page = instances[offset : offset + limit]
        rows = [
            InstanceRow(
                id=i.id,
                entity_id=i.entity_id,
                created_at=i.created_at,
                values=[
                    StoredValue(
                        property_id=r.property_id, value=r.value, sort_order=r.sort_order
                    )
                    for r in self._live_rows(i.id)
                ],
            )
            for i in page
        ]
        return rows, len(instances)


class SlowAttributeStore(InMemoryAttributeStore):
    """Tracks how many property lookups are in flight at once."""

    def __init__(self, delay: float = 0.01):
        super().__init__()
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def query_property_instances(self, entity_id, prop, operator, literal):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            return await super().query_property_instances(
                entity_id, prop, operator, literal
            )
        finally:
            self.in_flight -= 1


@pytest.fixture
def entity_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def store() -> InMemoryAttributeStore:
    return InMemoryAttributeStore()


@pytest.fixture
def make_property(entity_id):
    """Factory for ``PropertyDef`` rows owned by ``entity_id`` by default."""

    def _make(
        property_name: str,
        property_type: PropertyType | str = PropertyType.STRING,
        *,
        is_list: bool = False,
        is_required: bool = False,
        default_value: str | None = None,
        referenced_entity_id: uuid.UUID | None = None,
        owner_id: uuid.UUID | None = None,
        sort_order: int = 0,
    ) -> PropertyDef:
        return PropertyDef(
            id=uuid.uuid4(),
            entity_id=owner_id or entity_id,
            name=property_name,
            property_name=property_name,
            property_type=PropertyType(property_type).value,
            is_list=is_list,
            is_required=is_required,
            default_value=default_value,
            referenced_entity_id=referenced_entity_id,
            sort_order=sort_order,
        )

    return _make


@pytest.fixture
def slow_store() -> SlowAttributeStore:
    return SlowAttributeStore()
