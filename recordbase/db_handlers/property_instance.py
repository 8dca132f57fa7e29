"""
Property-instance rows: writes, soft deletes, and the per-operator SQL
conditions the query evaluator's filter phase runs against them.

Values are stored as canonical text (see ``services.value_codec``), so every
condition below is expressed over ``property_instances.value``:

- text matching uses ``ILIKE`` with ``%``/``_`` in the literal escaped;
- ``matches_regex`` uses PostgreSQL's case-sensitive POSIX ``~``;
- numeric comparisons cast only rows that look like numbers, so a stray
  non-numeric value never fails the statement;
- date, datetime and time comparisons order the canonical ISO text.

Each condition is row-level: an instance matches when at least one of its
live rows for the property satisfies it. ``is_null`` is the exception and is
evaluated per instance: it matches instances with no live, non-null value.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from decimal import Decimal
from typing import Any

from sqlalchemy import Numeric, and_, case, cast, exists, not_, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql.elements import ColumnElement

from recordbase.db_handlers.base import BaseDBHandler, check_local_db, live
from recordbase.models.entity_instance import EntityInstance
from recordbase.models.enums import PropertyType, QueryOperator
from recordbase.models.property_instance import PropertyInstance
from recordbase.services.query_operators import Window
from recordbase.utils.logger import setup_logger

logger = setup_logger("property_instance_db_handler")

Op = QueryOperator

NUMERIC_TEXT_PATTERN = r"^\s*-?[0-9]+(\.[0-9]+)?([eE][-+]?[0-9]+)?\s*$"
TRUE_VALUES = ("true", "1")
FALSE_VALUES = ("false", "0")

Condition = Callable[[ColumnElement, Any, PropertyType], ColumnElement]


def escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def numeric_value(value: ColumnElement) -> ColumnElement:
    """``value`` cast to NUMERIC, or NULL when the text is not a number."""
    return case(
        (value.regexp_match(NUMERIC_TEXT_PATTERN), cast(value, Numeric)),
        else_=None,
    )


def _decimal(number: int | float) -> Decimal:
    return Decimal(str(number))


def _equals(value, literal, property_type):
    if property_type == PropertyType.NUMBER:
        return numeric_value(value) == _decimal(literal)
    if property_type == PropertyType.BOOLEAN:
        return value.in_(TRUE_VALUES if literal == "true" else FALSE_VALUES)
    return value == literal


def _not_equals(value, literal, property_type):
    if property_type == PropertyType.NUMBER:
        return numeric_value(value).is_distinct_from(_decimal(literal))
    if property_type == PropertyType.BOOLEAN:
        return not_(
            value.in_(TRUE_VALUES if literal == "true" else FALSE_VALUES)
        ) | value.is_(None)
    return value.is_distinct_from(literal)


def _like(template: str) -> Condition:
    def condition(value, literal, property_type):
        return value.ilike(template.format(escape_like(literal)), escape="\\")

    return condition


def _not_contains(value, literal, property_type):
    return or_(
        value.is_(None),
        not_(value.ilike(f"%{escape_like(literal)}%", escape="\\")),
    )


def _numeric(compare: Callable[[ColumnElement, Decimal], ColumnElement]) -> Condition:
    def condition(value, literal, property_type):
        return compare(numeric_value(value), _decimal(literal))

    return condition


def _within(value, window: Window, property_type):
    upper = value <= window.upper if window.upper_inclusive else value < window.upper
    return and_(value >= window.lower, upper)


OPERATOR_CONDITIONS: dict[QueryOperator, Condition] = {
    Op.EQUALS: _equals,
    Op.NOT_EQUALS: _not_equals,
    Op.CONTAINS: _like("%{}%"),
    Op.NOT_CONTAINS: _not_contains,
    Op.STARTS_WITH: _like("{}%"),
    Op.ENDS_WITH: _like("%{}"),
    Op.IS_EMPTY: lambda value, literal, t: or_(value.is_(None), value == ""),
    Op.IS_NOT_EMPTY: lambda value, literal, t: and_(value.is_not(None), value != ""),
    Op.MATCHES_REGEX: lambda value, literal, t: value.regexp_match(literal),
    Op.GREATER_THAN: _numeric(lambda n, lit: n > lit),
    Op.LESS_THAN: _numeric(lambda n, lit: n < lit),
    Op.GREATER_THAN_OR_EQUAL: _numeric(lambda n, lit: n >= lit),
    Op.LESS_THAN_OR_EQUAL: _numeric(lambda n, lit: n <= lit),
    Op.BEFORE: lambda value, literal, t: value < literal,
    Op.AFTER: lambda value, literal, t: value > literal,
    Op.IN_LAST_DAYS: _within,
    Op.IN_LAST_MONTHS: _within,
    Op.IS_TODAY: _within,
    Op.IS_THIS_WEEK: _within,
    Op.IS_THIS_MONTH: _within,
    Op.IS_TRUE: lambda value, literal, t: value.in_(TRUE_VALUES),
    Op.IS_FALSE: lambda value, literal, t: value.in_(FALSE_VALUES),
    Op.IS_NOT_NULL: lambda value, literal, t: value.is_not(None),
}


def build_property_match_statement(
    entity_id: uuid.UUID,
    property_id: uuid.UUID,
    property_type: PropertyType | str,
    operator: QueryOperator,
    literal: Any,
):
    """SELECT of the live instance ids of ``entity_id`` matching one rule."""
    property_type = PropertyType(property_type)

    if operator == Op.IS_NULL:
        has_value = exists().where(
            PropertyInstance.entity_instance_id == EntityInstance.id,
            PropertyInstance.property_id == property_id,
            live(PropertyInstance),
            PropertyInstance.value.is_not(None),
        )
        return select(EntityInstance.id).where(
            live(EntityInstance),
            EntityInstance.entity_id == entity_id,
            not_(has_value),
        )

    condition = OPERATOR_CONDITIONS[operator]
    return (
        select(EntityInstance.id)
        .join(
            PropertyInstance,
            PropertyInstance.entity_instance_id == EntityInstance.id,
        )
        .where(
            live(EntityInstance),
            EntityInstance.entity_id == entity_id,
            live(PropertyInstance),
            PropertyInstance.property_id == property_id,
            condition(PropertyInstance.value, literal, property_type),
        )
        .distinct()
    )


class PropertyInstanceDBHandler(BaseDBHandler[PropertyInstance]):
    def __init__(self):
        super().__init__(PropertyInstance)

    @check_local_db
    async def match_instance_ids(
        self,
        entity_id: uuid.UUID,
        property_id: uuid.UUID,
        property_type: PropertyType | str,
        operator: QueryOperator,
        literal: Any,
        *,
        db: AsyncSession = None,
    ) -> set[uuid.UUID]:
        stmt = build_property_match_statement(
            entity_id, property_id, property_type, operator, literal
        )
        result = await db.execute(stmt)
        return set(result.scalars().all())

    @check_local_db
    async def list_for_instances(
        self, entity_instance_ids: Iterable[uuid.UUID], *, db: AsyncSession = None
    ) -> list[PropertyInstance]:
        """Live value rows of the given instances in element order."""
        entity_instance_ids = list(entity_instance_ids)
        if not entity_instance_ids:
            return []
        stmt = (
            self.select_live()
            .where(PropertyInstance.entity_instance_id.in_(entity_instance_ids))
            .order_by(PropertyInstance.entity_instance_id, PropertyInstance.sort_order)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @check_local_db
    async def upsert_property_instances(
        self,
        entity_instance_id: uuid.UUID,
        rows: dict[uuid.UUID, list[str | None]],
        actor: str | None = None,
        *,
        db: AsyncSession = None,
    ) -> list[PropertyInstance]:
        """
        Replace the live values of the given properties on one instance.

        ``rows`` maps property id to the encoded values in element order; a
        non-list property passes a single-element list. Existing live rows of
        those properties are soft-deleted first, so at most one live row per
        non-list property remains.
        """
        if not rows:
            return []

        await self.soft_delete_property_instances(
            entity_instance_id, property_ids=rows.keys(), actor=actor, db=db
        )
        new_rows = [
            {
                "entity_instance_id": entity_instance_id,
                "property_id": property_id,
                "value": value,
                "sort_order": position,
                "created_by": actor,
                "last_modified_by": actor,
            }
            for property_id, values in rows.items()
            for position, value in enumerate(values)
        ]
        created = await self.batch_create(new_rows, db=db)
        logger.debug(
            f"Stored {len(created)} values for {len(rows)} properties on instance {entity_instance_id}"
        )
        return created

    @check_local_db
    async def soft_delete_property_instances(
        self,
        entity_instance_id: uuid.UUID,
        property_ids: Iterable[uuid.UUID] | None = None,
        actor: str | None = None,
        *,
        db: AsyncSession = None,
    ) -> int:
        """Soft-delete an instance's live rows, optionally only for some properties."""
        stmt = update(PropertyInstance).where(
            PropertyInstance.entity_instance_id == entity_instance_id,
            live(PropertyInstance),
        )
        if property_ids is not None:
            stmt = stmt.where(PropertyInstance.property_id.in_(list(property_ids)))
        values = {"is_deleted": True}
        if actor is not None:
            values["last_modified_by"] = actor
        result = await db.execute(stmt.values(**values))
        return result.rowcount
