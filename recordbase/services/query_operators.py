"""
Operator tables for query rules.

Which operators a property type accepts, which operators read a literal, how
a literal is normalized before it reaches the store, and the calendar windows
used by the relative date operators. The store-side condition builders live
with the property-instance handler; everything here is pure.
"""

import calendar
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from recordbase.errors import QueryEvaluationError
from recordbase.models.enums import PropertyType, QueryOperator
from recordbase.services.value_codec import (
    UUID_RE,
    format_value,
    parse_date,
    parse_datetime,
    parse_number,
    parse_time,
)

Op = QueryOperator

_COMMON = (Op.EQUALS, Op.NOT_EQUALS, Op.IS_NULL, Op.IS_NOT_NULL)
_CALENDAR = (
    Op.BEFORE,
    Op.AFTER,
    Op.IN_LAST_DAYS,
    Op.IN_LAST_MONTHS,
    Op.IS_TODAY,
    Op.IS_THIS_WEEK,
    Op.IS_THIS_MONTH,
)

OPERATORS_BY_TYPE: dict[PropertyType, frozenset[QueryOperator]] = {
    PropertyType.STRING: frozenset(
        _COMMON
        + (
            Op.CONTAINS,
            Op.NOT_CONTAINS,
            Op.STARTS_WITH,
            Op.ENDS_WITH,
            Op.IS_EMPTY,
            Op.IS_NOT_EMPTY,
            Op.MATCHES_REGEX,
        )
    ),
    PropertyType.NUMBER: frozenset(
        _COMMON
        + (
            Op.GREATER_THAN,
            Op.LESS_THAN,
            Op.GREATER_THAN_OR_EQUAL,
            Op.LESS_THAN_OR_EQUAL,
        )
    ),
    PropertyType.DATE: frozenset(_COMMON + _CALENDAR),
    PropertyType.DATETIME: frozenset(_COMMON + _CALENDAR),
    PropertyType.TIME: frozenset(_COMMON + (Op.BEFORE, Op.AFTER)),
    PropertyType.BOOLEAN: frozenset(_COMMON + (Op.IS_TRUE, Op.IS_FALSE)),
    PropertyType.ENTITY: frozenset(_COMMON),
}

# Operators that never read rule.value
VALUELESS_OPERATORS = frozenset(
    {
        Op.IS_EMPTY,
        Op.IS_NOT_EMPTY,
        Op.IS_TODAY,
        Op.IS_THIS_WEEK,
        Op.IS_THIS_MONTH,
        Op.IS_TRUE,
        Op.IS_FALSE,
        Op.IS_NULL,
        Op.IS_NOT_NULL,
    }
)

PATTERN_OPERATORS = frozenset(
    {Op.CONTAINS, Op.NOT_CONTAINS, Op.STARTS_WITH, Op.ENDS_WITH}
)
NUMERIC_OPERATORS = frozenset(
    {
        Op.GREATER_THAN,
        Op.LESS_THAN,
        Op.GREATER_THAN_OR_EQUAL,
        Op.LESS_THAN_OR_EQUAL,
    }
)
WINDOW_OPERATORS = frozenset(
    {Op.IN_LAST_DAYS, Op.IN_LAST_MONTHS, Op.IS_TODAY, Op.IS_THIS_WEEK, Op.IS_THIS_MONTH}
)

_TEMPORAL_PARSERS = {
    PropertyType.DATE: parse_date,
    PropertyType.DATETIME: parse_datetime,
    PropertyType.TIME: parse_time,
}


def parse_operator(raw: Any) -> QueryOperator:
    try:
        return QueryOperator(raw)
    except ValueError:
        raise QueryEvaluationError(f"Unknown operator: {raw!r}") from None


def operators_for(property_type: PropertyType | str) -> frozenset[QueryOperator]:
    return OPERATORS_BY_TYPE[PropertyType(property_type)]


def _canonical_equality_literal(value: str, property_type: PropertyType) -> Any:
    if property_type == PropertyType.STRING:
        return value
    if property_type == PropertyType.NUMBER:
        number = parse_number(value)
        if number is None:
            raise QueryEvaluationError(f"Malformed number literal: {value!r}")
        return number
    if property_type == PropertyType.BOOLEAN:
        if value not in ("true", "false", "1", "0"):
            raise QueryEvaluationError(f"Malformed boolean literal: {value!r}")
        return format_value(value, property_type)
    if property_type == PropertyType.ENTITY:
        if not UUID_RE.match(value):
            raise QueryEvaluationError(f"Malformed entity reference literal: {value!r}")
        return format_value(value, property_type)
    return _canonical_temporal_literal(value, property_type)


def _canonical_temporal_literal(value: str, property_type: PropertyType) -> str:
    parser = _TEMPORAL_PARSERS.get(property_type)
    parsed = parser(value) if parser else None
    if parsed is None:
        raise QueryEvaluationError(
            f"Malformed {property_type.value} literal: {value!r}"
        )
    return format_value(parsed, property_type)


def normalize_literal(
    operator: QueryOperator, value: str | None, property_type: PropertyType | str
) -> Any:
    """
    Check a rule's literal and return the form the store compares against.

    Valueless operators return None without looking at ``value``.
    """
    property_type = PropertyType(property_type)

    if operator in VALUELESS_OPERATORS:
        return None

    if value is None:
        raise QueryEvaluationError(f"Operator '{operator.value}' requires a value")

    if operator in (Op.EQUALS, Op.NOT_EQUALS):
        return _canonical_equality_literal(value, property_type)

    if operator in PATTERN_OPERATORS:
        return value

    if operator == Op.MATCHES_REGEX:
        try:
            re.compile(value)
        except re.error as e:
            raise QueryEvaluationError(f"Invalid regular expression {value!r}: {e}") from e
        return value

    if operator in NUMERIC_OPERATORS:
        number = parse_number(value)
        if number is None:
            raise QueryEvaluationError(f"Malformed number literal: {value!r}")
        return number

    if operator in (Op.BEFORE, Op.AFTER):
        return _canonical_temporal_literal(value, property_type)

    if operator in (Op.IN_LAST_DAYS, Op.IN_LAST_MONTHS):
        try:
            amount = int(value.strip())
        except ValueError:
            raise QueryEvaluationError(
                f"Operator '{operator.value}' expects a whole number, got {value!r}"
            ) from None
        if amount < 0:
            raise QueryEvaluationError(
                f"Operator '{operator.value}' expects a non-negative number"
            )
        return amount

    raise QueryEvaluationError(f"Unknown operator: {operator!r}")


def check_rule(
    operator: Any, value: str | None, property_type: PropertyType | str
) -> tuple[QueryOperator, Any]:
    """Validate operator and literal for a property type in one step."""
    op = parse_operator(operator)
    property_type = PropertyType(property_type)
    if op not in OPERATORS_BY_TYPE[property_type]:
        raise QueryEvaluationError(
            f"Operator '{op.value}' is not supported for {property_type.value} properties"
        )
    return op, normalize_literal(op, value, property_type)


# --- Calendar windows ------------------------------------------------------


@dataclass(frozen=True)
class Window:
    lower: str
    upper: str
    upper_inclusive: bool


def subtract_months(moment: datetime, months: int) -> datetime:
    """Same day ``months`` earlier, clamped to the end of shorter months."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _bound(moment: datetime, property_type: PropertyType) -> str:
    if property_type == PropertyType.DATE:
        return moment.date().isoformat()
    return moment.isoformat(timespec="seconds")


def calendar_window(
    operator: QueryOperator,
    literal: int | None,
    property_type: PropertyType | str,
    now: datetime,
) -> Window:
    """
    Window of canonical text values matched by a relative date operator.

    ``now`` is naive local server time. Weeks start on Sunday.
    """
    property_type = PropertyType(property_type)
    midnight = datetime.combine(now.date(), datetime.min.time())

    if operator == Op.IN_LAST_DAYS:
        lower = now - timedelta(days=literal)
        return Window(_bound(lower, property_type), _bound(now, property_type), True)

    if operator == Op.IN_LAST_MONTHS:
        lower = subtract_months(now, literal)
        return Window(_bound(lower, property_type), _bound(now, property_type), True)

    if operator == Op.IS_TODAY:
        start = midnight
        end = start + timedelta(days=1)
    elif operator == Op.IS_THIS_WEEK:
        # weekday(): Monday == 0, so Sunday is (weekday + 1) % 7 days back
        start = midnight - timedelta(days=(now.weekday() + 1) % 7)
        end = start + timedelta(days=7)
    elif operator == Op.IS_THIS_MONTH:
        start = midnight.replace(day=1)
        end = (start + timedelta(days=32)).replace(day=1)
    else:
        raise QueryEvaluationError(f"Operator '{operator.value}' has no calendar window")

    return Window(_bound(start, property_type), _bound(end, property_type), False)
