from datetime import datetime

import pytest

from recordbase.errors import QueryEvaluationError
from recordbase.models.enums import PropertyType, QueryOperator
from recordbase.services.query_operators import (
    OPERATORS_BY_TYPE,
    Window,
    calendar_window,
    check_rule,
    normalize_literal,
    subtract_months,
)

Op = QueryOperator
T = PropertyType

# A Wednesday
NOW = datetime(2024, 5, 15, 14, 30, 45)


def test_every_type_supports_null_checks():
    for operators in OPERATORS_BY_TYPE.values():
        assert {Op.EQUALS, Op.NOT_EQUALS, Op.IS_NULL, Op.IS_NOT_NULL} <= operators


@pytest.mark.parametrize(
    "operator, property_type",
    [
        (Op.CONTAINS, T.NUMBER),
        (Op.GREATER_THAN, T.STRING),
        (Op.IS_TODAY, T.TIME),
        (Op.IS_TRUE, T.STRING),
        (Op.MATCHES_REGEX, T.ENTITY),
    ],
)
def test_operator_not_allowed_for_type(operator, property_type):
    with pytest.raises(QueryEvaluationError, match="not supported"):
        check_rule(operator.value, "x", property_type)


def test_unknown_operator():
    with pytest.raises(QueryEvaluationError, match="Unknown operator"):
        check_rule("sounds_like", "x", T.STRING)


def test_valueless_operators_ignore_value():
    assert check_rule("is_null", "whatever", T.NUMBER) == (Op.IS_NULL, None)
    assert normalize_literal(Op.IS_TODAY, None, T.DATE) is None


def test_value_required():
    with pytest.raises(QueryEvaluationError, match="requires a value"):
        check_rule("equals", None, T.STRING)


@pytest.mark.parametrize(
    "operator, value, property_type, expected",
    [
        (Op.EQUALS, "18", T.NUMBER, 18),
        (Op.GREATER_THAN, "2.5", T.NUMBER, 2.5),
        (Op.EQUALS, "1", T.BOOLEAN, "true"),
        (Op.EQUALS, "9:05:00", T.TIME, "09:05:00"),
        (Op.BEFORE, "2024-01-02", T.DATE, "2024-01-02"),
        (Op.IN_LAST_DAYS, " 7 ", T.DATE, 7),
        (Op.CONTAINS, "50%", T.STRING, "50%"),
    ],
)
def test_literals_are_canonicalized(operator, value, property_type, expected):
    assert normalize_literal(operator, value, property_type) == expected


@pytest.mark.parametrize(
    "operator, value, property_type",
    [
        (Op.GREATER_THAN, "eighteen", T.NUMBER),
        (Op.EQUALS, "maybe", T.BOOLEAN),
        (Op.BEFORE, "tomorrow", T.DATE),
        (Op.IN_LAST_DAYS, "1.5", T.DATE),
        (Op.IN_LAST_MONTHS, "-1", T.DATETIME),
        (Op.MATCHES_REGEX, "([a-z]", T.STRING),
        (Op.EQUALS, "not-an-id", T.ENTITY),
    ],
)
def test_malformed_literals(operator, value, property_type):
    with pytest.raises(QueryEvaluationError):
        normalize_literal(operator, value, property_type)


class TestCalendarWindow:
    def test_today(self):
        assert calendar_window(Op.IS_TODAY, None, T.DATE, NOW) == Window(
            "2024-05-15", "2024-05-16", False
        )

    def test_week_starts_on_sunday(self):
        window = calendar_window(Op.IS_THIS_WEEK, None, T.DATETIME, NOW)
        assert window == Window("2024-05-12T00:00:00", "2024-05-19T00:00:00", False)

    def test_week_on_a_sunday_starts_that_day(self):
        sunday = datetime(2024, 5, 12, 8, 0)
        window = calendar_window(Op.IS_THIS_WEEK, None, T.DATE, sunday)
        assert window.lower == "2024-05-12"

    def test_this_month_rolls_over_year(self):
        window = calendar_window(Op.IS_THIS_MONTH, None, T.DATE, datetime(2023, 12, 31))
        assert window == Window("2023-12-01", "2024-01-01", False)

    def test_in_last_days_is_inclusive_of_now(self):
        window = calendar_window(Op.IN_LAST_DAYS, 7, T.DATETIME, NOW)
        assert window == Window("2024-05-08T14:30:45", "2024-05-15T14:30:45", True)

    def test_in_last_months_clamps_day(self):
        window = calendar_window(Op.IN_LAST_MONTHS, 1, T.DATE, datetime(2024, 3, 31))
        assert window.lower == "2024-02-29"

    def test_before_has_no_window(self):
        with pytest.raises(QueryEvaluationError):
            calendar_window(Op.BEFORE, None, T.DATE, NOW)


def test_subtract_months_across_years():
    assert subtract_months(datetime(2024, 1, 15), 13) == datetime(2022, 12, 15)
