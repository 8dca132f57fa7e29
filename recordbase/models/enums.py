"""
Enumerations shared by the models, the codec and the query evaluator.
"""

import enum


class PropertyType(str, enum.Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    ENTITY = "entity"


class GroupOperator(str, enum.Enum):
    AND = "AND"
    OR = "OR"


class QueryOperator(str, enum.Enum):
    # String
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    MATCHES_REGEX = "matches_regex"
    # Number
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    # Date, datetime and time
    BEFORE = "before"
    AFTER = "after"
    IN_LAST_DAYS = "in_last_days"
    IN_LAST_MONTHS = "in_last_months"
    IS_TODAY = "is_today"
    IS_THIS_WEEK = "is_this_week"
    IS_THIS_MONTH = "is_this_month"
    # Boolean
    IS_TRUE = "is_true"
    IS_FALSE = "is_false"
    # Any type
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
