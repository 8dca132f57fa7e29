import uuid
from datetime import date, datetime, time

import pytest

from recordbase.models.enums import PropertyType
from recordbase.services.value_codec import (
    REQUIRED_MESSAGE,
    cast_value,
    format_display_value,
    format_value,
    validate_stored_value,
    validate_value,
)

T = PropertyType


class TestCastValue:
    @pytest.mark.parametrize(
        "raw, property_type, expected",
        [
            ("hello", T.STRING, "hello"),
            ("42", T.NUMBER, 42),
            ("3.5", T.NUMBER, 3.5),
            ("true", T.BOOLEAN, True),
            ("1", T.BOOLEAN, True),
            ("false", T.BOOLEAN, False),
            ("yes", T.BOOLEAN, False),
            ("2024-02-29", T.DATE, date(2024, 2, 29)),
            ("2024-03-01T10:30:00", T.DATETIME, datetime(2024, 3, 1, 10, 30)),
            ("9:05:00", T.TIME, time(9, 5)),
            ("09:30", T.TIME, time(9, 30)),
        ],
    )
    def test_typed_values(self, raw, property_type, expected):
        assert cast_value(raw, property_type) == expected

    @pytest.mark.parametrize(
        "raw, property_type",
        [
            (None, T.STRING),
            ("", T.NUMBER),
            ("abc", T.NUMBER),
            ("inf", T.NUMBER),
            ("2024-13-01", T.DATE),
            ("25:00:00", T.TIME),
            ("9:5", T.TIME),
            ("not-a-uuid", T.ENTITY),
        ],
    )
    def test_empty_or_invalid_is_none(self, raw, property_type):
        assert cast_value(raw, property_type) is None

    def test_entity_reference(self):
        ref = uuid.uuid4()
        assert cast_value(str(ref).upper(), T.ENTITY) == ref


class TestFormatValue:
    def test_integral_float_has_no_fraction(self):
        assert format_value(30.0, T.NUMBER) == "30"
        assert format_value(2.5, T.NUMBER) == "2.5"

    def test_none_stays_none(self):
        assert format_value(None, T.DATE) is None

    def test_booleans(self):
        assert format_value(True, T.BOOLEAN) == "true"
        assert format_value("0", T.BOOLEAN) == "false"

    def test_time_is_zero_padded(self):
        assert format_value("9:05:00", T.TIME) == "09:05:00"
        assert format_value(time(7, 1, 2), T.TIME) == "07:01:02"

    def test_datetime_truncates_to_date_for_date_properties(self):
        assert format_value(datetime(2024, 5, 6, 23, 59), T.DATE) == "2024-05-06"

    @pytest.mark.parametrize(
        "value, property_type",
        [
            ("Ann", T.STRING),
            (17, T.NUMBER),
            (False, T.BOOLEAN),
            (date(2023, 12, 31), T.DATE),
            (time(23, 0, 1), T.TIME),
        ],
    )
    def test_cast_inverts_format(self, value, property_type):
        assert cast_value(format_value(value, property_type), property_type) == value


class TestValidateValue:
    def test_required_rejects_empty(self):
        assert validate_value("", T.STRING, True, False) == (False, REQUIRED_MESSAGE)
        assert validate_value(None, T.NUMBER, True, False) == (False, REQUIRED_MESSAGE)

    def test_optional_accepts_empty(self):
        assert validate_value(None, T.DATE, False, False).valid

    @pytest.mark.parametrize(
        "value, property_type, message",
        [
            ("abc", T.NUMBER, "Must be a valid number"),
            (True, T.NUMBER, "Must be a valid number"),
            ("true", T.BOOLEAN, "Must be true or false"),
            ("01/02/2024", T.DATE, "Must be a valid date (YYYY-MM-DD)"),
            ("yesterday", T.DATETIME, "Must be a valid date and time"),
            ("9:5", T.TIME, "Must be a valid time (HH:MM:SS)"),
            ("42", T.ENTITY, "Must be a valid entity reference"),
            (42, T.STRING, "Must be text"),
        ],
    )
    def test_type_errors(self, value, property_type, message):
        assert validate_value(value, property_type, False, False) == (False, message)

    def test_numeric_string_is_a_number(self):
        assert validate_value("30", T.NUMBER, True, False).valid

    def test_list_must_be_a_sequence(self):
        result = validate_value("a,b", T.STRING, False, True)
        assert result == (False, "Value must be a list for list properties")

    def test_null_is_not_a_list(self):
        for is_required in (False, True):
            result = validate_value(None, T.STRING, is_required, True)
            assert result == (False, "Value must be a list for list properties")

    def test_empty_list_fails_only_when_required(self):
        assert validate_value([], T.STRING, False, True).valid
        assert validate_value([], T.STRING, True, True) == (False, REQUIRED_MESSAGE)

    def test_list_elements_are_required(self):
        assert validate_value(["a", ""], T.STRING, False, True) == (
            False,
            REQUIRED_MESSAGE,
        )
        assert not validate_value([1, "x"], T.NUMBER, False, True).valid

    def test_validating_twice_gives_the_same_result(self):
        first = validate_value("x", T.NUMBER, True, False)
        assert validate_value("x", T.NUMBER, True, False) == first


class TestValidateStoredValue:
    def test_empty_default_is_valid(self):
        assert validate_stored_value(None, T.NUMBER)
        assert validate_stored_value("", T.DATE)

    def test_boolean_defaults_are_words(self):
        assert validate_stored_value("true", T.BOOLEAN)
        assert not validate_stored_value("1", T.BOOLEAN)

    def test_time_default_may_omit_seconds(self):
        assert validate_stored_value("08:30", T.TIME)
        assert not validate_stored_value("8:30pm", T.TIME)

    def test_number_default(self):
        assert validate_stored_value("12.5", T.NUMBER)
        assert not validate_stored_value("twelve", T.NUMBER)


class TestFormatDisplayValue:
    def test_boolean(self):
        assert format_display_value(True, T.BOOLEAN) == "Yes"
        assert format_display_value("false", T.BOOLEAN) == "No"

    def test_date(self):
        assert format_display_value(date(2024, 7, 4), T.DATE) == "04/07/2024"
        assert format_display_value("2024-07-04", T.DATE) == "04/07/2024"

    def test_naive_datetime(self):
        assert format_display_value(datetime(2024, 7, 4, 18, 5), T.DATETIME) == "04/07/2024 18:05"

    def test_time(self):
        assert format_display_value(time(9, 5, 59), T.TIME) == "09:05"
        assert format_display_value("9:05:00", T.TIME) == "09:05"

    def test_none_and_unparseable(self):
        assert format_display_value(None, T.DATE) == ""
        assert format_display_value("someday", T.DATE) == "someday"
