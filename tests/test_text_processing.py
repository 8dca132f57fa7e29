import pytest

from recordbase.utils.text_processing import to_camel_case


@pytest.mark.parametrize(
    "text, expected",
    [
        ("First Name", "firstName"),
        ("date of birth", "dateOfBirth"),
        ("  Email  ", "email"),
        ("Home URL", "homeURL"),
        ("age", "age"),
        ("", ""),
    ],
)
def test_to_camel_case(text, expected):
    assert to_camel_case(text) == expected
