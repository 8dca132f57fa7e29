"""
Display-string templates: render an entity instance to a readable label.

A template such as ``"{firstName} {lastName}"`` names properties by their
machine name. Resolution never fails: unknown placeholders and missing values
become empty strings.
"""

import re
from collections.abc import Iterable, Mapping
from typing import Any

from recordbase.services.value_codec import format_display_value

PLACEHOLDER_RE = re.compile(r"\{([^}]+)\}")


def parse_display_string(template: str | None) -> list[str]:
    """Placeholder names in order of first appearance, without duplicates."""
    if not template:
        return []
    return list(dict.fromkeys(PLACEHOLDER_RE.findall(template)))


def _display_value(value: Any, prop: Any) -> str:
    if prop is None or value is None:
        return ""
    if prop.is_list and isinstance(value, (list, tuple)):
        return ", ".join(format_display_value(v, prop.property_type) for v in value)
    return format_display_value(value, prop.property_type)


def resolve_display_string(
    values: Mapping[str, Any],
    properties: Iterable[Any],
    template: str | None,
) -> str:
    """
    Substitute every placeholder of ``template`` with the formatted value.

    ``values`` maps property machine names to typed values (lists for list
    properties), as produced by instance hydration.
    """
    if not template:
        return ""

    property_map = {prop.property_name: prop for prop in properties}
    replacements = {
        name: _display_value(values.get(name), property_map.get(name))
        for name in parse_display_string(template)
    }
    return PLACEHOLDER_RE.sub(lambda m: replacements[m.group(1)], template)


def validate_display_string(template: str | None, properties: Iterable[Any]) -> list[str]:
    """Placeholders in ``template`` that name no known property."""
    available = {prop.property_name for prop in properties}
    return [name for name in parse_display_string(template) if name not in available]
