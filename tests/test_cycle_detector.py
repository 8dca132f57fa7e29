import uuid
from types import SimpleNamespace

import pytest

from recordbase.services.cycle_detector import build_reference_graph, detect_cycle


def make_entities(count):
    return [SimpleNamespace(id=uuid.uuid4(), is_deleted=False) for _ in range(count)]


def reference(source, target, is_deleted=False):
    return SimpleNamespace(
        id=uuid.uuid4(),
        entity_id=source.id,
        property_type="entity",
        referenced_entity_id=target.id,
        is_deleted=is_deleted,
    )


def chain(entities):
    """References e0 -> e1 -> ... -> eN."""
    return [reference(a, b) for a, b in zip(entities, entities[1:])]


def test_self_reference_is_a_cycle():
    (x,) = make_entities(1)
    assert detect_cycle([x], [], x.id, x.id)


@pytest.mark.parametrize("length", [1, 2, 5])
def test_closing_a_chain_is_a_cycle(length):
    entities = make_entities(length + 1)
    existing = chain(entities)
    assert detect_cycle(entities, existing, entities[-1].id, entities[0].id)


@pytest.mark.parametrize("length", [1, 2, 5])
def test_extending_a_chain_is_not_a_cycle(length):
    entities = make_entities(length + 2)
    existing = chain(entities[:-1])
    assert not detect_cycle(entities, existing, entities[-2].id, entities[-1].id)


def test_back_reference_between_two_entities_is_rejected():
    x, y = make_entities(2)
    existing = [reference(x, y)]
    assert detect_cycle([x, y], existing, y.id, x.id)


def test_diamond_is_not_a_cycle():
    a, b, c, d = make_entities(4)
    existing = [reference(a, b), reference(a, c), reference(b, d)]
    assert not detect_cycle([a, b, c, d], existing, c.id, d.id)


def test_deleted_properties_are_ignored():
    x, y = make_entities(2)
    existing = [reference(x, y, is_deleted=True)]
    assert not detect_cycle([x, y], existing, y.id, x.id)


def test_edited_property_is_excluded():
    x, y, z = make_entities(3)
    edited = reference(x, y)
    existing = [edited, reference(z, x)]
    # Retargeting x -> y to x -> z would be a cycle through z -> x
    assert detect_cycle([x, y, z], existing, x.id, z.id)
    # With the edited edge left out, y -> x has nothing to close a loop with
    back = reference(y, x)
    assert not detect_cycle([x, y], [edited, back], y.id, x.id, exclude_property_id=edited.id)
    assert detect_cycle([x, y], [edited, back], y.id, x.id)


def test_non_reference_properties_do_not_form_edges():
    x, y = make_entities(2)
    text_prop = SimpleNamespace(
        id=uuid.uuid4(),
        entity_id=x.id,
        property_type="string",
        referenced_entity_id=y.id,
        is_deleted=False,
    )
    assert build_reference_graph([text_prop]) == {}
    assert not detect_cycle([x, y], [text_prop], y.id, x.id)


def test_long_chain_does_not_hit_recursion_limit():
    entities = make_entities(3000)
    existing = chain(entities)
    assert detect_cycle(entities, existing, entities[-1].id, entities[0].id)
