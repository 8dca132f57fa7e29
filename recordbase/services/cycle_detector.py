"""
Reference-cycle detection for entity-reference properties.

Entity-reference properties form a directed graph entity -> referenced entity
across a project. That graph must stay acyclic, so every schema mutation that
sets or changes ``referenced_entity_id`` is checked here before it is
committed. The adjacency list is rebuilt from the given rows on every call;
the detector holds no state and never touches the database.
"""

from collections.abc import Hashable, Iterable
from typing import Any

from recordbase.models.enums import PropertyType


def build_reference_graph(
    reference_properties: Iterable[Any],
    exclude_property_id: Hashable | None = None,
) -> dict[Hashable, set[Hashable]]:
    """Adjacency list of live entity-reference properties, keyed by entity id."""
    graph: dict[Hashable, set[Hashable]] = {}
    for prop in reference_properties:
        if getattr(prop, "is_deleted", False):
            continue
        if PropertyType(prop.property_type) != PropertyType.ENTITY:
            continue
        if not prop.referenced_entity_id:
            continue
        if exclude_property_id is not None and prop.id == exclude_property_id:
            continue
        graph.setdefault(prop.entity_id, set()).add(prop.referenced_entity_id)
    return graph


def _reaches_back_edge(graph: dict[Hashable, set[Hashable]], start, visited: set) -> bool:
    # Iterative DFS; `on_stack` mirrors the recursion stack of the classic algorithm
    on_stack = {start}
    visited.add(start)
    stack = [(start, iter(graph.get(start, ())))]

    while stack:
        node, neighbours = stack[-1]
        for neighbour in neighbours:
            if neighbour in on_stack:
                return True
            if neighbour not in visited:
                visited.add(neighbour)
                on_stack.add(neighbour)
                stack.append((neighbour, iter(graph.get(neighbour, ()))))
                break
        else:
            stack.pop()
            on_stack.discard(node)
    return False


def detect_cycle(
    entities: Iterable[Any],
    reference_properties: Iterable[Any],
    source_entity_id: Hashable,
    target_entity_id: Hashable,
    exclude_property_id: Hashable | None = None,
) -> bool:
    """
    Return True if adding the edge source -> target would create a cycle.

    ``exclude_property_id`` removes the property being edited from the
    existing edges so an update is not compared against its own old value.
    A self reference (source == target) is a cycle.
    """
    graph = build_reference_graph(reference_properties, exclude_property_id)
    graph.setdefault(source_entity_id, set()).add(target_entity_id)

    roots = [e.id for e in entities if not getattr(e, "is_deleted", False)]
    roots.append(source_entity_id)

    visited: set = set()
    for root in roots:
        if root not in visited and _reaches_back_edge(graph, root, visited):
            return True
    return False
