import uuid
from types import SimpleNamespace

import pytest

from recordbase.config import settings
from recordbase.errors import NotFoundError, QueryEvaluationError
from recordbase.schemas import QueryGroupNode, QueryRuleNode
from recordbase.services.query_service import (
    QueryService,
    build_tree,
    clamp_page_size,
    flatten_tree,
)

PROJECT_ID = uuid.uuid4()


def as_rows(groups, rules, query_id):
    """Flat dicts as the ORM would hand them back."""
    group_rows = [SimpleNamespace(query_id=query_id, **g) for g in groups]
    rule_rows = [SimpleNamespace(id=uuid.uuid4(), **r) for r in rules]
    return group_rows, rule_rows


class FakeEntityHandler:
    def __init__(self, *entities):
        self.entities = {e.id: e for e in entities}

    async def get_in_project(self, project_id, entity_id):
        entity = self.entities.get(entity_id)
        return entity if entity and entity.project_id == project_id else None


class FakePropertyHandler:
    def __init__(self, properties):
        self.properties = properties

    async def list_properties(self, entity_id):
        return [p for p in self.properties if p.entity_id == entity_id]


class FakeQueryHandler:
    def __init__(self):
        self.queries = {}
        self.trees = {}

    async def create(self, obj_in):
        query = SimpleNamespace(id=uuid.uuid4(), **obj_in)
        self.queries[query.id] = query
        return query

    async def update(self, db_obj, obj_in):
        for key, value in obj_in.items():
            setattr(db_obj, key, value)
        return db_obj

    async def get_in_project(self, project_id, query_id):
        query = self.queries.get(query_id)
        return query if query and query.project_id == project_id else None

    async def replace_tree(self, query_id, groups, rules):
        self.trees[query_id] = as_rows(groups, rules, query_id)

    async def load_tree_rows(self, query_id):
        return self.trees.get(query_id, ([], []))


@pytest.fixture
def contacts(store, entity_id, make_property):
    age = make_property("age", "number")
    city = make_property("city")
    entity = SimpleNamespace(
        id=entity_id, project_id=PROJECT_ID, display_string="{city} ({age})"
    )
    ids = [
        store.add_instance(entity_id, {age: 30, city: "Paris"}),
        store.add_instance(entity_id, {age: 17, city: "Paris"}),
        store.add_instance(entity_id, {age: 45, city: "Lyon"}),
    ]
    service = QueryService(
        FakeQueryHandler(),
        FakeEntityHandler(entity),
        FakePropertyHandler([age, city]),
        store,
    )
    return service, age, city, ids


def test_flatten_orders_parents_first():
    prop_id = uuid.uuid4()
    root = QueryGroupNode(
        operator="OR",
        rules=[QueryRuleNode(property_id=prop_id, operator="is_null")],
        groups=[
            QueryGroupNode(
                operator="AND",
                rules=[
                    QueryRuleNode(property_id=prop_id, operator="equals", value="a"),
                    QueryRuleNode(property_id=prop_id, operator="equals", value="b"),
                ],
            )
        ],
    )
    groups, rules = flatten_tree(root)

    assert [g["parent_group_id"] for g in groups] == [None, groups[0]["id"]]
    assert [g["operator"] for g in groups] == ["OR", "AND"]
    assert [(r["value"], r["sort_order"]) for r in rules] == [
        (None, 0),
        ("a", 0),
        ("b", 1),
    ]
    assert rules[1]["query_group_id"] == groups[1]["id"]


def test_stored_rows_rebuild_the_same_tree():
    prop_id = uuid.uuid4()
    root = QueryGroupNode(
        operator="AND",
        rules=[QueryRuleNode(property_id=prop_id, operator="contains", value="x")],
        groups=[
            QueryGroupNode(operator="OR"),
            QueryGroupNode(
                operator="AND",
                rules=[QueryRuleNode(property_id=prop_id, operator="is_not_null")],
            ),
        ],
    )
    rebuilt = build_tree(*as_rows(*flatten_tree(root), query_id=uuid.uuid4()))

    assert rebuilt.operator == "AND"
    assert [r.value for r in rebuilt.rules] == ["x"]
    assert [g.operator for g in rebuilt.groups] == ["OR", "AND"]
    assert rebuilt.groups[0].is_empty
    assert rebuilt.groups[1].rules[0].operator == "is_not_null"


def test_no_rows_means_no_root():
    assert build_tree([], []) is None


def test_page_size_is_clamped():
    assert clamp_page_size(None) == settings.default_page_size
    assert clamp_page_size(settings.max_page_size + 1) == settings.max_page_size
    assert clamp_page_size(7) == 7


@pytest.mark.asyncio
async def test_run_pages_through_matches(contacts, entity_id):
    service, age, city, ids = contacts
    root = QueryGroupNode(
        rules=[QueryRuleNode(property_id=city.id, operator="equals", value="Paris")]
    )

    result = await service.run(PROJECT_ID, entity_id, root, page=1, page_size=1)

    assert result.total == 2
    assert result.total_pages == 2
    assert [r.id for r in result.data] == [ids[1]]
    assert result.data[0].display_string == "Paris (17)"


@pytest.mark.asyncio
async def test_run_with_no_match_is_an_empty_page(contacts, entity_id, store):
    service, age, city, _ = contacts
    root = QueryGroupNode(
        rules=[QueryRuleNode(property_id=age.id, operator="greater_than", value=99)]
    )

    result = await service.run(PROJECT_ID, entity_id, root)

    assert (result.total, result.total_pages, result.data) == (0, 0, [])
    assert store.fetch_calls == []


@pytest.mark.asyncio
async def test_run_rejects_bad_page_and_unknown_entity(contacts, entity_id):
    service, *_ = contacts
    with pytest.raises(QueryEvaluationError):
        await service.run(PROJECT_ID, entity_id, None, page=0)
    with pytest.raises(NotFoundError):
        await service.run(PROJECT_ID, uuid.uuid4(), None)


@pytest.mark.asyncio
async def test_saved_query_executes_its_stored_tree(contacts, entity_id):
    service, age, city, ids = contacts
    created = await service.create_query(
        PROJECT_ID, SimpleNamespace(name="Adults", entity_id=entity_id)
    )
    assert created.root is not None and created.root.is_empty

    # An empty saved tree returns every instance
    everything = await service.execute_query(PROJECT_ID, created.id)
    assert everything.total == 3

    root = QueryGroupNode(
        rules=[QueryRuleNode(property_id=age.id, operator="greater_than_or_equal", value="18")]
    )
    saved = await service.save_tree(PROJECT_ID, created.id, root, actor="u1")
    assert saved.root.rules[0].operator == "greater_than_or_equal"

    adults = await service.execute_query(PROJECT_ID, created.id)
    assert {r.id for r in adults.data} == {ids[0], ids[2]}


@pytest.mark.asyncio
async def test_invalid_tree_is_not_saved(contacts, entity_id):
    service, age, *_ = contacts
    created = await service.create_query(
        PROJECT_ID, SimpleNamespace(name="Broken", entity_id=entity_id)
    )
    root = QueryGroupNode(
        rules=[QueryRuleNode(property_id=age.id, operator="contains", value="3")]
    )

    with pytest.raises(QueryEvaluationError):
        await service.save_tree(PROJECT_ID, created.id, root)
    assert (await service.load_query(PROJECT_ID, created.id)).root.is_empty


@pytest.mark.asyncio
async def test_unsaved_groups_override_the_stored_tree(contacts, entity_id):
    service, _, city, ids = contacts
    created = await service.create_query(
        PROJECT_ID, SimpleNamespace(name="Draft", entity_id=entity_id)
    )
    draft = QueryGroupNode(
        rules=[QueryRuleNode(property_id=city.id, operator="equals", value="Lyon")]
    )

    result = await service.execute_query(PROJECT_ID, created.id, groups=[draft])
    assert [r.id for r in result.data] == [ids[2]]
