import uuid
from types import SimpleNamespace

import pytest

from recordbase.errors import InstanceValidationError, NotFoundError
from recordbase.services.instance_service import InstanceService

PROJECT_ID = uuid.uuid4()


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


class FakeInstanceHandler:
    def __init__(self):
        self.rows: dict[uuid.UUID, SimpleNamespace] = {}
        self.removed: list[uuid.UUID] = []

    async def create(self, obj_in):
        row = SimpleNamespace(id=uuid.uuid4(), is_deleted=False, **obj_in)
        self.rows[row.id] = row
        return row

    async def remove(self, instance_id):
        self.removed.append(instance_id)
        return self.rows.pop(instance_id, None)


class FakeValueHandler:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.stored: dict[uuid.UUID, dict] = {}

    async def upsert_property_instances(self, instance_id, rows, actor=None):
        if self.error is not None:
            raise self.error
        self.stored[instance_id] = rows


@pytest.fixture
def person(entity_id, make_property):
    entity = SimpleNamespace(id=entity_id, project_id=PROJECT_ID, display_string=None)
    properties = [
        make_property("firstName", is_required=True),
        make_property("age", "number"),
    ]
    return entity, properties


def build_service(person, value_handler):
    entity, properties = person
    instances = FakeInstanceHandler()
    service = InstanceService(
        FakeEntityHandler(entity),
        FakePropertyHandler(properties),
        instances,
        value_handler,
    )
    return service, instances


@pytest.mark.asyncio
async def test_create_stores_encoded_values(person, entity_id):
    values = FakeValueHandler()
    service, instances = build_service(person, values)
    first, age = person[1]

    created = await service.create_instance(
        PROJECT_ID, entity_id, {"firstName": "Ann", "age": 30}, actor="u1"
    )

    assert created.created_by == "u1"
    assert values.stored[created.id] == {first.id: ["Ann"], age.id: ["30"]}
    assert instances.removed == []


@pytest.mark.asyncio
async def test_failed_value_write_removes_the_instance(person, entity_id):
    error = RuntimeError("insert failed")
    service, instances = build_service(person, FakeValueHandler(error))

    with pytest.raises(RuntimeError) as exc_info:
        await service.create_instance(PROJECT_ID, entity_id, {"firstName": "Ann"})

    assert exc_info.value is error
    assert len(instances.removed) == 1
    assert instances.rows == {}


@pytest.mark.asyncio
async def test_invalid_values_never_create_an_instance(person, entity_id):
    service, instances = build_service(person, FakeValueHandler())

    with pytest.raises(InstanceValidationError):
        await service.create_instance(PROJECT_ID, entity_id, {"age": "thirty"})

    assert instances.rows == {}
    assert instances.removed == []


@pytest.mark.asyncio
async def test_entity_of_another_project_is_not_found(person, entity_id):
    service, instances = build_service(person, FakeValueHandler())

    with pytest.raises(NotFoundError):
        await service.create_instance(uuid.uuid4(), entity_id, {"firstName": "Ann"})
    assert instances.rows == {}
