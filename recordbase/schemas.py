from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from recordbase.models.enums import GroupOperator, PropertyType
from recordbase.utils.text_processing import to_camel_case

# ===== Schema payloads =====


class EntityCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Entity name")
    display_string: str = Field(
        default="", description="Template such as '{firstName} {lastName}'"
    )


class EntityUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    display_string: str | None = None


class EntityResponse(BaseModel):
    id: UUID
    project_id: UUID
    name: str
    display_string: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PropertyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    property_name: str | None = Field(
        default=None,
        max_length=255,
        description="Machine name; derived from the display name when omitted",
    )
    property_type: PropertyType
    is_list: bool = False
    is_required: bool = False
    default_value: str | None = None
    referenced_entity_id: UUID | None = None
    sort_order: int | None = None

    @model_validator(mode="after")
    def derive_property_name(self) -> "PropertyCreate":
        if not self.property_name:
            self.property_name = to_camel_case(self.name)
        return self


class PropertyUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    property_name: str | None = Field(default=None, max_length=255)
    property_type: PropertyType | None = None
    is_list: bool | None = None
    is_required: bool | None = None
    default_value: str | None = None
    referenced_entity_id: UUID | None = None
    sort_order: int | None = None


class PropertyResponse(BaseModel):
    id: UUID
    entity_id: UUID
    name: str
    property_name: str
    property_type: PropertyType
    is_list: bool
    is_required: bool
    default_value: str | None = None
    referenced_entity_id: UUID | None = None
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class ReorderPropertiesRequest(BaseModel):
    property_ids: list[UUID] = Field(..., min_length=1)


# ===== Instance payloads =====


class InstanceWrite(BaseModel):
    properties: dict[str, Any] = Field(
        default_factory=dict,
        description="Property machine name -> value (a list for list properties)",
    )


class StoredValue(BaseModel):
    """One live property-instance row as read from the store."""

    property_id: UUID
    value: str | None
    sort_order: int = 0

    model_config = ConfigDict(from_attributes=True)


class InstanceRow(BaseModel):
    """An entity instance with its raw stored values."""

    id: UUID
    entity_id: UUID
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None
    last_modified_by: str | None = None
    values: list[StoredValue] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class HydratedInstance(BaseModel):
    """An entity instance with typed values keyed by property machine name."""

    id: UUID
    entity_id: UUID
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None
    last_modified_by: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    display_string: str | None = None


class InstanceListResponse(BaseModel):
    instances: list[HydratedInstance]
    total: int
    page: int
    page_size: int


# ===== Query tree =====


class QueryRuleNode(BaseModel):
    id: UUID | None = None
    property_id: UUID
    operator: str = Field(..., description="Operator name, checked at evaluation time")
    value: str | None = None
    sort_order: int = 0

    model_config = ConfigDict(from_attributes=True)

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, v: Any) -> str | None:
        """Literals are stored as text; numbers and booleans from JSON are accepted."""
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, bool):
            return "true" if v else "false"
        return str(v)


class QueryGroupNode(BaseModel):
    """A boolean node of a query: its own rules plus nested groups."""

    id: UUID | None = None
    operator: GroupOperator = GroupOperator.AND
    sort_order: int = 0
    rules: list[QueryRuleNode] = Field(default_factory=list)
    groups: list["QueryGroupNode"] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_empty(self) -> bool:
        return not self.rules and not self.groups


class QueryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    entity_id: UUID


class QueryResponse(BaseModel):
    id: UUID
    project_id: UUID
    entity_id: UUID
    name: str
    root: QueryGroupNode | None = None

    model_config = ConfigDict(from_attributes=True)


class ExecuteQueryRequest(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int | None = Field(default=None, ge=1)
    groups: list[QueryGroupNode] | None = Field(
        default=None,
        description="Unsaved tree to run instead of the stored one; the first group is the root",
    )


class DraftQueryRequest(ExecuteQueryRequest):
    entity_id: UUID


class QueryResult(BaseModel):
    data: list[HydratedInstance]
    total: int
    page: int
    page_size: int
    total_pages: int


class MessageResponse(BaseModel):
    message: str = Field(..., description="Response message")
