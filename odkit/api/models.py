"""
odkit.api.models - Pydantic models for API requests/responses
=============================================================
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Example defaults (public OData reference service)
# ---------------------------------------------------------------------------

EXAMPLE_SERVICE = ""
EXAMPLE_ENTITY_SET = "Products"
EXAMPLE_SELECT = ["ID", "Name", "Price"]


class QueryRequest(BaseModel):
    """Request model for generic OData queries."""

    service: str = Field(
        default=EXAMPLE_SERVICE,
        description="Service path below the base URL; empty for the base URL itself",
        json_schema_extra={"example": EXAMPLE_SERVICE}
    )
    entity_set: str = Field(
        default=EXAMPLE_ENTITY_SET,
        description="Entity set name, e.g. Products",
        json_schema_extra={"example": EXAMPLE_ENTITY_SET}
    )
    select: Optional[List[str]] = Field(
        default=None,
        description="Fields for $select",
        json_schema_extra={"example": EXAMPLE_SELECT}
    )
    filter: Optional[str] = Field(
        default=None,
        description="Raw $filter expression",
        json_schema_extra={"example": "Price gt 10"}
    )
    orderby: Optional[str] = Field(
        default=None,
        description="Raw $orderby",
        json_schema_extra={"example": "Price desc"}
    )
    expand: Optional[str] = Field(
        default=None,
        description="Raw $expand",
        json_schema_extra={"example": "Categories"}
    )
    top: Optional[int] = Field(
        default=100,
        ge=0,
        description="Top rows per request",
        json_schema_extra={"example": 100}
    )
    skip: Optional[int] = Field(
        default=None,
        ge=0,
        description="$skip",
        json_schema_extra={"example": 0}
    )
    max_pages: Optional[int] = Field(
        default=1,
        description="Max pages to follow (paging)",
        json_schema_extra={"example": 1}
    )
    validate_fields: bool = Field(
        default=True,
        description="Validate $select fields against $metadata"
    )
    extra_params: Optional[Dict[str, str]] = Field(
        default=None,
        description="Any additional OData params"
    )


class QueryResponse(BaseModel):
    """Response model for OData queries."""

    service: str
    entity_set: str
    count: int
    items: List[Dict[str, Any]]


class PropertyInfo(BaseModel):
    name: str
    type: str
    nullable: bool = True
    default_value: Optional[str] = None


class NavigationInfo(BaseModel):
    name: str
    target_type: str
    is_collection: bool = False


class EntityTypeInfo(BaseModel):
    """Structure of the entity type behind an entity set."""

    entity_set: str
    entity_type: str
    keys: List[str]
    properties: List[PropertyInfo]
    navigation_properties: List[NavigationInfo] = Field(default_factory=list)


class EntityWriteRequest(BaseModel):
    """Attributes for create/update; update must include the key."""

    attrs: Dict[str, Any] = Field(
        description="Property name -> value",
        json_schema_extra={"example": {"ID": 99, "Name": "Bread", "Rating": 4, "Price": 2.5}}
    )


class EntityResponse(BaseModel):
    """A single entity serialized with its JSON wire values."""

    entity_set: str
    key: Optional[str] = None
    data: Dict[str, Any]
