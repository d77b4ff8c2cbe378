"""
odkit.odata - Metadata-driven OData model
=========================================

- ODataMetadata: $metadata parsing and structural queries
- EntitySet / Entity: runtime entity sets and typed entities
- ODataQuery: fluent query builder
- ServiceRegistry / TypeRegistry: explicit lookup tables
- ODataService: service-scoped client over a session
- Property classes: typed values per wire type

"""

from odkit.odata.errors import (
    ConstructionError,
    NotFoundError,
    ODataError,
    TransportError,
    ValidationError,
)
from odkit.odata.registry import ServiceRegistry, TypeRegistry
from odkit.odata.metadata import (
    ComplexTypeDefinition,
    EntitySetDefinition,
    EntityTypeDefinition,
    EnumTypeDefinition,
    NavigationPropertyDefinition,
    ODataMetadata,
    PropertyDefinition,
)
from odkit.odata.properties import Property, build_property, escape_odata_literal
from odkit.odata.query import Criteria, ODataQuery
from odkit.odata.entity import Entity, EntitySet
from odkit.odata.service import ODataService

__all__ = [
    "ODataError",
    "ValidationError",
    "NotFoundError",
    "ConstructionError",
    "TransportError",
    "ServiceRegistry",
    "TypeRegistry",
    "ODataMetadata",
    "PropertyDefinition",
    "NavigationPropertyDefinition",
    "EntityTypeDefinition",
    "ComplexTypeDefinition",
    "EnumTypeDefinition",
    "EntitySetDefinition",
    "Property",
    "build_property",
    "escape_odata_literal",
    "ODataQuery",
    "Criteria",
    "Entity",
    "EntitySet",
    "ODataService",
]
