"""
odkit.odata.metadata - OData $metadata model
============================================

Parses an EDMX service description (OData v2 or v4) into entity types,
complex types, enum types and entity sets, and answers structural
questions about them without re-parsing.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Union
import logging
import xml.etree.ElementTree as ET

from odkit.odata.errors import ConstructionError, NotFoundError
from odkit.odata.registry import ServiceRegistry, TypeRegistry

if TYPE_CHECKING:
    from odkit.core.session import ODataSession
    from odkit.odata.entity import EntitySet


logger = logging.getLogger("odkit.odata.metadata")


@dataclass(frozen=True)
class PropertyDefinition:
    """
    A structural property as declared in $metadata.

    Attributes
    ----------
    name : str
        Property name
    type_name : str
        Wire type, e.g. "Edm.String" or "ODataDemo.Address"
    nullable : bool
        Whether null is an acceptable value
    default_value : str, optional
        Literal from the DefaultValue facet
    """
    name: str
    type_name: str
    nullable: bool = True
    default_value: Optional[str] = None
    unicode: bool = True
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    srid: Optional[str] = None

    def facets(self) -> Dict[str, Any]:
        """Type-specific facets understood by the property wrappers."""
        if self.type_name == "Edm.String":
            return {"unicode": self.unicode, "max_length": self.max_length}
        if self.type_name == "Edm.Decimal":
            return {"precision": self.precision, "scale": self.scale}
        return {}


@dataclass(frozen=True)
class NavigationPropertyDefinition:
    name: str
    target_type: str
    is_collection: bool = False
    partner: Optional[str] = None


@dataclass
class EntityTypeDefinition:
    """
    An entity type with its base-type properties flattened in.

    Attributes
    ----------
    name : str
        Qualified name, e.g. "ODataDemo.Product"
    properties : OrderedDict
        Property name -> PropertyDefinition, base type properties first
    keys : list of str
        Key property names in declaration order
    """
    name: str
    namespace: str
    properties: "OrderedDict[str, PropertyDefinition]" = field(default_factory=OrderedDict)
    keys: List[str] = field(default_factory=list)
    navigation_properties: "OrderedDict[str, NavigationPropertyDefinition]" = field(
        default_factory=OrderedDict
    )
    base_type: Optional[str] = None
    abstract: bool = False
    open_type: bool = False
    has_stream: bool = False

    @property
    def local_name(self) -> str:
        return self.name[len(self.namespace) + 1:]

    @property
    def primary_key(self) -> Optional[str]:
        return self.keys[0] if self.keys else None


@dataclass
class ComplexTypeDefinition:
    name: str
    namespace: str
    properties: "OrderedDict[str, PropertyDefinition]" = field(default_factory=OrderedDict)
    base_type: Optional[str] = None
    open_type: bool = False


@dataclass
class EnumTypeDefinition:
    name: str
    namespace: str
    members: "OrderedDict[str, int]" = field(default_factory=OrderedDict)
    underlying_type: str = "Edm.Int32"
    is_flags: bool = False


@dataclass
class EntitySetDefinition:
    """
    An OData entity set.

    Attributes
    ----------
    name : str
        Entity set name (e.g., "Products")
    entity_type : str
        Qualified entity type name
    properties : list of str
        Property names available on this entity set
    """
    name: str
    entity_type: str
    properties: List[str] = field(default_factory=list)


@dataclass
class Schema:
    namespace: str
    alias: Optional[str] = None
    entity_types: "OrderedDict[str, EntityTypeDefinition]" = field(default_factory=OrderedDict)
    complex_types: "OrderedDict[str, ComplexTypeDefinition]" = field(default_factory=OrderedDict)
    enum_types: "OrderedDict[str, EnumTypeDefinition]" = field(default_factory=OrderedDict)
    entity_sets: "OrderedDict[str, EntitySetDefinition]" = field(default_factory=OrderedDict)


def _strip_ns(tag: str) -> str:
    """Strip XML namespace from a tag name."""
    return tag.split("}", 1)[-1] if "}" in tag else tag


def _children(node: ET.Element, local_name: str) -> List[ET.Element]:
    return [c for c in node if _strip_ns(c.tag) == local_name]


def _flag(node: ET.Element, attr: str, default: bool = False) -> bool:
    raw = node.attrib.get(attr)
    return default if raw is None else raw.strip().lower() == "true"


def _int_facet(node: ET.Element, attr: str) -> Optional[int]:
    raw = node.attrib.get(attr)
    # "max", "variable" and "floating" mean unbounded
    return int(raw) if raw and raw.strip().isdigit() else None


def _unwrap_collection(type_name: str) -> Tuple[str, bool]:
    if type_name.startswith("Collection(") and type_name.endswith(")"):
        return type_name[len("Collection("):-1], True
    return type_name, False


class ODataMetadata:
    """
    In-memory model of an OData service built from its $metadata document.

    Parsing happens once at construction; a malformed document or an
    unresolved type reference raises :class:`ConstructionError` and no
    instance is produced.

    Parameters
    ----------
    service_url : str
        Service root URL
    name : str, optional
        Display name; defaults to the namespace of the first schema
    metadata_xml : str or bytes, optional
        Raw EDMX document
    metadata_file : str or Path, optional
        Path to an EDMX document
    registry : ServiceRegistry, optional
        If given, the instance registers itself there
    types : TypeRegistry, optional
        Registry receiving every complex and enum type; a private one
        is created when omitted

    Examples
    --------
    >>> meta = ODataMetadata(url, metadata_file="metadata.xml")
    >>> meta.entity_sets()
    OrderedDict([('Products', 'ODataDemo.Product'), ...])
    >>> meta.get_property_type("ODataDemo.Product", "ProductStatus")
    'ODataDemo.ProductStatus'
    >>> meta["Products"].query().where("Price gt 10")
    """

    def __init__(
        self,
        service_url: str,
        *,
        name: Optional[str] = None,
        metadata_xml: Optional[Union[str, bytes]] = None,
        metadata_file: Optional[Union[str, Path]] = None,
        registry: Optional[ServiceRegistry] = None,
        types: Optional[TypeRegistry] = None,
    ) -> None:
        self.service_url = service_url
        self.types = types if types is not None else TypeRegistry()
        self.sess: Optional["ODataSession"] = None
        self._service_path = ""

        if metadata_xml is None:
            if metadata_file is None:
                raise ConstructionError("Either metadata_xml or metadata_file is required")
            try:
                metadata_xml = Path(metadata_file).read_bytes()
            except OSError as e:
                raise ConstructionError(f"Cannot read metadata file {metadata_file}: {e}") from e

        self.schemas: "OrderedDict[str, Schema]" = OrderedDict()
        self._aliases: Dict[str, str] = {}
        self._entity_types: "OrderedDict[str, EntityTypeDefinition]" = OrderedDict()
        self._entity_sets: "OrderedDict[str, EntitySetDefinition]" = OrderedDict()
        self._parse(metadata_xml)

        self.name = name or self.namespace
        if registry is not None:
            registry.add(self)

    @classmethod
    def fetch(
        cls,
        sess: "ODataSession",
        service_path: str = "",
        **kwargs: Any,
    ) -> "ODataMetadata":
        """
        Download ``$metadata`` through a session and build the model.

        Parameters
        ----------
        sess : ODataSession
            Active session
        service_path : str
            Service path below the session base URL
        **kwargs
            Passed to the constructor (name, registry, types)
        """
        path = f"{service_path.strip('/')}/$metadata" if service_path else "$metadata"
        xml_text = sess.get_text(path)
        meta = cls(sess.url(service_path), metadata_xml=xml_text, **kwargs)
        meta.sess = sess
        meta._service_path = service_path
        return meta

    def refresh(self) -> None:
        """
        Re-download and re-parse $metadata; only for fetched instances.

        The new document is parsed into fresh tables which replace the
        current ones only on success. A failed fetch or a malformed
        document leaves this instance unchanged.
        """
        if self.sess is None:
            raise ConstructionError("Metadata was not fetched through a session")
        path = f"{self._service_path.strip('/')}/$metadata" if self._service_path else "$metadata"
        fresh = type(self)(self.service_url, metadata_xml=self.sess.get_text(path), types=TypeRegistry())
        self.schemas = fresh.schemas
        self._aliases = fresh._aliases
        self._entity_types = fresh._entity_types
        self._entity_sets = fresh._entity_sets
        for qualified_name, definition in self.complex_types().items():
            self.types.register(qualified_name, definition)
        for qualified_name, definition in self.enum_types().items():
            self.types.register(qualified_name, definition)

    # ---------------- parsing ----------------

    def _parse(self, xml_text: Union[str, bytes]) -> None:
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            raise ConstructionError(f"Malformed metadata document: {e}") from e

        schema_nodes = [n for n in root.iter() if _strip_ns(n.tag) == "Schema"]
        if not schema_nodes:
            raise ConstructionError("Metadata document contains no Schema")

        # First pass: names, so references can point forward or across schemas
        for node in schema_nodes:
            namespace = node.attrib.get("Namespace")
            if not namespace:
                raise ConstructionError("Schema without Namespace")
            schema = Schema(namespace=namespace, alias=node.attrib.get("Alias"))
            self.schemas[namespace] = schema
            if schema.alias:
                self._aliases[schema.alias] = namespace

        raw_entities: "OrderedDict[str, Tuple[Schema, ET.Element]]" = OrderedDict()
        associations: Dict[str, Dict[str, Tuple[str, bool]]] = {}

        for node in schema_nodes:
            schema = self.schemas[node.attrib["Namespace"]]
            for child in node:
                kind = _strip_ns(child.tag)
                local = child.attrib.get("Name")
                if kind in ("EntityType", "ComplexType", "EnumType", "Association") and not local:
                    raise ConstructionError(f"{kind} without Name in schema {schema.namespace}")
                qualified = f"{schema.namespace}.{local}"
                if kind == "EntityType":
                    raw_entities[qualified] = (schema, child)
                elif kind == "ComplexType":
                    schema.complex_types[local] = ComplexTypeDefinition(
                        name=qualified,
                        namespace=schema.namespace,
                        base_type=self._qualify(child.attrib.get("BaseType")),
                        open_type=_flag(child, "OpenType"),
                    )
                elif kind == "EnumType":
                    schema.enum_types[local] = self._parse_enum(schema, child)
                elif kind == "Association":
                    associations[qualified] = self._parse_association(child)

        for qualified_name, definition in self.complex_types().items():
            self.types.register(qualified_name, definition)
        for qualified_name, definition in self.enum_types().items():
            self.types.register(qualified_name, definition)

        for node in schema_nodes:
            schema = self.schemas[node.attrib["Namespace"]]
            for child in _children(node, "ComplexType"):
                definition = schema.complex_types[child.attrib["Name"]]
                for prop in _children(child, "Property"):
                    pdef = self._parse_property(prop, definition.name)
                    definition.properties[pdef.name] = pdef

        complex_types = self.complex_types()
        flattened: set = set()
        for definition in complex_types.values():
            self._flatten(definition, complex_types, flattened, ())

        for qualified, (schema, node) in raw_entities.items():
            definition = EntityTypeDefinition(
                name=qualified,
                namespace=schema.namespace,
                base_type=self._qualify(node.attrib.get("BaseType")),
                abstract=_flag(node, "Abstract"),
                open_type=_flag(node, "OpenType"),
                has_stream=_flag(node, "HasStream"),
            )
            for key in _children(node, "Key"):
                definition.keys.extend(
                    ref.attrib["Name"] for ref in _children(key, "PropertyRef") if ref.attrib.get("Name")
                )
            for prop in _children(node, "Property"):
                pdef = self._parse_property(prop, qualified)
                definition.properties[pdef.name] = pdef
            for nav in _children(node, "NavigationProperty"):
                ndef = self._parse_navigation(nav, qualified, associations)
                definition.navigation_properties[ndef.name] = ndef
            schema.entity_types[definition.local_name] = definition
            self._entity_types[qualified] = definition

        flattened = set()
        for definition in self._entity_types.values():
            self._flatten(definition, self._entity_types, flattened, ())

        for qualified, definition in self._entity_types.items():
            for key in definition.keys:
                if key not in definition.properties:
                    raise ConstructionError(f"Key {key!r} of {qualified} is not a declared property")
            for ndef in definition.navigation_properties.values():
                if ndef.target_type not in self._entity_types:
                    raise ConstructionError(
                        f"Navigation property {qualified}.{ndef.name} targets unknown type {ndef.target_type!r}"
                    )

        for node in schema_nodes:
            schema = self.schemas[node.attrib["Namespace"]]
            for container in _children(node, "EntityContainer"):
                for es in _children(container, "EntitySet"):
                    self._parse_entity_set(schema, es)

        logger.debug(
            "Parsed metadata: %d schemas, %d entity types, %d entity sets, %d complex, %d enum",
            len(self.schemas),
            len(self._entity_types),
            len(self._entity_sets),
            len(self.complex_types()),
            len(self.enum_types()),
        )

    def _qualify(self, type_name: Optional[str]) -> Optional[str]:
        """Resolve an alias-qualified name to its namespace-qualified form."""
        if not type_name:
            return type_name
        inner, is_collection = _unwrap_collection(type_name)
        prefix, _, local = inner.rpartition(".")
        if prefix in self._aliases:
            inner = f"{self._aliases[prefix]}.{local}"
        return f"Collection({inner})" if is_collection else inner

    def _known_type(self, type_name: str) -> bool:
        inner, _ = _unwrap_collection(type_name)
        return inner.startswith("Edm.") or inner in self.types

    def _parse_property(self, node: ET.Element, owner: str) -> PropertyDefinition:
        name = node.attrib.get("Name")
        type_name = self._qualify(node.attrib.get("Type"))
        if not name or not type_name:
            raise ConstructionError(f"Property without Name or Type on {owner}")
        if not self._known_type(type_name):
            raise ConstructionError(f"Property {owner}.{name} references unknown type {type_name!r}")
        return PropertyDefinition(
            name=name,
            type_name=type_name,
            nullable=_flag(node, "Nullable", default=True),
            default_value=node.attrib.get("DefaultValue"),
            unicode=_flag(node, "Unicode", default=True),
            max_length=_int_facet(node, "MaxLength"),
            precision=_int_facet(node, "Precision"),
            scale=_int_facet(node, "Scale"),
            srid=node.attrib.get("SRID"),
        )

    def _parse_enum(self, schema: Schema, node: ET.Element) -> EnumTypeDefinition:
        definition = EnumTypeDefinition(
            name=f"{schema.namespace}.{node.attrib['Name']}",
            namespace=schema.namespace,
            underlying_type=node.attrib.get("UnderlyingType", "Edm.Int32"),
            is_flags=_flag(node, "IsFlags"),
        )
        next_value = 1 if definition.is_flags else 0
        for member in _children(node, "Member"):
            member_name = member.attrib.get("Name")
            if not member_name:
                raise ConstructionError(f"Enum member without Name on {definition.name}")
            raw = member.attrib.get("Value")
            try:
                value = int(raw) if raw is not None else next_value
            except ValueError as e:
                raise ConstructionError(f"Enum member {definition.name}.{member_name} has invalid value {raw!r}") from e
            definition.members[member_name] = value
            next_value = value * 2 if definition.is_flags else value + 1
        return definition

    def _parse_association(self, node: ET.Element) -> Dict[str, Tuple[str, bool]]:
        ends: Dict[str, Tuple[str, bool]] = {}
        for end in _children(node, "End"):
            ends[end.attrib.get("Role", "")] = (
                self._qualify(end.attrib.get("Type", "")),
                end.attrib.get("Multiplicity") == "*",
            )
        return ends

    def _parse_navigation(
        self,
        node: ET.Element,
        owner: str,
        associations: Dict[str, Dict[str, Tuple[str, bool]]],
    ) -> NavigationPropertyDefinition:
        name = node.attrib.get("Name")
        if not name:
            raise ConstructionError(f"NavigationProperty without Name on {owner}")
        if "Type" in node.attrib:
            target, is_collection = _unwrap_collection(self._qualify(node.attrib["Type"]))
        else:
            ends = associations.get(self._qualify(node.attrib.get("Relationship", "")))
            if not ends or node.attrib.get("ToRole") not in ends:
                raise ConstructionError(f"Navigation property {owner}.{name} has an unresolved relationship")
            target, is_collection = ends[node.attrib["ToRole"]]
        return NavigationPropertyDefinition(
            name=name,
            target_type=target,
            is_collection=is_collection,
            partner=node.attrib.get("Partner"),
        )

    def _flatten(
        self,
        definition: Union[EntityTypeDefinition, ComplexTypeDefinition],
        table: Mapping[str, Any],
        flattened: set,
        chain: Tuple[str, ...],
    ) -> None:
        """Merge inherited members into ``definition``; the base must live in ``table``."""
        if definition.name in flattened:
            return
        if definition.name in chain:
            raise ConstructionError(f"Inheritance cycle through {definition.name}")
        if definition.base_type:
            base = table.get(definition.base_type)
            if base is None:
                raise ConstructionError(f"{definition.name} derives from unknown type {definition.base_type!r}")
            self._flatten(base, table, flattened, chain + (definition.name,))

            properties = OrderedDict(base.properties)
            properties.update(definition.properties)
            definition.properties = properties
            if isinstance(definition, ComplexTypeDefinition):
                flattened.add(definition.name)
                return
            navigation = OrderedDict(base.navigation_properties)
            navigation.update(definition.navigation_properties)
            definition.navigation_properties = navigation
            if not definition.keys:
                definition.keys = list(base.keys)
        flattened.add(definition.name)

    def _parse_entity_set(self, schema: Schema, node: ET.Element) -> None:
        es_name = node.attrib.get("Name")
        et_full = self._qualify(node.attrib.get("EntityType"))
        if not es_name or not et_full:
            raise ConstructionError(f"EntitySet without Name or EntityType in {schema.namespace}")
        if et_full not in self._entity_types:
            raise ConstructionError(f"EntitySet {es_name} targets unknown entity type {et_full!r}")
        if es_name in self._entity_sets:
            raise ConstructionError(f"Duplicate entity set name {es_name!r}")
        definition = EntitySetDefinition(
            name=es_name,
            entity_type=et_full,
            properties=list(self._entity_types[et_full].properties),
        )
        schema.entity_sets[es_name] = definition
        self._entity_sets[es_name] = definition

    # ---------------- structural queries ----------------

    @property
    def namespace(self) -> str:
        """Namespace of the first schema in the document."""
        return next(iter(self.schemas))

    def entity_types(self) -> List[str]:
        """Qualified entity type names in declaration order."""
        return list(self._entity_types)

    def entity_sets(self) -> "OrderedDict[str, str]":
        """Entity set name -> qualified entity type name, in declaration order."""
        return OrderedDict((name, d.entity_type) for name, d in self._entity_sets.items())

    def complex_types(self) -> "OrderedDict[str, ComplexTypeDefinition]":
        out: "OrderedDict[str, ComplexTypeDefinition]" = OrderedDict()
        for schema in self.schemas.values():
            for definition in schema.complex_types.values():
                out[definition.name] = definition
        return out

    def enum_types(self) -> "OrderedDict[str, EnumTypeDefinition]":
        out: "OrderedDict[str, EnumTypeDefinition]" = OrderedDict()
        for schema in self.schemas.values():
            for definition in schema.enum_types.values():
                out[definition.name] = definition
        return out

    def entity_type(self, type_name: str) -> EntityTypeDefinition:
        definition = self._entity_types.get(self._qualify(type_name))
        if definition is None:
            raise NotFoundError(f"Unknown entity type {type_name!r}")
        return definition

    def properties_for_entity(self, type_name: str) -> "OrderedDict[str, PropertyDefinition]":
        return OrderedDict(self.entity_type(type_name).properties)

    def navigation_properties_for(self, type_name: str) -> "OrderedDict[str, NavigationPropertyDefinition]":
        return OrderedDict(self.entity_type(type_name).navigation_properties)

    def primary_key_for(self, type_name: str) -> Optional[str]:
        return self.entity_type(type_name).primary_key

    def get_property_type(self, type_name: str, property_name: str) -> str:
        """
        Wire type of a property.

        ``property_name`` may be a ``/``-separated path through complex
        types, e.g. ``"Address/City"``. Enum and complex references
        resolve to their qualified type name.

        Raises
        ------
        NotFoundError
            If the type or any path segment is unknown
        """
        owner = type_name
        properties = self.entity_type(type_name).properties
        segments = property_name.split("/")
        for i, segment in enumerate(segments):
            definition = properties.get(segment)
            if definition is None:
                raise NotFoundError(f"{owner} has no property {segment!r}")
            if i == len(segments) - 1:
                return definition.type_name
            complex_type = self.types.lookup(definition.type_name)
            if not isinstance(complex_type, ComplexTypeDefinition):
                raise NotFoundError(f"{owner}.{segment} is not a complex property")
            owner, properties = complex_type.name, complex_type.properties
        raise NotFoundError(f"Empty property path for {type_name}")

    def entity_set_definition(self, entity_set: str) -> EntitySetDefinition:
        definition = self._entity_sets.get(entity_set)
        if definition is None:
            raise NotFoundError(f"Unknown entity set {entity_set!r}")
        return definition

    def lookup(self, entity_set: str) -> "EntitySet":
        """
        Runtime handle for an entity set.

        Raises
        ------
        NotFoundError
            If the service has no entity set of that name
        """
        from odkit.odata.entity import EntitySet

        return EntitySet(self, self.entity_set_definition(entity_set))

    __getitem__ = lookup

    def __contains__(self, entity_set: object) -> bool:
        return entity_set in self._entity_sets

    def properties(self, entity_set: str) -> List[str]:
        """
        Get list of properties for an entity set.

        Returns an empty list for unknown entity sets.
        """
        info = self._entity_sets.get(entity_set)
        return list(info.properties) if info else []

    def validate_select(
        self,
        entity_set: str,
        fields: List[str]
    ) -> Tuple[List[str], List[str]]:
        """
        Validate fields against entity set metadata.

        Returns
        -------
        tuple of (list, list)
            (valid_fields, unknown_fields)
        """
        props = set(self.properties(entity_set))
        valid, unknown = [], []
        for f in fields:
            (valid if f in props else unknown).append(f)
        return valid, unknown
