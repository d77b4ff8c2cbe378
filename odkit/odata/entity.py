"""
odkit.odata.entity - Entity runtime
===================================

Live instances of entity types. An :class:`Entity` maps every property
its type declares to a typed :class:`~odkit.odata.properties.Property`,
knows whether it has been persisted, and serializes itself back to a
JSON payload.

:class:`EntitySet` is the runtime handle returned by
``ODataMetadata.lookup``; it creates entities and seeds queries.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Union
from urllib.parse import unquote
import logging
import re

from odkit.odata.errors import NotFoundError, ValidationError
from odkit.odata.metadata import EntitySetDefinition, EntityTypeDefinition
from odkit.odata.properties import NavigationProperty, Property, build_navigation, build_property
from odkit.odata.query import ODataQuery, key_segment

if TYPE_CHECKING:
    from odkit.odata.metadata import ODataMetadata


logger = logging.getLogger("odkit.odata.entity")

ENTITY_ID_RE = re.compile(r"\((.+)\)")


class EntitySet:
    """
    Runtime handle for one entity set of a service.

    Attributes
    ----------
    name : str
        Entity set name, e.g. "Products"
    entity_type : str
        Qualified entity type name, e.g. "ODataDemo.Product"
    """

    def __init__(self, metadata: "ODataMetadata", definition: EntitySetDefinition) -> None:
        self.metadata = metadata
        self.definition = definition
        self.name = definition.name
        self.entity_type = definition.entity_type

    def __repr__(self) -> str:
        return f"<EntitySet {self.name} of {self.entity_type}>"

    @property
    def type(self) -> str:
        return self.entity_type

    @property
    def entity_type_definition(self) -> EntityTypeDefinition:
        return self.metadata.entity_type(self.entity_type)

    @property
    def primary_key(self) -> Optional[str]:
        return self.entity_type_definition.primary_key

    def query(self) -> ODataQuery:
        """New query builder seeded with this set's path and key type."""
        return ODataQuery(self)

    def new_entity(self, attrs: Optional[Mapping[str, Any]] = None, *, partial: bool = False) -> "Entity":
        return Entity.from_attrs(attrs or {}, self, partial=partial)

    def entity_from_json(self, data: Mapping[str, Any], *, partial: bool = False) -> "Entity":
        return Entity.from_json(data, self, partial=partial)


class Entity:
    """
    A live instance of an entity type.

    Parameters
    ----------
    metadata : ODataMetadata
        Service model the type belongs to
    entity_type : str
        Qualified entity type name
    entity_set : EntitySet, optional
        Set the entity lives in; required to build resource paths

    Examples
    --------
    >>> product = meta["Products"].new_entity({"Name": "Bread", "Rating": 4}, partial=True)
    >>> product.is_new()
    True
    >>> product["Name"]
    'Bread'
    >>> product.to_payload(changed_only=True)
    {'Name': 'Bread', 'Rating': 4}
    """

    def __init__(
        self,
        metadata: "ODataMetadata",
        entity_type: str,
        *,
        entity_set: Optional[EntitySet] = None,
    ) -> None:
        self.metadata = metadata
        self.entity_set = entity_set
        self.entity_type = metadata.entity_type(entity_type)
        self.properties: "OrderedDict[str, Property]" = OrderedDict(
            (name, build_property(definition, metadata.types))
            for name, definition in self.entity_type.properties.items()
        )
        self.links: "OrderedDict[str, NavigationProperty]" = OrderedDict(
            (name, build_navigation(definition))
            for name, definition in self.entity_type.navigation_properties.items()
        )
        self.annotations: Dict[str, Any] = {}
        self._new = True
        self._key_literal: Optional[str] = None

    def __repr__(self) -> str:
        state = "new" if self._new else self._key_literal
        return f"<Entity {self.entity_type.name} {state}>"

    # ---------------- construction ----------------

    @classmethod
    def from_json(
        cls,
        data: Mapping[str, Any],
        entity_set: Optional[EntitySet] = None,
        *,
        metadata: Optional["ODataMetadata"] = None,
        entity_type: Optional[str] = None,
        partial: bool = False,
    ) -> "Entity":
        """
        Build a persisted entity from a JSON object returned by the service.

        Every declared property is looked up by name. A missing nullable
        property becomes ``None``; a missing required property takes its
        declared default or raises :class:`ValidationError`, unless
        ``partial`` is set (responses to ``$select``).

        Parameters
        ----------
        data : mapping
            One entity object from the response body
        entity_set : EntitySet, optional
            Set the entity was read from
        metadata, entity_type : optional
            Used instead of ``entity_set`` for inline (expanded) entities
        partial : bool
            Skip the required-property check
        """
        if entity_set is not None:
            metadata, entity_type = entity_set.metadata, entity_set.entity_type
        if metadata is None or entity_type is None:
            raise ValueError("from_json needs an entity_set or metadata and entity_type")

        entity = cls(metadata, entity_type, entity_set=entity_set)
        for key, value in data.items():
            if key in entity.properties:
                entity.properties[key].load(value)
            elif key in entity.links:
                entity._load_link(key, value)
            elif key.startswith("@") or "@" in key or key == "__metadata":
                entity.annotations[key] = value
            else:
                logger.debug("Ignoring undeclared field %s on %s", key, entity_type)

        for name, prop in entity.properties.items():
            if prop.is_set() or prop.has_default_value():
                continue
            if prop.allows_nil:
                prop.load(None)
            elif not partial:
                raise ValidationError("Required property missing from payload", name)

        entity._new = False
        entity._key_literal = entity.key_literal
        return entity

    @classmethod
    def from_attrs(
        cls,
        attrs: Mapping[str, Any],
        entity_set: EntitySet,
        *,
        partial: bool = False,
    ) -> "Entity":
        """
        Build an entity from caller-supplied attributes, e.g. before a create.

        The primary key may be absent, in which case the entity is new.
        ``partial`` skips the required-property check (update payloads).

        Raises
        ------
        NotFoundError
            For attribute names the entity type does not declare
        ValidationError
            For invalid values or missing required properties
        """
        entity = cls(entity_set.metadata, entity_set.entity_type, entity_set=entity_set)
        unknown = [k for k in attrs if k not in entity.properties and k not in entity.links]
        if unknown:
            raise NotFoundError(f"{entity.entity_type.name} has no properties {', '.join(unknown)}")

        for key, value in attrs.items():
            if key in entity.properties:
                entity.properties[key].set_value(value)
            else:
                entity.links[key].set_value(value)

        if not partial:
            keys = set(entity.entity_type.keys)
            for name, prop in entity.properties.items():
                if prop.is_set() or prop.allows_nil or prop.has_default_value() or name in keys:
                    continue
                raise ValidationError("Required property is missing", name)

        key_literal = entity.key_literal
        entity._new = key_literal is None
        entity._key_literal = key_literal
        return entity

    def _load_link(self, name: str, value: Any) -> None:
        link = self.links[name]
        if isinstance(value, Mapping) and "__deferred" in value:
            self.annotations[f"{name}@deferred"] = value["__deferred"]
            return
        if link.is_collection and isinstance(value, Mapping) and "results" in value:
            value = value["results"]
        link.load(value)

    # ---------------- properties ----------------

    def get_property(self, name: str) -> Property:
        """
        Typed property wrapper by name.

        Raises
        ------
        NotFoundError
            If the entity type does not declare ``name``
        """
        prop = self.properties.get(name)
        if prop is None:
            raise NotFoundError(f"{self.entity_type.name} has no property {name!r}")
        return prop

    def __getitem__(self, name: str) -> Any:
        return self.get_property(name).value

    def __setitem__(self, name: str, value: Any) -> None:
        self.get_property(name).set_value(value)

    def __contains__(self, name: object) -> bool:
        return name in self.properties

    def __iter__(self) -> Iterator[str]:
        return iter(self.properties)

    def keys(self) -> List[str]:
        return list(self.properties)

    def navigation(self, name: str) -> Union["Entity", List["Entity"], None]:
        """
        Entities inlined for a navigation property by ``$expand``.

        Returns None (or an empty list for collections) when nothing
        was expanded.
        """
        link = self.links.get(name)
        if link is None:
            raise NotFoundError(f"{self.entity_type.name} has no navigation property {name!r}")
        payload = link.value
        if payload is None:
            return [] if link.is_collection else None

        def build(item: Mapping[str, Any]) -> "Entity":
            return Entity.from_json(item, metadata=self.metadata, entity_type=link.target_type, partial=True)

        if link.is_collection:
            return [build(item) for item in payload]
        return build(payload)

    # ---------------- identity ----------------

    @property
    def primary_key(self) -> Optional[str]:
        return self.entity_type.primary_key

    @property
    def key_literal(self) -> Optional[str]:
        """
        Key as it appears inside ``Set(<key>)``, or None while unknown.

        Composite keys render as ``A=1,B='x'``.
        """
        keys = self.entity_type.keys
        if not keys:
            return None
        props = [self.properties[k] for k in keys]
        if any(not p.is_set() or p.value is None for p in props):
            return None
        if len(props) == 1:
            return props[0].url_value
        return ",".join(f"{p.name}={p.url_value}" for p in props)

    def is_new(self) -> bool:
        return self._new

    def mark_persisted(self, entity_id: str) -> None:
        """
        Record the identifier returned by a successful create.

        ``entity_id`` may be a bare key literal, ``(key)`` or a full
        entity URL such as ``https://host/svc/Products(7)``.
        """
        m = ENTITY_ID_RE.search(entity_id)
        literal = unquote(m.group(1) if m else entity_id)
        key_name = self.primary_key
        if key_name and len(self.entity_type.keys) == 1:
            text = literal
            if text.startswith("'") and text.endswith("'"):
                text = text[1:-1].replace("''", "'")
            self.properties[key_name].load(text)
            literal = self.properties[key_name].url_value
        self._key_literal = literal
        self._new = False

    def resource_path(self) -> str:
        """``Set`` for new entities, ``Set(<key>)`` once persisted."""
        if self.entity_set is None:
            raise NotFoundError(f"{self.entity_type.name} entity is not bound to an entity set")
        if self._new or self._key_literal is None:
            return self.entity_set.name
        return key_segment(self.entity_set.name, self._key_literal)

    # ---------------- serialization ----------------

    def to_payload(self, *, changed_only: bool = False) -> Dict[str, Any]:
        """
        JSON payload for create/update requests.

        Nullable properties holding ``None`` are omitted; required
        properties are always emitted.
        """
        payload: Dict[str, Any] = {}
        for name, prop in self.properties.items():
            if changed_only and not prop.changed:
                continue
            value = prop.json_value
            if value is None and prop.allows_nil:
                continue
            payload[name] = value
        return payload

    def to_dict(self) -> "OrderedDict[str, Any]":
        """Typed Python values of every property."""
        return OrderedDict((name, prop.value) for name, prop in self.properties.items())
