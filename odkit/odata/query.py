"""
odkit.odata.query - Query builder
=================================

Accumulates ``$filter``, ``$select``, ``$orderby``, ``$top``, ``$skip``
and ``$expand`` clauses for one entity set and renders them as a
resource path with a percent-encoded query string.

>>> q = meta["Products"].query()
>>> q.select("Name").select("Name").where("Price gt 10")
>>> str(q)
'Products?$select=Name&$filter=Price%20gt%2010'
>>> str(meta["Products"].query().find(1))
'Products(1)'
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote
import re

from odkit.odata.errors import NotFoundError
from odkit.odata.metadata import ComplexTypeDefinition, PropertyDefinition
from odkit.odata.properties import build_property, escape_odata_literal

if TYPE_CHECKING:
    from odkit.odata.entity import EntitySet


SAFE_CHARS = "/,'():"
KEY_SAFE_CHARS = "'(),=:"
OR_RE = re.compile(r"\sor\s", re.IGNORECASE)


def _quote(value: str) -> str:
    return quote(value, safe=SAFE_CHARS)


def key_segment(resource: str, literal: str) -> str:
    """
    Render ``resource(<literal>)`` with the key percent-encoded.

    >>> key_segment("Items", "'a/b'")
    "Items('a%2Fb')"
    """
    return f"{resource}({quote(literal, safe=KEY_SAFE_CHARS)})"


def _join_csv(items: List[str]) -> str:
    """Join items as comma-separated values, stripping whitespace."""
    return ",".join([s.strip() for s in items if s and s.strip()])


def _plain_literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return f"'{escape_odata_literal(value)}'"
    return str(value)


class Criteria:
    """
    Typed comparison helper for one property.

    >>> q["Rating"].gt(3)
    'Rating gt 3'
    >>> q["Name"].startswith("B")
    "startswith(Name,'B')"
    """

    def __init__(self, query: "ODataQuery", name: str) -> None:
        self.query = query
        self.name = name

    def _compare(self, operator: str, value: Any) -> str:
        return f"{self.name} {operator} {self.query.literal_for(self.name, value)}"

    def eq(self, value: Any) -> str:
        return self._compare("eq", value)

    def ne(self, value: Any) -> str:
        return self._compare("ne", value)

    def gt(self, value: Any) -> str:
        return self._compare("gt", value)

    def ge(self, value: Any) -> str:
        return self._compare("ge", value)

    def lt(self, value: Any) -> str:
        return self._compare("lt", value)

    def le(self, value: Any) -> str:
        return self._compare("le", value)

    def contains(self, value: Any) -> str:
        return f"contains({self.name},{self.query.literal_for(self.name, value)})"

    def startswith(self, value: Any) -> str:
        return f"startswith({self.name},{self.query.literal_for(self.name, value)})"

    def endswith(self, value: Any) -> str:
        return f"endswith({self.name},{self.query.literal_for(self.name, value)})"


class ODataQuery:
    """
    Query builder for one entity set.

    Every mutating call extends the same query and returns it, so calls
    chain. Rendering never changes state.

    Parameters
    ----------
    entity_set : EntitySet or str
        Runtime entity set (enables typed key and criteria literals) or
        a bare resource name
    """

    def __init__(self, entity_set: Union["EntitySet", str]) -> None:
        if isinstance(entity_set, str):
            self.entity_set = None
            self.resource = entity_set
        else:
            self.entity_set = entity_set
            self.resource = entity_set.name
        self._filters: List[str] = []
        self._select: List[str] = []
        self._orderby: List[str] = []
        self._expand: List[str] = []
        self._top: Optional[int] = None
        self._skip: Optional[int] = None
        self._key: Optional[str] = None
        # parameter kinds in the order they were first used
        self._kinds: List[str] = []

    def __repr__(self) -> str:
        return f"<ODataQuery {self.to_path()}>"

    def __str__(self) -> str:
        return self.to_path()

    def __getitem__(self, name: str) -> Criteria:
        return Criteria(self, name)

    def _use(self, kind: str) -> None:
        if kind not in self._kinds:
            self._kinds.append(kind)

    # ---------------- clauses ----------------

    def where(self, predicate: str) -> "ODataQuery":
        """Add a raw ``$filter`` predicate; predicates are AND-ed."""
        if predicate and predicate.strip():
            self._filters.append(predicate.strip())
            self._use("$filter")
        return self

    def select(self, *names: str) -> "ODataQuery":
        """Add properties to ``$select``; duplicates are ignored."""
        for name in names:
            name = name.strip()
            if name and name not in self._select:
                self._select.append(name)
                self._use("$select")
        return self

    def order_by(self, name: str, direction: str = "asc") -> "ODataQuery":
        direction = direction.lower()
        if direction not in ("asc", "desc"):
            raise ValueError(f"Sort direction must be 'asc' or 'desc', got {direction!r}")
        self._orderby.append(f"{name.strip()} {direction}")
        self._use("$orderby")
        return self

    def top(self, count: int) -> "ODataQuery":
        self._top = self._count(count, "$top")
        self._use("$top")
        return self

    def skip(self, count: int) -> "ODataQuery":
        self._skip = self._count(count, "$skip")
        self._use("$skip")
        return self

    def expand(self, *names: str) -> "ODataQuery":
        for name in names:
            name = name.strip()
            if name and name not in self._expand:
                self._expand.append(name)
                self._use("$expand")
        return self

    def find(self, key: Any) -> "ODataQuery":
        """
        Switch to single-entity lookup: ``Set(<key>)``.

        ``key`` is typed through the key property, so ``find(1)`` gives
        ``Products(1)`` and ``find("abc")`` gives ``Items('abc')``. Pass a
        mapping for composite keys. Filter, order and paging clauses are
        not rendered in this mode.
        """
        if isinstance(key, Mapping):
            self._key = ",".join(f"{name}={self.literal_for(name, value)}" for name, value in key.items())
        else:
            key_name = self.entity_set.primary_key if self.entity_set is not None else None
            self._key = self.literal_for(key_name, key) if key_name else _plain_literal(key)
        return self

    @staticmethod
    def _count(count: int, kind: str) -> int:
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise ValueError(f"{kind} must be a non-negative integer")
        return count

    # ---------------- literals ----------------

    def _definition_for(self, path: str) -> Optional[PropertyDefinition]:
        if self.entity_set is None:
            return None
        metadata = self.entity_set.metadata
        properties = self.entity_set.entity_type_definition.properties
        definition = None
        for segment in path.split("/"):
            if properties is None:
                return None
            definition = properties.get(segment)
            if definition is None:
                raise NotFoundError(f"{self.entity_set.entity_type} has no property {path!r}")
            ref = metadata.types.lookup(definition.type_name)
            properties = ref.properties if isinstance(ref, ComplexTypeDefinition) else None
        return definition

    def literal_for(self, name: str, value: Any) -> str:
        """URL literal for ``value`` as property ``name`` would render it."""
        definition = self._definition_for(name)
        if definition is None or value is None:
            return _plain_literal(value)
        prop = build_property(definition, self.entity_set.metadata.types, value)
        return prop.url_value

    # ---------------- rendering ----------------

    def _filter_text(self) -> str:
        if len(self._filters) == 1:
            return self._filters[0]
        return " and ".join(f"({f})" if OR_RE.search(f) else f for f in self._filters)

    def params(self) -> List[Tuple[str, str]]:
        """Unencoded ``(name, value)`` pairs in render order."""
        values: Dict[str, str] = {
            "$filter": self._filter_text(),
            "$select": _join_csv(self._select),
            "$orderby": _join_csv(self._orderby),
            "$top": str(self._top),
            "$skip": str(self._skip),
            "$expand": _join_csv(self._expand),
        }
        kinds = self._kinds
        if self._key is not None:
            kinds = [k for k in kinds if k in ("$select", "$expand")]
        return [(kind, values[kind]) for kind in kinds]

    def query_string(self) -> str:
        return "&".join(f"{name}={_quote(value)}" for name, value in self.params())

    def to_path(self) -> str:
        """Resource path with query string, e.g. ``Products?$top=5``."""
        path = self.resource if self._key is None else key_segment(self.resource, self._key)
        query = self.query_string()
        return f"{path}?{query}" if query else path

    def is_single(self) -> bool:
        return self._key is not None
