"""
odkit.odata.service - OData Service Client
==========================================

Service-scoped client: raw paged reads, query execution into typed
entities, and create / update / destroy against entity sets.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Generator, List, Mapping, Optional, Union
import logging

from odkit.odata.entity import Entity, EntitySet
from odkit.odata.errors import TransportError, ValidationError
from odkit.odata.metadata import ODataMetadata
from odkit.odata.query import ODataQuery
from odkit.odata.registry import ServiceRegistry

if TYPE_CHECKING:
    from odkit.core.session import ODataSession


logger = logging.getLogger("odkit.odata.service")


def _records(payload: Mapping[str, Any]) -> List[Dict[str, Any]]:
    d = payload.get("d")
    if isinstance(d, dict):
        return d.get("results") or []
    if isinstance(d, list):
        return d
    return payload.get("value") or []


def _next_link(payload: Mapping[str, Any]) -> Optional[str]:
    d = payload.get("d")
    if isinstance(d, dict) and d.get("__next"):
        return d["__next"]
    return payload.get("@odata.nextLink") or payload.get("odata.nextLink")


class ODataService:
    """
    Service-scoped OData client.

    Metadata is downloaded on first use unless a prebuilt
    :class:`ODataMetadata` is passed in.

    Parameters
    ----------
    sess : ODataSession
        Active OData session
    service_path : str
        Service path below the session base URL; empty when the base URL
        already is the service root
    metadata : ODataMetadata, optional
        Prebuilt service model
    registry : ServiceRegistry, optional
        Registry the fetched metadata is added to

    Examples
    --------
    >>> with ODataSession(cfg) as sess:
    ...     api = ODataService(sess)
    ...     print(api.list_entity_sets())
    ...     cheap = api.execute(api.meta["Products"].query().where("Price lt 5"))
    ...     product = api.find("Products", 1)
    ...     api.update("Products", {"ID": 1, "Rating": 5})
    """

    def __init__(
        self,
        sess: "ODataSession",
        service_path: str = "",
        *,
        metadata: Optional[ODataMetadata] = None,
        registry: Optional[ServiceRegistry] = None,
    ) -> None:
        self.sess = sess
        self.service_path = service_path.strip("/")
        self.registry = registry
        self._meta = metadata
        if metadata is not None and registry is not None:
            registry.add(metadata)

    @property
    def meta(self) -> ODataMetadata:
        """Service model, fetched from ``$metadata`` on first access."""
        if self._meta is None:
            logger.debug("Fetching $metadata for %r", self.service_path or self.sess.base)
            self._meta = ODataMetadata.fetch(self.sess, self.service_path, registry=self.registry)
        return self._meta

    def _path(self, resource: str) -> str:
        if resource.startswith(("http://", "https://")) or not self.service_path:
            return resource
        return f"{self.service_path}/{resource.lstrip('/')}"

    # ---------------- core reads ----------------

    def read(self, entity_set: str, **query: str) -> List[Dict[str, Any]]:
        """
        Read a single page of raw records from an entity set.

        Parameters
        ----------
        entity_set : str
            Entity set name
        **query
            OData query parameters, e.g. ``**{"$top": "5"}``
        """
        payload = self.sess.get(self._path(entity_set), params=query or None)
        return _records(payload)

    def iterate(
        self,
        entity_set: str,
        *,
        max_pages: Optional[int] = None,
        **query: str,
    ) -> Generator[List[Dict[str, Any]], None, None]:
        """
        Iterate through pages of raw records.

        Yields each page as a list of records, following ``@odata.nextLink``
        (v4) and ``__next`` (v2) links. A link seen twice ends the walk.

        Parameters
        ----------
        entity_set : str
            Entity set name or resource path with query string
        max_pages : int, optional
            Maximum number of pages to fetch
        **query
            Additional OData query parameters for the first page
        """
        p = self.sess.send("GET", self._path(entity_set), params=query or None).json()

        yielded = 0
        first = _records(p)
        if first:
            yield first
            yielded += 1
            if max_pages is not None and yielded >= int(max_pages):
                return

        next_link = _next_link(p)
        seen = set()

        while next_link:
            if next_link in seen:
                return
            seen.add(next_link)

            p = self.sess.send("GET", self._path(next_link)).json()

            chunk = _records(p)
            if chunk:
                yield chunk
                yielded += 1
                if max_pages is not None and yielded >= int(max_pages):
                    return

            next_link = _next_link(p)

    def read_all(
        self,
        entity_set: str,
        *,
        max_pages: Optional[int] = None,
        **query: str,
    ) -> List[Dict[str, Any]]:
        """Read all pages of raw records into a single list."""
        out: List[Dict[str, Any]] = []
        for page in self.iterate(entity_set, max_pages=max_pages, **query):
            out.extend(page)
        return out

    # ---------------- query builder ----------------

    def build_query(
        self,
        entity_set: str,
        *,
        fields: Optional[List[str]] = None,
        filter_expr: Optional[str] = None,
        orderby: Optional[str] = None,
        top: Optional[int] = None,
        skip: Optional[int] = None,
        expand: Optional[str] = None,
        validate_fields: bool = True,
    ) -> ODataQuery:
        """
        Keyword form of :class:`ODataQuery` for one entity set.

        Unknown ``fields`` are dropped (with a warning) when
        ``validate_fields`` is set.
        """
        q = self.meta[entity_set].query()
        if fields:
            use_fields = fields
            if validate_fields:
                use_fields, unknown = self.meta.validate_select(entity_set, fields)
                if unknown:
                    logger.warning("Dropping unknown fields for %s: %s", entity_set, ", ".join(unknown))
            q.select(*use_fields)
        if filter_expr:
            q.where(filter_expr)
        if orderby:
            for clause in orderby.split(","):
                parts = clause.split()
                if parts:
                    q.order_by(parts[0], parts[1] if len(parts) > 1 else "asc")
        if expand:
            q.expand(*expand.split(","))
        if top is not None:
            q.top(top)
        if skip is not None:
            q.skip(skip)
        return q

    def query(
        self,
        entity_set: str,
        *,
        fields: Optional[List[str]] = None,
        filter_expr: Optional[str] = None,
        orderby: Optional[str] = None,
        top: Optional[int] = None,
        skip: Optional[int] = None,
        expand: Optional[str] = None,
        max_pages: Optional[int] = None,
        validate_fields: bool = True,
        extra_params: Optional[Dict[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Execute a flexible query against an entity set and return raw records.

        Parameters
        ----------
        entity_set : str
            Entity set name
        fields : list of str, optional
            Fields for $select
        filter_expr : str, optional
            Raw $filter expression
        orderby : str, optional
            $orderby expression, e.g. "Price desc,Name"
        top : int, optional
            Maximum records per page ($top)
        skip : int, optional
            Records to skip ($skip)
        expand : str, optional
            $expand for related entities
        max_pages : int, optional
            Maximum pages to follow
        validate_fields : bool
            If True, validate fields against $metadata
        extra_params : dict, optional
            Additional query parameters passed through verbatim

        Examples
        --------
        >>> rows = service.query(
        ...     "Products",
        ...     fields=["ID", "Name", "Price"],
        ...     filter_expr="Price gt 10",
        ...     orderby="Price desc",
        ...     top=100,
        ...     max_pages=5,
        ... )
        """
        q = self.build_query(
            entity_set,
            fields=fields,
            filter_expr=filter_expr,
            orderby=orderby,
            top=top,
            skip=skip,
            expand=expand,
            validate_fields=validate_fields,
        )
        return self.read_all(q.to_path(), max_pages=max_pages, **(extra_params or {}))

    def execute(
        self,
        query: ODataQuery,
        *,
        max_pages: Optional[int] = None,
    ) -> Union[Entity, List[Entity]]:
        """
        Run a query built from an entity set and return typed entities.

        Single-entity queries (``find``) return one :class:`Entity`;
        everything else returns a list across all pages.
        """
        entity_set = query.entity_set if query.entity_set is not None else self.meta[query.resource]
        partial = any(name == "$select" for name, _ in query.params())
        if query.is_single():
            body = self.sess.send("GET", self._path(query.to_path())).json()
            return self.build_entity(entity_set, body, partial=partial)
        records = self.read_all(query.to_path(), max_pages=max_pages)
        return [entity_set.entity_from_json(record, partial=partial) for record in records]

    # ---------------- entity reads ----------------

    def _key_query(self, entity_set: str, id: Any, field: Optional[str]) -> ODataQuery:
        q = self.meta[entity_set].query()
        if field:
            return q.where(f"{field} eq {q.literal_for(field, id)}")
        return q.find(id)

    def find(self, entity_set: str, id: Any, field: Optional[str] = None) -> Union[Entity, List[Entity]]:
        """
        Fetch one entity with all its fields.

        Parameters
        ----------
        entity_set : str
            Entity set name
        id : Any
            Key value, or the value of ``field`` when given
        field : str, optional
            Alternate-key property; the lookup becomes ``$filter=field eq id``
            and a list is returned
        """
        q = self._key_query(entity_set, id, field)
        body = self.sess.send("GET", self._path(q.to_path())).json()
        return self.build_entity(entity_set, body)

    def select(
        self,
        entity_set: str,
        id: Any,
        fields: Optional[List[str]],
        field: Optional[str] = None,
    ) -> Union[Entity, List[Entity]]:
        """Like :meth:`find` but restricted to ``fields`` (all when empty)."""
        q = self._key_query(entity_set, id, field)
        for name in fields or []:
            q.select(name)
        body = self.sess.send("GET", self._path(q.to_path())).json()
        return self.build_entity(entity_set, body, partial=bool(fields))

    def build_entity(
        self,
        entity_set: Union[str, EntitySet],
        body: Mapping[str, Any],
        *,
        partial: bool = False,
    ) -> Union[Entity, List[Entity]]:
        """
        Turn a response body into entities.

        A v4 body whose ``@odata.context`` ends in ``$entity`` (or a v2
        ``d`` object without ``results``) is one entity; anything else is
        read as a collection from ``value`` / ``d.results``.
        """
        es = self.meta[entity_set] if isinstance(entity_set, str) else entity_set
        context = str(body.get("@odata.context") or "")
        if context.endswith("$entity"):
            return es.entity_from_json(body, partial=partial)
        d = body.get("d")
        if isinstance(d, dict) and "results" not in d:
            return es.entity_from_json(d, partial=partial)
        return [es.entity_from_json(record, partial=partial) for record in _records(body)]

    # ---------------- writes (strict) ----------------

    def create(self, entity_set: str, attrs: Mapping[str, Any]) -> Entity:
        """
        Insert a new entity.

        The returned entity is persisted with the key taken from the
        ``OData-EntityId`` (or ``Location``) response header, or from the
        returned representation when the service sends one.

        Raises
        ------
        ValidationError, NotFoundError
            For attributes the entity type rejects
        TransportError
            When the service refuses the request
        """
        entity = self.meta[entity_set].new_entity(attrs)
        r = self.sess.post(self._path(entity.resource_path()), entity.to_payload(changed_only=True))
        entity_id = r.headers.get("OData-EntityId") or r.headers.get("Location")
        if entity_id:
            entity.mark_persisted(entity_id)
        elif r.body.strip():
            entity = self.meta[entity_set].entity_from_json(_single(r.json()), partial=True)
        logger.debug("Created %s", entity.resource_path())
        return entity

    def update(self, entity_set: str, attrs: Mapping[str, Any]) -> bool:
        """
        PATCH the attributes of an existing entity.

        ``attrs`` must contain the key property.

        Raises
        ------
        ValidationError
            When the key is missing or a value is invalid
        TransportError
            When the service refuses the request
        """
        entity = self.meta[entity_set].new_entity(attrs, partial=True)
        if entity.is_new():
            raise ValidationError("ID field missing from provided attributes", entity.primary_key)
        self.sess.patch(self._path(entity.resource_path()), entity.to_payload(changed_only=True))
        logger.debug("Updated %s", entity.resource_path())
        return True

    def destroy(self, entity_set: str, id: Any) -> bool:
        """DELETE the entity with key ``id``."""
        path = self.meta[entity_set].query().find(id).to_path()
        self.sess.delete(self._path(path))
        logger.debug("Deleted %s", path)
        return True

    # ---------------- writes (safe) ----------------

    def try_create(self, entity_set: str, attrs: Mapping[str, Any]) -> Union[Entity, bool]:
        """:meth:`create`, returning False when the service refuses it."""
        try:
            return self.create(entity_set, attrs)
        except TransportError as e:
            logger.warning("Create on %s failed: %s", entity_set, e)
            return False

    def try_update(self, entity_set: str, attrs: Mapping[str, Any]) -> bool:
        """:meth:`update`, returning False when the service refuses it."""
        try:
            return self.update(entity_set, attrs)
        except TransportError as e:
            logger.warning("Update on %s failed: %s", entity_set, e)
            return False

    def try_destroy(self, entity_set: str, id: Any) -> bool:
        """:meth:`destroy`, returning False when the service refuses it."""
        try:
            return self.destroy(entity_set, id)
        except TransportError as e:
            logger.warning("Delete on %s failed: %s", entity_set, e)
            return False

    # ---------------- discovery helpers ----------------

    def list_entity_sets(self) -> List[str]:
        """Entity set names in declaration order."""
        return list(self.meta.entity_sets())

    def list_fields(self, entity_set: str) -> List[str]:
        """Property names of an entity set; empty for unknown sets."""
        return self.meta.properties(entity_set)


def _single(body: Mapping[str, Any]) -> Mapping[str, Any]:
    d = body.get("d")
    return d if isinstance(d, dict) else body
