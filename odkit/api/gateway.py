"""
odkit.api.gateway - FastAPI OData Gateway
=========================================

Optional REST API gateway exposing discovery, query and entity CRUD for
the OData services below one base URL.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from odkit.core.session import ODataAuth, ODataConfig, ODataSession, ODataUpstreamError
from odkit.odata.entity import Entity
from odkit.odata.errors import NotFoundError, TransportError, ValidationError
from odkit.odata.metadata import ODataMetadata
from odkit.odata.registry import ServiceRegistry
from odkit.odata.service import ODataService
from odkit.api.models import (
    EXAMPLE_ENTITY_SET,
    EXAMPLE_SERVICE,
    EntityResponse,
    EntityTypeInfo,
    EntityWriteRequest,
    NavigationInfo,
    PropertyInfo,
    QueryRequest,
    QueryResponse,
)


logger = logging.getLogger("odkit.api")


class ODataGateway:
    """
    Configuration, session factory and metadata cache for the API gateway.

    Reads configuration from environment variables by default. Parsed
    metadata is kept per service path for ``meta_cache_ttl`` seconds and
    registered in :attr:`registry`.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        bearer_token: Optional[str] = None,
        verify_tls: Optional[bool] = None,
        api_key: Optional[str] = None,
        max_top: Optional[int] = None,
        max_pages: Optional[int] = None,
        meta_cache_ttl: Optional[int] = None,
        odata_version: Optional[str] = None,
    ):
        # Load from env if not provided
        self.base_url = (base_url or os.environ.get("ODATA_BASE_URL", "")).rstrip("/") + "/"
        self.user = user or os.environ.get("ODATA_USER", "")
        self.password = password or os.environ.get("ODATA_PASS", "")
        self.bearer_token = bearer_token or os.environ.get("ODATA_BEARER_TOKEN", "")
        self.proxy = os.environ.get("ODATA_PROXY") or None
        self.odata_version = odata_version or os.environ.get("ODATA_VERSION", "4.0")

        if verify_tls is not None:
            self.verify_tls = verify_tls
        else:
            self.verify_tls = os.environ.get("ODATA_VERIFY_TLS", "true").lower() != "false"

        self.api_key = api_key or os.environ.get("ODATA_API_KEY", "")
        self.max_top = max_top if max_top is not None else int(os.environ.get("ODATA_MAX_TOP", "500"))
        self.max_pages = max_pages if max_pages is not None else int(os.environ.get("ODATA_MAX_PAGES", "10"))
        self.meta_cache_ttl = (
            meta_cache_ttl if meta_cache_ttl is not None else int(os.environ.get("ODATA_META_TTL", "900"))
        )

        self.registry = ServiceRegistry()
        # service path -> (loaded at, metadata)
        self._meta_cache: Dict[str, Tuple[float, ODataMetadata]] = {}

    def validate(self) -> None:
        """Validate configuration. Raises RuntimeError if invalid."""
        if not self.base_url or self.base_url == "/":
            raise RuntimeError("Missing ODATA_BASE_URL environment variable")
        if not self.api_key:
            raise RuntimeError("Missing ODATA_API_KEY - required for security")

    def build_session(self) -> ODataSession:
        """Create a new OData session."""
        auth: Optional[ODataAuth] = None
        if self.bearer_token:
            auth = ODataAuth("bearer", self.bearer_token)
        elif self.user and self.password:
            auth = ODataAuth("basic", (self.user, self.password))

        cfg = ODataConfig(
            base_url=self.base_url,
            auth=auth,
            odata_version=self.odata_version,
            verify=self.verify_tls,
            proxy=self.proxy,
            timeout=float(os.environ.get("ODATA_TIMEOUT", "60")),
            retries=int(os.environ.get("ODATA_RETRIES", "3")),
            backoff=float(os.environ.get("ODATA_BACKOFF", "0.5")),
        )
        return ODataSession(cfg)

    def cached_metadata(self, service_path: str) -> Optional[ODataMetadata]:
        """Metadata for ``service_path`` if loaded less than the TTL ago."""
        entry = self._meta_cache.get(service_path.strip("/"))
        if entry and (time.time() - entry[0]) < self.meta_cache_ttl:
            return entry[1]
        return None

    def remember_metadata(self, service_path: str, metadata: ODataMetadata) -> None:
        self._meta_cache[service_path.strip("/")] = (time.time(), metadata)
        self.registry.add(metadata)

    def service(self, sess: ODataSession, service_path: str) -> ODataService:
        """Service client bound to ``sess``, reusing cached metadata."""
        meta = self.cached_metadata(service_path)
        svc = ODataService(sess, service_path, metadata=meta)
        if meta is None:
            self.remember_metadata(service_path, svc.meta)
        return svc

    def clear_cache(self) -> None:
        self._meta_cache = {}
        self.registry.clear()


# Global gateway instance (lazy init)
_gateway: Optional[ODataGateway] = None


def get_gateway() -> ODataGateway:
    """Get or create the global gateway instance."""
    global _gateway
    if _gateway is None:
        _gateway = ODataGateway()
    return _gateway


def _entity_json(entity: Entity) -> Dict[str, Any]:
    return {name: prop.json_value for name, prop in entity.properties.items()}


def create_app(
    gateway: Optional[ODataGateway] = None,
    validate_on_startup: bool = True,
) -> FastAPI:
    """
    Create the FastAPI application.

    Parameters
    ----------
    gateway : ODataGateway, optional
        Custom gateway configuration. If None, reads from environment.
    validate_on_startup : bool
        If True, log configuration problems at startup.

    Returns
    -------
    FastAPI
        Configured FastAPI application
    """
    global _gateway

    if gateway:
        _gateway = gateway
    else:
        _gateway = ODataGateway()

    if validate_on_startup:
        try:
            _gateway.validate()
        except RuntimeError as e:
            # The app still starts so that /health answers
            logger.warning("Gateway configuration incomplete: %s", e)

    app = FastAPI(
        title="odkit OData Gateway",
        description="""
## Metadata-driven OData gateway

Discover entity sets and their structure from `$metadata`, run queries,
and read or write single entities with typed validation.

### Authentication
Include your API key in the `x-api-key` header.
        """,
        version="0.1.0",
        openapi_tags=[
            {
                "name": "Discovery",
                "description": "Discover entity sets, fields and entity type structure",
            },
            {
                "name": "Generic OData",
                "description": "Generic OData query operations",
            },
            {
                "name": "Entities",
                "description": "Single entity read, create, update and delete",
            },
        ],
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------------------------------
    # Error mapping
    # -------------------------------------------------------------------------

    @app.exception_handler(ODataUpstreamError)
    async def upstream_error_handler(request: Request, exc: ODataUpstreamError):
        return JSONResponse(
            status_code=502,
            content={"detail": {"upstream_status": exc.status, "message": str(exc), "url": exc.url}},
        )

    @app.exception_handler(TransportError)
    async def transport_error_handler(request: Request, exc: TransportError):
        return JSONResponse(status_code=502, content={"detail": {"message": str(exc)}})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=422,
            content={"detail": {"property": exc.property_name, "reason": exc.reason}},
        )

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    def require_api_key(x_api_key: str = Header(...)) -> None:
        gw = get_gateway()
        if gw.api_key and x_api_key != gw.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    @app.get("/health")
    def health() -> Dict[str, Any]:
        """Health check endpoint."""
        return {"ok": True, "version": "0.1.0"}

    @app.get("/discover/entity-sets", tags=["Discovery"])
    def discover_entity_sets(
        service: str = Query(default=EXAMPLE_SERVICE),
        _: None = Depends(require_api_key),
    ) -> Dict[str, Any]:
        """List entity sets for a service, in declaration order."""
        gw = get_gateway()
        cached = gw.cached_metadata(service) is not None
        with gw.build_session() as sess:
            s = gw.service(sess, service)
            return {"service": service, "entity_sets": s.list_entity_sets(), "cached": cached}

    @app.get("/discover/fields", tags=["Discovery"])
    def discover_fields(
        service: str = Query(default=EXAMPLE_SERVICE),
        entity_set: str = Query(default=EXAMPLE_ENTITY_SET, examples=[EXAMPLE_ENTITY_SET]),
        _: None = Depends(require_api_key),
    ) -> Dict[str, Any]:
        """List fields for an entity set."""
        gw = get_gateway()
        with gw.build_session() as sess:
            s = gw.service(sess, service)
            if entity_set not in s.meta:
                raise NotFoundError(f"Unknown entity set {entity_set!r}")
            return {
                "service": service,
                "entity_set": entity_set,
                "fields": s.list_fields(entity_set),
            }

    @app.get("/discover/schema", response_model=EntityTypeInfo, tags=["Discovery"])
    def discover_schema(
        service: str = Query(default=EXAMPLE_SERVICE),
        entity_set: str = Query(default=EXAMPLE_ENTITY_SET, examples=[EXAMPLE_ENTITY_SET]),
        _: None = Depends(require_api_key),
    ) -> EntityTypeInfo:
        """Keys, typed properties and navigation properties of an entity set."""
        gw = get_gateway()
        with gw.build_session() as sess:
            es = gw.service(sess, service).meta[entity_set]
            definition = es.entity_type_definition
            return EntityTypeInfo(
                entity_set=es.name,
                entity_type=es.entity_type,
                keys=list(definition.keys),
                properties=[
                    PropertyInfo(
                        name=p.name,
                        type=p.type_name,
                        nullable=p.nullable,
                        default_value=p.default_value,
                    )
                    for p in definition.properties.values()
                ],
                navigation_properties=[
                    NavigationInfo(name=n.name, target_type=n.target_type, is_collection=n.is_collection)
                    for n in definition.navigation_properties.values()
                ],
            )

    @app.post(
        "/query",
        response_model=QueryResponse,
        tags=["Generic OData"],
        summary="Execute OData Query",
        description="Execute a generic OData query; paging and $top are capped by the gateway.",
    )
    def query_any(
        req: QueryRequest,
        _: None = Depends(require_api_key),
    ) -> QueryResponse:
        """Execute a generic OData query."""
        gw = get_gateway()

        top = min(int(req.top or 0), gw.max_top) if req.top is not None else gw.max_top
        max_pages = min(int(req.max_pages or 1), gw.max_pages)

        with gw.build_session() as sess:
            s = gw.service(sess, req.service)
            items = s.query(
                req.entity_set,
                fields=req.select,
                filter_expr=req.filter,
                orderby=req.orderby,
                top=top,
                skip=req.skip,
                expand=req.expand,
                max_pages=max_pages,
                validate_fields=req.validate_fields,
                extra_params=req.extra_params,
            )

            return QueryResponse(
                service=req.service,
                entity_set=req.entity_set,
                count=len(items),
                items=items,
            )

    # -------------------------------------------------------------------------
    # Entity endpoints
    # -------------------------------------------------------------------------

    @app.get("/entities/{entity_set}/{key}", response_model=EntityResponse, tags=["Entities"])
    def read_entity(
        entity_set: str,
        key: str,
        service: str = Query(default=EXAMPLE_SERVICE),
        select: Optional[str] = Query(default=None, description="Comma-separated fields for $select"),
        _: None = Depends(require_api_key),
    ) -> EntityResponse:
        """Read one entity by key, typed through the key property."""
        gw = get_gateway()
        fields: List[str] = [f for f in (select or "").split(",") if f.strip()]
        with gw.build_session() as sess:
            s = gw.service(sess, service)
            entity = s.select(entity_set, key, fields) if fields else s.find(entity_set, key)
            if isinstance(entity, list):
                if not entity:
                    raise NotFoundError(f"No {entity_set} entity with key {key!r}")
                entity = entity[0]
            return EntityResponse(entity_set=entity_set, key=entity.key_literal, data=_entity_json(entity))

    @app.post("/entities/{entity_set}", response_model=EntityResponse, status_code=201, tags=["Entities"])
    def create_entity(
        entity_set: str,
        req: EntityWriteRequest = Body(...),
        service: str = Query(default=EXAMPLE_SERVICE),
        _: None = Depends(require_api_key),
    ) -> EntityResponse:
        """Validate attributes against $metadata and create the entity."""
        gw = get_gateway()
        with gw.build_session() as sess:
            entity = gw.service(sess, service).create(entity_set, req.attrs)
            return EntityResponse(entity_set=entity_set, key=entity.key_literal, data=_entity_json(entity))

    @app.patch("/entities/{entity_set}", tags=["Entities"])
    def update_entity(
        entity_set: str,
        req: EntityWriteRequest = Body(...),
        service: str = Query(default=EXAMPLE_SERVICE),
        _: None = Depends(require_api_key),
    ) -> Dict[str, Any]:
        """PATCH the given attributes; the key must be among them."""
        gw = get_gateway()
        with gw.build_session() as sess:
            ok = gw.service(sess, service).update(entity_set, req.attrs)
            return {"ok": ok, "entity_set": entity_set}

    @app.delete("/entities/{entity_set}/{key}", tags=["Entities"])
    def delete_entity(
        entity_set: str,
        key: str,
        service: str = Query(default=EXAMPLE_SERVICE),
        _: None = Depends(require_api_key),
    ) -> Dict[str, Any]:
        """Delete one entity by key."""
        gw = get_gateway()
        with gw.build_session() as sess:
            ok = gw.service(sess, service).destroy(entity_set, key)
            return {"ok": ok, "entity_set": entity_set, "key": key}

    return app
