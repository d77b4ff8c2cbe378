"""
odkit - metadata-driven OData client
====================================

Builds a typed model of an OData v2/v4 service from its ``$metadata``
document and uses it to query, read and write entities.

Usage
-----
>>> from odkit import ConnectionContext
>>>
>>> with ConnectionContext(base_url="https://services.odata.org/V4/OData/OData.svc/",
...                        anonymous=True) as conn:
...     service = conn.get_service()
...     products = service.meta["Products"]
...     cheap = service.execute(products.query().where("Price lt 5").top(10))
...     print([p["Name"] for p in cheap])

Subpackages
-----------
- odkit.odata: metadata model, entities, query builder, registries, service client
- odkit.core: session, authentication and configuration
- odkit.api: optional FastAPI REST gateway

"""

__version__ = "0.1.0"

# OData model - imported first, it does not depend on odkit.core
from odkit.odata import (
    ConstructionError,
    Entity,
    EntitySet,
    NotFoundError,
    ODataError,
    ODataMetadata,
    ODataQuery,
    ODataService,
    ServiceRegistry,
    TransportError,
    TypeRegistry,
    ValidationError,
)

from odkit.core.session import (
    ODataAuth,
    ODataConfig,
    ODataSession,
    ODataUpstreamError,
)

from odkit.core.connection import ConnectionContext

__all__ = [
    # Version
    "__version__",
    # Core
    "ODataAuth",
    "ODataConfig",
    "ODataSession",
    "ODataUpstreamError",
    "ConnectionContext",
    # OData
    "ODataMetadata",
    "EntitySet",
    "Entity",
    "ODataQuery",
    "ODataService",
    "ServiceRegistry",
    "TypeRegistry",
    # Errors
    "ODataError",
    "ValidationError",
    "NotFoundError",
    "ConstructionError",
    "TransportError",
]
