"""
odkit.core - Core connectivity and authentication
=================================================

Foundational classes for talking to OData services:

- ODataAuth: Authentication configuration (basic or bearer token)
- ODataConfig: Full connection configuration
- ODataSession: Low-level HTTP session with retry, headers and caching
- ConnectionContext: Environment-driven connection manager

"""

from odkit.core.session import (
    ODataAuth,
    ODataConfig,
    ODataSession,
    ODataUpstreamError,
    TransportResponse,
)

from odkit.core.connection import ConnectionContext

__all__ = [
    "ODataAuth",
    "ODataConfig",
    "ODataSession",
    "ODataUpstreamError",
    "TransportResponse",
    "ConnectionContext",
]
