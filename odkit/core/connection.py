"""
odkit.core.connection - High-level connection management
=========================================================

Environment-driven ConnectionContext that owns one session and one
service registry.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Dict, Optional

from odkit.core.session import ODataAuth, ODataConfig, ODataSession
from odkit.odata.registry import ServiceRegistry

if TYPE_CHECKING:
    from odkit.odata.service import ODataService


class ConnectionContext:
    """
    High-level connection manager for OData services.

    Supports environment variable configuration and context manager usage.
    Services handed out by :meth:`get_service` are cached per path and
    their metadata is added to :attr:`registry`.

    Parameters
    ----------
    base_url : str, optional
        OData base URL. Falls back to ODATA_BASE_URL env var.
    user : str, optional
        Username for basic auth. Falls back to ODATA_USER env var.
    password : str, optional
        Password for basic auth. Falls back to ODATA_PASS env var.
    bearer_token : str, optional
        Bearer token. Falls back to ODATA_BEARER_TOKEN env var.
    verify : bool, optional
        SSL verification. Falls back to ODATA_VERIFY_TLS env var.
    proxy : str, optional
        Proxy URL. Falls back to ODATA_PROXY env var.
    timeout : float
        Request timeout in seconds.
    odata_version : str
        "4.0" or "2.0"
    anonymous : bool
        Allow connecting without credentials (public services)

    Examples
    --------
    >>> conn = ConnectionContext(
    ...     base_url="https://services.odata.org/V4/OData/OData.svc/",
    ...     anonymous=True,
    ... )

    >>> with ConnectionContext() as conn:  # reads ODATA_* env vars
    ...     service = conn.get_service()
    ...     rows = service.query("Products", top=10)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        bearer_token: Optional[str] = None,
        verify: Optional[bool] = None,
        proxy: Optional[str] = None,
        timeout: float = 60.0,
        odata_version: str = "4.0",
        anonymous: bool = False,
    ) -> None:
        # Resolve from environment if not provided
        self._base_url = (base_url or os.environ.get("ODATA_BASE_URL", "")).rstrip("/") + "/"
        self._user = user or os.environ.get("ODATA_USER", "")
        self._password = password or os.environ.get("ODATA_PASS", "")
        self._bearer_token = bearer_token or os.environ.get("ODATA_BEARER_TOKEN", "")
        self._proxy = proxy or os.environ.get("ODATA_PROXY") or None

        if verify is not None:
            self._verify = verify
        else:
            self._verify = os.environ.get("ODATA_VERIFY_TLS", "true").lower() != "false"

        self._timeout = timeout
        self._odata_version = odata_version
        self._anonymous = anonymous

        # Validate configuration
        if not self._base_url or self._base_url == "/":
            raise ValueError(
                "Missing base_url. Set ODATA_BASE_URL environment variable "
                "or pass base_url parameter."
            )

        if not anonymous and not self._bearer_token and not (self._user and self._password):
            raise ValueError(
                "Missing credentials. Set ODATA_USER/ODATA_PASS or ODATA_BEARER_TOKEN "
                "environment variables, pass user/password or bearer_token parameters, "
                "or pass anonymous=True."
            )

        self.registry = ServiceRegistry()
        self._session: Optional[ODataSession] = None
        self._services: Dict[str, "ODataService"] = {}

    @property
    def session(self) -> ODataSession:
        """Get or create the underlying OData session."""
        if self._session is None:
            self._session = self._build_session()
        return self._session

    def _build_session(self) -> ODataSession:
        auth: Optional[ODataAuth]
        if self._bearer_token:
            auth = ODataAuth("bearer", self._bearer_token)
        elif self._user and self._password:
            auth = ODataAuth("basic", (self._user, self._password))
        else:
            auth = None

        cfg = ODataConfig(
            base_url=self._base_url,
            auth=auth,
            verify=self._verify,
            proxy=self._proxy,
            timeout=self._timeout,
            odata_version=self._odata_version,
        )
        return ODataSession(cfg)

    def close(self) -> None:
        """Close the connection and forget cached services."""
        if self._session is not None:
            self._session.close()
            self._session = None
        self._services = {}
        self.registry.clear()

    def __enter__(self) -> "ConnectionContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_service(self, service_path: str = "") -> "ODataService":
        """
        Get an ODataService for a service below the base URL.

        Parameters
        ----------
        service_path : str
            Path of the service relative to the base URL; empty when the
            base URL is the service root

        Returns
        -------
        ODataService
            Service client; the same instance for repeated calls
        """
        # Import here to avoid circular imports
        from odkit.odata.service import ODataService

        key = service_path.strip("/")
        if key not in self._services:
            self._services[key] = ODataService(self.session, key, registry=self.registry)
        return self._services[key]

    @property
    def base_url(self) -> str:
        """The configured base URL."""
        return self._base_url
