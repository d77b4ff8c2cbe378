"""
odkit.core.session - OData HTTP Session Management
==================================================

Low-level session handling for OData services with:
- Basic and Bearer token authentication
- Automatic retry with exponential backoff
- OData version headers, custom headers, proxy and TLS options
- Optional response cache for GET requests
- Proper error extraction from OData error bodies
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, MutableMapping, Optional, Tuple, Union
import json
import logging
import time

import requests
from requests import Response, Session
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict
from urllib3.util.retry import Retry

from odkit.odata.errors import TransportError


class ODataUpstreamError(TransportError):
    """
    Exception raised when the OData service returns an error.

    Attributes
    ----------
    status : int
        HTTP status code
    body : str
        Response body (truncated for display)
    url : str
        The URL that was called
    headers : dict
        Response headers
    """

    def __init__(
        self,
        status: int,
        body: str,
        url: str,
        headers: Optional[Dict[str, str]] = None
    ):
        snippet = (body or "")[:1200]
        super().__init__(f"OData upstream error {status} for {url}: {snippet}")
        self.status = status
        self.body = body or ""
        self.url = url
        self.headers = headers or {}


@dataclass
class ODataAuth:
    """
    Authentication configuration.

    Parameters
    ----------
    kind : str
        Either "basic" or "bearer"
    value : tuple or str
        For basic: (username, password) tuple
        For bearer: access token string

    Examples
    --------
    >>> auth = ODataAuth("basic", ("USER", "PASSWORD"))
    >>> auth = ODataAuth("bearer", "eyJ...")
    """
    kind: str  # "basic" | "bearer"
    value: Union[Tuple[str, str], str]  # (user, pass) or access_token


@dataclass
class ODataConfig:
    """
    Connection configuration for an OData service.

    All fields are plain values resolved when the config is built.

    Parameters
    ----------
    base_url : str
        Service root, e.g. "https://host/V4/OData/OData.svc/"
    auth : ODataAuth, optional
        Authentication; anonymous when omitted
    odata_version : str
        "4.0" or "2.0"; selects the version headers sent
    timeout : float
        Request timeout in seconds (default: 60.0)
    retries : int
        Number of retry attempts (default: 3)
    backoff : float
        Backoff factor for retries (default: 0.5)
    verify : bool or str
        SSL verification (True, False, or path to CA bundle)
    proxy : str, optional
        Proxy URL used for both http and https
    compress : bool
        Ask for gzip-compressed responses
    request_headers : dict
        Extra headers sent with every request
    cache : mutable mapping, optional
        If set, GET responses are stored here keyed by full URL
    user_agent : str
        User-Agent header value

    Examples
    --------
    >>> cfg = ODataConfig(
    ...     base_url="https://services.odata.org/V4/OData/OData.svc/",
    ...     auth=ODataAuth("bearer", "token"),
    ... )
    """
    base_url: str
    auth: Optional[ODataAuth] = None
    odata_version: str = "4.0"
    timeout: float = 60.0
    retries: int = 3
    backoff: float = 0.5
    verify: Union[bool, str] = True
    proxy: Optional[str] = None
    compress: bool = True
    request_headers: Dict[str, str] = field(default_factory=dict)
    cache: Optional[MutableMapping[str, Any]] = None
    user_agent: str = "odkit/0.1"


@dataclass
class TransportResponse:
    """Status, body and headers of one exchange."""
    status: int
    body: str
    headers: CaseInsensitiveDict
    url: str = ""

    def json(self) -> Any:
        return json.loads(self.body) if self.body else {}


class ODataSession:
    """
    Low-level HTTP session for OData v2/v4 services.

    Handles authentication, retries, headers and caching. Use as a
    context manager for automatic cleanup.

    Parameters
    ----------
    cfg : ODataConfig
        Connection configuration

    Examples
    --------
    >>> cfg = ODataConfig(...)
    >>> with ODataSession(cfg) as sess:
    ...     data = sess.get("Products")
    """

    def __init__(self, cfg: ODataConfig) -> None:
        self.cfg = cfg
        self.base = cfg.base_url.rstrip("/") + "/"
        self.timeout = float(cfg.timeout)
        self.verify = cfg.verify
        self.cache = cfg.cache
        self.logger = logging.getLogger("odkit.session")

        self.session = self._build_session()

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    def __enter__(self) -> "ODataSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- auth/session ----------------

    def _build_session(self) -> Session:
        sess = requests.Session()

        # auth
        auth = self.cfg.auth
        if auth is None:
            pass
        elif auth.kind == "basic":
            sess.auth = auth.value  # type: ignore[assignment]
        elif auth.kind == "bearer":
            sess.headers.update({"Authorization": f"Bearer {auth.value}"})
        else:
            raise ValueError("auth.kind must be 'basic' or 'bearer'")

        sess.headers.update({
            "Accept": "application/json",
            "User-Agent": self.cfg.user_agent,
        })
        if self.cfg.odata_version.startswith("2"):
            sess.headers.update({"DataServiceVersion": "2.0", "MaxDataServiceVersion": "2.0"})
        else:
            sess.headers.update({"OData-Version": "4.0", "OData-MaxVersion": "4.0"})
        if self.cfg.compress:
            sess.headers["Accept-Encoding"] = "gzip, deflate"
        else:
            sess.headers["Accept-Encoding"] = "identity"
        sess.headers.update(self.cfg.request_headers)

        if self.cfg.proxy:
            sess.proxies.update({"http": self.cfg.proxy, "https": self.cfg.proxy})

        retry = Retry(
            total=self.cfg.retries,
            backoff_factor=self.cfg.backoff,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset({"GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=20, pool_maxsize=50)
        sess.mount("https://", adapter)
        sess.mount("http://", adapter)
        return sess

    # ---------------- helpers ----------------

    def url(self, path: str) -> str:
        """Absolute URL for a path below the service root."""
        if path.startswith(("http://", "https://")):
            return path
        if not path:
            return self.base.rstrip("/")
        return f"{self.base}{path.lstrip('/')}"

    def _json_or_text(self, r: TransportResponse) -> Dict[str, Any]:
        ctype = (r.headers.get("Content-Type") or "").lower()
        if "json" in ctype:
            try:
                return r.json()
            except ValueError:
                pass
        return {"raw": r.body, "content_type": r.headers.get("Content-Type", "")}

    def _extract_error(self, r: Response) -> str:
        try:
            data = r.json()
        except ValueError:
            return r.text
        if not isinstance(data, dict):
            return r.text
        err = data.get("error") or data.get("odata.error")
        if not isinstance(err, dict):
            return r.text

        code = err.get("code")
        message = None
        if isinstance(err.get("message"), dict):
            message = err["message"].get("value")
        elif isinstance(err.get("message"), str):
            message = err.get("message")

        inner = err.get("innererror") or err.get("innerError")
        txid = inner.get("transactionid") if isinstance(inner, dict) else None
        ts = inner.get("timestamp") if isinstance(inner, dict) else None

        parts = []
        if code:
            parts.append(f"code={code}")
        if message:
            parts.append(f"message={message}")
        if txid:
            parts.append(f"txid={txid}")
        if ts:
            parts.append(f"ts={ts}")
        return " | ".join(parts) or r.text

    def _raise_for_error(self, r: Response, url: str) -> None:
        if r.status_code >= 400 or r.status_code in (301, 302, 303, 307, 308):
            body = self._extract_error(r)
            raise ODataUpstreamError(r.status_code, body, url, dict(r.headers))

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, str]],
        headers: Dict[str, str],
        data: Optional[Union[str, bytes]] = None,
    ) -> Response:
        t0 = time.perf_counter()
        r = self.session.request(
            method=method,
            url=url,
            params=params,
            headers=headers,
            data=data,
            timeout=self.timeout,
            verify=self.verify,
        )
        dt = (time.perf_counter() - t0) * 1000.0
        self.logger.debug("%s %s %s %sms", method.upper(), url, r.status_code, round(dt, 1))
        self._raise_for_error(r, url)
        return r

    # ---------------- public ops ----------------

    def send(
        self,
        method: str,
        path: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        *,
        params: Optional[Dict[str, str]] = None,
    ) -> TransportResponse:
        """
        Execute one request and return its status, body and headers.

        Parameters
        ----------
        method : str
            HTTP method
        path : str
            Path below the service root (may carry a query string) or
            an absolute URL such as a next link
        body : dict, str or bytes, optional
            Request payload; mappings are sent as JSON
        headers : dict, optional
            Additional HTTP headers
        params : dict, optional
            Additional query parameters

        Raises
        ------
        ODataUpstreamError
            For 4xx/5xx responses and unfollowed redirects
        """
        method = method.upper()
        url = self.url(path)
        hdrs: Dict[str, str] = dict(headers or {})
        data: Optional[Union[str, bytes]] = None
        if body is not None:
            if isinstance(body, (str, bytes)):
                data = body
            else:
                data = json.dumps(body, separators=(",", ":"))
                hdrs.setdefault("Content-Type", "application/json")

        cache_key = None
        if method == "GET" and self.cache is not None:
            cache_key = requests.Request("GET", url, params=params).prepare().url
            cached = self.cache.get(cache_key)
            if cached is not None:
                self.logger.debug("GET %s served from cache", cache_key)
                return cached

        r = self._request(method, url, params=params, headers=hdrs, data=data)
        resp = TransportResponse(r.status_code, r.text, CaseInsensitiveDict(r.headers), r.url)
        if cache_key is not None:
            self.cache[cache_key] = resp
        return resp

    def get(
        self,
        path: str,
        params: Optional[Dict[str, str]] = None,
        *,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Execute a GET request against a service path.

        Parameters
        ----------
        path : str
            Entity set or path, e.g. "Products?$top=5"
        params : dict, optional
            Additional query parameters
        extra_headers : dict, optional
            Additional HTTP headers

        Returns
        -------
        dict
            Parsed JSON response
        """
        return self._json_or_text(self.send("GET", path, headers=extra_headers, params=params))

    def get_text(
        self,
        path: str,
        params: Optional[Dict[str, str]] = None,
        *,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Execute a GET request and return raw text response.

        Useful for $metadata which returns XML.
        """
        headers: Dict[str, str] = {}
        if path == "$metadata" or path.endswith("/$metadata"):
            headers["Accept"] = "application/xml"
        if extra_headers:
            headers.update(extra_headers)
        return self.send("GET", path, headers=headers, params=params).body

    def post(self, path: str, payload: Dict[str, Any]) -> TransportResponse:
        """Execute a POST (create) request against an entity set."""
        return self.send("POST", path, payload)

    def patch(self, path: str, payload: Dict[str, Any]) -> TransportResponse:
        return self.send("PATCH", path, payload)

    def put(self, path: str, payload: Dict[str, Any]) -> TransportResponse:
        return self.send("PUT", path, payload)

    def delete(self, path: str) -> TransportResponse:
        return self.send("DELETE", path)
