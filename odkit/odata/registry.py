"""
odkit.odata.registry - Service and type registries
==================================================

Explicit registry objects shared by whoever builds services. Each guards
its lookup tables with a single lock and can be cleared between tests.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
import threading

from odkit.odata.errors import NotFoundError


class ServiceRegistry:
    """
    Lookup of constructed services by display name or base URL.

    Any object with ``name`` and ``service_url`` attributes can be
    registered; in practice that is :class:`~odkit.odata.metadata.ODataMetadata`.

    Examples
    --------
    >>> registry = ServiceRegistry()
    >>> registry.add(meta)
    >>> registry.lookup("ODataDemo") is meta
    True
    >>> registry.lookup("https://host/OData.svc") is meta
    True
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._services: List[Any] = []
        self._by_name: Dict[str, int] = {}
        self._by_url: Dict[str, int] = {}

    def add(self, service: Any) -> None:
        """Register ``service``; adding the same instance again is a no-op."""
        with self._lock:
            for index, known in enumerate(self._services):
                if known is service:
                    break
            else:
                index = len(self._services)
                self._services.append(service)
            self._by_name[service.name] = index
            self._by_url[service.service_url] = index

    def lookup(self, key: str) -> Optional[Any]:
        """Return the service registered under ``key`` (name first, then URL)."""
        with self._lock:
            index = self._by_name.get(key)
            if index is None:
                index = self._by_url.get(key)
            return None if index is None else self._services[index]

    def __getitem__(self, key: str) -> Any:
        service = self.lookup(key)
        if service is None:
            raise NotFoundError(f"No service registered under {key!r}")
        return service

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.lookup(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._services)

    def clear(self) -> None:
        """Drop every registered service."""
        with self._lock:
            self._services = []
            self._by_name = {}
            self._by_url = {}

    flush = clear


class TypeRegistry:
    """
    Complex and enum type definitions by qualified name.

    Filled by the metadata parser so that typed property values can
    resolve ``Namespace.TypeName`` references.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._types: Dict[str, Any] = {}

    def register(self, qualified_name: str, definition: Any) -> None:
        with self._lock:
            self._types[qualified_name] = definition

    def lookup(self, qualified_name: str) -> Optional[Any]:
        with self._lock:
            return self._types.get(qualified_name)

    def __getitem__(self, qualified_name: str) -> Any:
        definition = self.lookup(qualified_name)
        if definition is None:
            raise NotFoundError(f"Unknown type {qualified_name!r}")
        return definition

    def __contains__(self, qualified_name: object) -> bool:
        with self._lock:
            return qualified_name in self._types

    def __len__(self) -> int:
        with self._lock:
            return len(self._types)

    def names(self) -> List[str]:
        with self._lock:
            return list(self._types)

    def clear(self) -> None:
        with self._lock:
            self._types = {}
