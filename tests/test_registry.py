"""
Tests for odkit.odata.registry module.
"""

import threading
from types import SimpleNamespace

import pytest

from odkit.odata.errors import NotFoundError
from odkit.odata.metadata import ODataMetadata
from odkit.odata.registry import TypeRegistry


def _service(name, url):
    return SimpleNamespace(name=name, service_url=url)


class TestServiceRegistry:

    def test_lookup_by_name_and_url(self, registry):
        svc = _service("Demo", "https://host/Demo.svc")
        registry.add(svc)
        assert registry.lookup("Demo") is svc
        assert registry.lookup("https://host/Demo.svc") is svc
        assert registry["Demo"] is svc

    def test_unknown_key(self, registry):
        assert registry.lookup("Missing") is None
        with pytest.raises(NotFoundError, match="Missing"):
            registry["Missing"]

    def test_contains_and_len(self, registry):
        registry.add(_service("A", "https://host/a"))
        registry.add(_service("B", "https://host/b"))
        assert "A" in registry
        assert "https://host/b" in registry
        assert "C" not in registry
        assert 42 not in registry
        assert len(registry) == 2

    def test_add_same_instance_twice(self, registry):
        svc = _service("A", "https://host/a")
        registry.add(svc)
        registry.add(svc)
        assert len(registry) == 1

    def test_later_registration_wins(self, registry):
        first = _service("A", "https://host/a")
        second = _service("A", "https://host/a2")
        registry.add(first)
        registry.add(second)
        assert registry["A"] is second
        assert registry["https://host/a"] is first

    def test_clear_and_flush(self, registry):
        registry.add(_service("A", "https://host/a"))
        registry.clear()
        assert len(registry) == 0
        assert registry.lookup("A") is None

        registry.add(_service("B", "https://host/b"))
        registry.flush()
        assert "B" not in registry

    def test_metadata_registers_itself(self, registry, demo_metadata_xml):
        url = "https://host/OData.svc"
        meta = ODataMetadata(url, metadata_xml=demo_metadata_xml, registry=registry)
        assert registry["ODataDemo"] is meta
        assert registry[url] is meta

    def test_concurrent_adds(self, registry):
        services = [_service(f"S{i}", f"https://host/s{i}") for i in range(50)]

        def add_all(chunk):
            for svc in chunk:
                registry.add(svc)

        threads = [threading.Thread(target=add_all, args=(services[i::5],)) for i in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(registry) == 50
        assert all(registry[f"S{i}"] is services[i] for i in range(50))


class TestTypeRegistry:

    def test_register_and_lookup(self):
        types = TypeRegistry()
        definition = object()
        types.register("NS.Address", definition)
        assert types.lookup("NS.Address") is definition
        assert types["NS.Address"] is definition
        assert "NS.Address" in types
        assert types.names() == ["NS.Address"]
        assert len(types) == 1

    def test_unknown_type(self):
        types = TypeRegistry()
        assert types.lookup("NS.Missing") is None
        with pytest.raises(NotFoundError):
            types["NS.Missing"]

    def test_clear(self):
        types = TypeRegistry()
        types.register("NS.A", object())
        types.clear()
        assert len(types) == 0

    def test_filled_by_metadata(self, demo_metadata):
        assert "ODataDemo.Address" in demo_metadata.types
        assert "ODataDemo.ProductStatus" in demo_metadata.types
