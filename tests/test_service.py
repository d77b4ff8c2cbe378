"""
Tests for odkit.odata.service module.
"""

from unittest.mock import call

import pytest

from odkit.core.session import ODataUpstreamError
from odkit.odata.entity import Entity
from odkit.odata.errors import NotFoundError, TransportError, ValidationError
from odkit.odata.service import ODataService


ENTITY_CONTEXT = "http://services.odata.org/V4/OData/OData.svc/$metadata#Products/$entity"


@pytest.fixture
def service(mock_session, demo_metadata):
    return ODataService(mock_session, metadata=demo_metadata)


@pytest.fixture
def new_product():
    return {
        "Name": "Cake",
        "ReleaseDate": "2020-01-01T00:00:00Z",
        "Rating": 5,
        "Price": 9.5,
    }


def _page(records, next_link=None):
    body = {"value": records}
    if next_link:
        body["@odata.nextLink"] = next_link
    return body


class TestRead:

    def test_read_single_page(self, service, mock_session, products_payload):
        mock_session.get.return_value = products_payload
        rows = service.read("Products", **{"$top": "2"})
        assert [r["Name"] for r in rows] == ["Bread", "Milk"]
        mock_session.get.assert_called_once_with("Products", params={"$top": "2"})

    def test_read_v2_envelope(self, service, mock_session, sample_odata_response):
        mock_session.get.return_value = sample_odata_response
        assert len(service.read("Orders")) == 2
        mock_session.get.assert_called_once_with("Orders", params=None)

    def test_read_empty(self, service, mock_session):
        mock_session.get.return_value = {}
        assert service.read("Products") == []


class TestIterate:

    def test_follows_next_link(self, service, mock_session, make_response):
        mock_session.send.side_effect = [
            make_response(_page([{"ID": 0}, {"ID": 1}], "Products?$skip=2")),
            make_response(_page([{"ID": 2}])),
        ]
        pages = list(service.iterate("Products"))
        assert [len(p) for p in pages] == [2, 1]
        assert mock_session.send.call_args_list == [
            call("GET", "Products", params=None),
            call("GET", "Products?$skip=2"),
        ]

    def test_max_pages(self, service, mock_session, make_response):
        mock_session.send.side_effect = [
            make_response(_page([{"ID": 0}], "Products?$skip=1")),
            make_response(_page([{"ID": 1}], "Products?$skip=2")),
        ]
        pages = list(service.iterate("Products", max_pages=1))
        assert len(pages) == 1
        assert mock_session.send.call_count == 1

    def test_repeated_link_stops(self, service, mock_session, make_response):
        mock_session.send.side_effect = [
            make_response(_page([{"ID": 0}], "Products?$skip=1")),
            make_response(_page([{"ID": 1}], "Products?$skip=1")),
        ]
        pages = list(service.iterate("Products"))
        assert len(pages) == 2
        assert mock_session.send.call_count == 2

    def test_v2_next(self, service, mock_session, make_response):
        mock_session.send.side_effect = [
            make_response({"d": {"results": [{"OrderID": "001"}], "__next": "Orders?$skiptoken=1"}}),
            make_response({"d": {"results": [{"OrderID": "002"}]}}),
        ]
        rows = service.read_all("Orders")
        assert [r["OrderID"] for r in rows] == ["001", "002"]

    def test_empty_first_page_still_follows(self, service, mock_session, make_response):
        mock_session.send.side_effect = [
            make_response(_page([], "Products?$skiptoken=x")),
            make_response(_page([{"ID": 5}])),
        ]
        assert service.read_all("Products") == [{"ID": 5}]

    def test_query_params_on_first_page(self, service, mock_session, make_response):
        mock_session.send.return_value = make_response(_page([]))
        service.read_all("Products", **{"$top": "5"})
        mock_session.send.assert_called_once_with("GET", "Products", params={"$top": "5"})


class TestQuery:

    def test_build_query_drops_unknown_fields(self, service):
        q = service.build_query("Products", fields=["Name", "Colour"], filter_expr="Price gt 10", top=5)
        assert str(q) == "Products?$select=Name&$filter=Price%20gt%2010&$top=5"

    def test_build_query_without_validation(self, service):
        q = service.build_query("Products", fields=["Colour"], validate_fields=False)
        assert str(q) == "Products?$select=Colour"

    def test_build_query_orderby_and_expand(self, service):
        q = service.build_query("Products", orderby="Price desc,Name", expand="Supplier", skip=10)
        assert str(q) == "Products?$orderby=Price%20desc,Name%20asc&$expand=Supplier&$skip=10"

    def test_build_query_unknown_set(self, service):
        with pytest.raises(NotFoundError):
            service.build_query("Widgets")

    def test_query_returns_raw_records(self, service, mock_session, make_response, products_payload):
        mock_session.send.return_value = make_response(products_payload)
        rows = service.query("Products", fields=["ID", "Name"], filter_expr="Rating ge 3", top=10)
        assert len(rows) == 2
        mock_session.send.assert_called_once_with(
            "GET",
            "Products?$select=ID,Name&$filter=Rating%20ge%203&$top=10",
            params=None,
        )

    def test_query_extra_params(self, service, mock_session, make_response):
        mock_session.send.return_value = make_response(_page([]))
        service.query("Products", top=1, extra_params={"$count": "true"})
        mock_session.send.assert_called_once_with("GET", "Products?$top=1", params={"$count": "true"})


class TestExecute:

    def test_collection(self, service, mock_session, make_response, products_payload, demo_metadata):
        mock_session.send.return_value = make_response(products_payload)
        q = demo_metadata["Products"].query().where("Price gt 1")
        entities = service.execute(q)
        assert [e["Name"] for e in entities] == ["Bread", "Milk"]
        assert all(isinstance(e, Entity) and not e.is_new() for e in entities)

    def test_select_is_partial(self, service, mock_session, make_response, demo_metadata):
        mock_session.send.return_value = make_response(_page([{"ID": 0, "Name": "Bread"}]))
        q = demo_metadata["Products"].query().select("ID", "Name")
        entity = service.execute(q)[0]
        assert entity["Name"] == "Bread"
        assert entity.resource_path() == "Products(0)"

    def test_single(self, service, mock_session, make_response, products_payload, demo_metadata):
        body = dict(products_payload["value"][0], **{"@odata.context": ENTITY_CONTEXT})
        mock_session.send.return_value = make_response(body)
        entity = service.execute(demo_metadata["Products"].query().find(0))
        assert isinstance(entity, Entity)
        assert entity["Name"] == "Bread"
        mock_session.send.assert_called_once_with("GET", "Products(0)")

    def test_bare_resource_query(self, service, mock_session, make_response, products_payload):
        from odkit.odata.query import ODataQuery

        mock_session.send.return_value = make_response(products_payload)
        entities = service.execute(ODataQuery("Products").top(2))
        assert entities[1]["ProductStatus"] == "LowStock"


class TestEntityReads:

    def test_find(self, service, mock_session, make_response, products_payload):
        body = dict(products_payload["value"][0], **{"@odata.context": ENTITY_CONTEXT})
        mock_session.send.return_value = make_response(body)
        entity = service.find("Products", 0)
        assert entity["Price"] == 2.5
        mock_session.send.assert_called_once_with("GET", "Products(0)")

    def test_find_by_alternate_field(self, service, mock_session, make_response, products_payload):
        mock_session.send.return_value = make_response(products_payload)
        entities = service.find("Products", "Bread", field="Name")
        assert isinstance(entities, list)
        mock_session.send.assert_called_once_with("GET", "Products?$filter=Name%20eq%20'Bread'")

    def test_select(self, service, mock_session, make_response):
        mock_session.send.return_value = make_response({"@odata.context": ENTITY_CONTEXT, "Name": "Bread"})
        entity = service.select("Products", 0, ["Name"])
        assert entity["Name"] == "Bread"
        mock_session.send.assert_called_once_with("GET", "Products(0)?$select=Name")

    def test_build_entity_v2_single(self, mock_session, v2_metadata):
        svc = ODataService(mock_session, metadata=v2_metadata)
        entity = svc.build_entity("Orders", {"d": {"OrderID": "001", "Customer": "ACME"}})
        assert entity["Customer"] == "ACME"
        assert entity.resource_path() == "Orders('001')"

    def test_build_entity_v2_collection(self, mock_session, v2_metadata, sample_odata_response):
        svc = ODataService(mock_session, metadata=v2_metadata)
        entities = svc.build_entity("Orders", sample_odata_response)
        assert [e["OrderID"] for e in entities] == ["001", "002"]


class TestWrites:

    def test_create_with_entity_id_header(self, service, mock_session, make_response, new_product):
        mock_session.post.return_value = make_response(
            None, 204, {"OData-EntityId": "http://services.odata.org/V4/OData/OData.svc/Products(7)"}
        )
        entity = service.create("Products", new_product)
        assert entity["ID"] == 7
        assert entity.resource_path() == "Products(7)"
        mock_session.post.assert_called_once_with("Products", {
            "Name": "Cake",
            "ReleaseDate": "2020-01-01T00:00:00+00:00",
            "Rating": 5,
            "Price": 9.5,
        })

    def test_create_with_representation(self, service, mock_session, make_response, new_product):
        mock_session.post.return_value = make_response(dict(new_product, ID=9), 201)
        entity = service.create("Products", new_product)
        assert entity["ID"] == 9
        assert not entity.is_new()

    def test_create_without_identity(self, service, mock_session, make_response, new_product):
        mock_session.post.return_value = make_response(None, 204)
        entity = service.create("Products", new_product)
        assert entity.is_new()

    def test_create_invalid_never_sends(self, service, mock_session, new_product):
        with pytest.raises(ValidationError):
            service.create("Products", dict(new_product, Rating="many"))
        mock_session.post.assert_not_called()

    def test_create_unknown_attribute(self, service, mock_session, new_product):
        with pytest.raises(NotFoundError):
            service.create("Products", dict(new_product, Colour="red"))
        mock_session.post.assert_not_called()

    def test_update(self, service, mock_session):
        assert service.update("Products", {"ID": 1, "Rating": 5}) is True
        mock_session.patch.assert_called_once_with("Products(1)", {"ID": 1, "Rating": 5})

    def test_update_requires_key(self, service, mock_session):
        with pytest.raises(ValidationError, match="ID field missing"):
            service.update("Products", {"Rating": 5})
        mock_session.patch.assert_not_called()

    def test_destroy(self, service, mock_session):
        assert service.destroy("Products", 1) is True
        mock_session.delete.assert_called_once_with("Products(1)")

    def test_destroy_composite_key(self, mock_session, v2_metadata):
        svc = ODataService(mock_session, metadata=v2_metadata)
        svc.destroy("OrderLines", {"OrderID": "001", "LineNo": 2})
        mock_session.delete.assert_called_once_with("OrderLines(OrderID='001',LineNo=2)")

    def test_destroy_encodes_key(self, mock_session, v2_metadata):
        svc = ODataService(mock_session, metadata=v2_metadata)
        svc.destroy("Orders", "a/b#1")
        mock_session.delete.assert_called_once_with("Orders('a%2Fb%231')")

    def test_strict_write_propagates_transport_error(self, service, mock_session):
        mock_session.delete.side_effect = ODataUpstreamError(404, "not found", "http://x/Products(1)")
        with pytest.raises(TransportError):
            service.destroy("Products", 1)


class TestSafeWrites:

    def test_try_create_refused(self, service, mock_session, new_product):
        mock_session.post.side_effect = TransportError("refused")
        assert service.try_create("Products", new_product) is False

    def test_try_update_refused(self, service, mock_session):
        mock_session.patch.side_effect = ODataUpstreamError(409, "conflict", "http://x/Products(1)")
        assert service.try_update("Products", {"ID": 1, "Rating": 5}) is False

    def test_try_destroy(self, service, mock_session):
        assert service.try_destroy("Products", 1) is True
        mock_session.delete.side_effect = TransportError("gone")
        assert service.try_destroy("Products", 1) is False

    def test_validation_errors_still_raise(self, service, mock_session):
        with pytest.raises(ValidationError):
            service.try_update("Products", {"Rating": 5})


class TestMetadataAndDiscovery:

    def test_lazy_fetch(self, mock_session, demo_metadata_xml, registry):
        mock_session.get_text.return_value = demo_metadata_xml
        svc = ODataService(mock_session, "/Demo/", registry=registry)
        mock_session.get_text.assert_not_called()

        meta = svc.meta
        assert svc.meta is meta
        mock_session.get_text.assert_called_once_with("Demo/$metadata")
        assert registry["ODataDemo"] is meta

    def test_service_path_prefix(self, mock_session, demo_metadata):
        svc = ODataService(mock_session, "Demo", metadata=demo_metadata)
        mock_session.get.return_value = {"value": []}
        svc.read("Products")
        mock_session.get.assert_called_once_with("Demo/Products", params=None)
        assert svc._path("https://other/Products") == "https://other/Products"

    def test_prebuilt_metadata_registered(self, mock_session, demo_metadata, registry):
        ODataService(mock_session, metadata=demo_metadata, registry=registry)
        assert "ODataDemo" in registry

    def test_list_entity_sets(self, service):
        assert service.list_entity_sets() == [
            "Products",
            "ProductDetails",
            "Categories",
            "Suppliers",
            "Persons",
            "PersonDetails",
            "Advertisements",
        ]

    def test_list_fields(self, service):
        fields = service.list_fields("Products")
        assert fields[:3] == ["ID", "Name", "Description"]
        assert service.list_fields("Widgets") == []
