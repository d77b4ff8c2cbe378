"""
Example: Basic usage of odkit
=============================

Runs against the public ODataDemo reference service.
"""

import datetime as dt

from odkit import ConnectionContext, ODataAuth, ODataConfig, ODataSession
from odkit.odata import ODataService, ValidationError

DEMO_URL = "https://services.odata.org/V4/OData/OData.svc/"


def example_raw_query():
    """Raw records with the keyword query helper."""

    cfg = ODataConfig(base_url=DEMO_URL, timeout=30.0)

    with ODataSession(cfg) as sess:
        api = ODataService(sess)

        # Discover what's available
        print("Entity Sets:", api.list_entity_sets())
        print("Fields:", api.list_fields("Products"))

        items = api.query(
            "Products",
            fields=["ID", "Name", "Price"],
            filter_expr="Price gt 3",
            orderby="Price desc",
            top=5,
        )
        print(f"Found {len(items)} products")
        print("First 2:", items[:2])


def example_typed_entities():
    """Query builder and typed entities."""

    with ConnectionContext(base_url=DEMO_URL, anonymous=True) as conn:
        api = conn.get_service()
        products = api.meta["Products"]

        q = products.query()
        q.where(q["ReleaseDate"].ge(dt.datetime(2000, 1, 1, tzinfo=dt.timezone.utc)))
        q.select("ID", "Name", "ReleaseDate").order_by("Name").top(3)
        print("GET", q)

        for product in api.execute(q):
            print(product.resource_path(), product["Name"], product["ReleaseDate"].year)

        bread = api.find("Products", 0)
        print(bread["Name"], bread["Price"])


def example_validation():
    """Values are checked against $metadata before anything is sent."""

    with ConnectionContext(base_url=DEMO_URL, anonymous=True) as conn:
        products = conn.get_service().meta["Products"]
        try:
            products.new_entity({"Name": "Cake", "Rating": "excellent"}, partial=True)
        except ValidationError as e:
            print(f"Rejected {e.property_name}: {e.reason}")


def example_authenticated():
    """Basic auth against a private service; reads ODATA_* variables when omitted."""

    cfg = ODataConfig(
        base_url="https://your-host.example.com/odata/",
        auth=ODataAuth("basic", ("USER", "PASSWORD")),
        odata_version="2.0",
    )
    with ODataSession(cfg) as sess:
        api = ODataService(sess, "SalesService")
        print(api.try_update("Orders", {"OrderID": "001", "Urgent": True}))


if __name__ == "__main__":
    example_raw_query()
    example_typed_entities()
    example_validation()
