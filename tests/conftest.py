"""
Pytest configuration and shared fixtures.
"""

import pytest
from unittest.mock import MagicMock
from typing import Any, Dict, Optional

from requests.structures import CaseInsensitiveDict

from odkit.core.session import TransportResponse
from odkit.odata.metadata import ODataMetadata
from odkit.odata.registry import ServiceRegistry


DEMO_SERVICE_URL = "http://services.odata.org/V4/OData/OData.svc"

DEMO_METADATA_XML = """<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="4.0" xmlns:edmx="http://docs.oasis-open.org/odata/ns/edmx">
  <edmx:DataServices>
    <Schema Namespace="ODataDemo" xmlns="http://docs.oasis-open.org/odata/ns/edm">
      <EntityType Name="Product">
        <Key>
          <PropertyRef Name="ID"/>
        </Key>
        <Property Name="ID" Type="Edm.Int32" Nullable="false"/>
        <Property Name="Name" Type="Edm.String"/>
        <Property Name="Description" Type="Edm.String"/>
        <Property Name="ReleaseDate" Type="Edm.DateTimeOffset" Nullable="false"/>
        <Property Name="DiscontinuedDate" Type="Edm.DateTimeOffset"/>
        <Property Name="Rating" Type="Edm.Int16" Nullable="false"/>
        <Property Name="Price" Type="Edm.Double" Nullable="false"/>
        <Property Name="ProductStatus" Type="ODataDemo.ProductStatus"/>
        <NavigationProperty Name="Categories" Type="Collection(ODataDemo.Category)" Partner="Products"/>
        <NavigationProperty Name="Supplier" Type="ODataDemo.Supplier" Partner="Products"/>
        <NavigationProperty Name="ProductDetail" Type="ODataDemo.ProductDetail" Partner="Product"/>
      </EntityType>
      <EntityType Name="FeaturedProduct" BaseType="ODataDemo.Product">
        <NavigationProperty Name="Advertisement" Type="ODataDemo.Advertisement" Partner="FeaturedProduct"/>
      </EntityType>
      <EntityType Name="ProductDetail">
        <Key>
          <PropertyRef Name="ProductID"/>
        </Key>
        <Property Name="ProductID" Type="Edm.Int32" Nullable="false"/>
        <Property Name="Details" Type="Edm.String"/>
        <NavigationProperty Name="Product" Type="ODataDemo.Product" Partner="ProductDetail"/>
      </EntityType>
      <EntityType Name="Category" OpenType="true">
        <Key>
          <PropertyRef Name="ID"/>
        </Key>
        <Property Name="ID" Type="Edm.Int32" Nullable="false"/>
        <Property Name="Name" Type="Edm.String"/>
        <NavigationProperty Name="Products" Type="Collection(ODataDemo.Product)" Partner="Categories"/>
      </EntityType>
      <EntityType Name="Supplier">
        <Key>
          <PropertyRef Name="ID"/>
        </Key>
        <Property Name="ID" Type="Edm.Int32" Nullable="false"/>
        <Property Name="Name" Type="Edm.String"/>
        <Property Name="Address" Type="ODataDemo.Address"/>
        <Property Name="Location" Type="Edm.GeographyPoint" SRID="Variable"/>
        <Property Name="Concurrency" Type="Edm.Int32" Nullable="false"/>
        <NavigationProperty Name="Products" Type="Collection(ODataDemo.Product)" Partner="Supplier"/>
      </EntityType>
      <EntityType Name="Person">
        <Key>
          <PropertyRef Name="ID"/>
        </Key>
        <Property Name="ID" Type="Edm.Int32" Nullable="false"/>
        <Property Name="Name" Type="Edm.String"/>
        <NavigationProperty Name="PersonDetail" Type="ODataDemo.PersonDetail" Partner="Person"/>
      </EntityType>
      <EntityType Name="Customer" BaseType="ODataDemo.Person">
        <Property Name="TotalExpense" Type="Edm.Decimal" Nullable="false"/>
      </EntityType>
      <EntityType Name="Employee" BaseType="ODataDemo.Person">
        <Property Name="EmployeeID" Type="Edm.Int64" Nullable="false"/>
        <Property Name="HireDate" Type="Edm.DateTimeOffset" Nullable="false"/>
        <Property Name="Salary" Type="Edm.Single" Nullable="false"/>
      </EntityType>
      <EntityType Name="PersonDetail">
        <Key>
          <PropertyRef Name="PersonID"/>
        </Key>
        <Property Name="PersonID" Type="Edm.Int32" Nullable="false"/>
        <Property Name="Age" Type="Edm.Byte" Nullable="false"/>
        <Property Name="Gender" Type="Edm.Boolean" Nullable="false"/>
        <Property Name="Phone" Type="Edm.String"/>
        <Property Name="Address" Type="ODataDemo.Address"/>
        <Property Name="Photo" Type="Edm.Stream" Nullable="false"/>
        <NavigationProperty Name="Person" Type="ODataDemo.Person" Partner="PersonDetail"/>
      </EntityType>
      <EntityType Name="Advertisement" HasStream="true">
        <Key>
          <PropertyRef Name="ID"/>
        </Key>
        <Property Name="ID" Type="Edm.Guid" Nullable="false"/>
        <Property Name="Name" Type="Edm.String"/>
        <Property Name="AirDate" Type="Edm.DateTimeOffset" Nullable="false"/>
        <NavigationProperty Name="FeaturedProduct" Type="ODataDemo.FeaturedProduct" Partner="Advertisement"/>
      </EntityType>
      <ComplexType Name="Address">
        <Property Name="Street" Type="Edm.String"/>
        <Property Name="City" Type="Edm.String"/>
        <Property Name="State" Type="Edm.String"/>
        <Property Name="ZipCode" Type="Edm.String"/>
        <Property Name="Country" Type="Edm.String"/>
      </ComplexType>
      <EnumType Name="ProductStatus">
        <Member Name="Available" Value="0"/>
        <Member Name="LowStock" Value="1"/>
        <Member Name="Backordered" Value="2"/>
        <Member Name="Discontinued" Value="3"/>
      </EnumType>
      <EntityContainer Name="DemoService">
        <EntitySet Name="Products" EntityType="ODataDemo.Product">
          <NavigationPropertyBinding Path="ODataDemo.FeaturedProduct/Advertisement" Target="Advertisements"/>
          <NavigationPropertyBinding Path="Categories" Target="Categories"/>
          <NavigationPropertyBinding Path="Supplier" Target="Suppliers"/>
          <NavigationPropertyBinding Path="ProductDetail" Target="ProductDetails"/>
        </EntitySet>
        <EntitySet Name="ProductDetails" EntityType="ODataDemo.ProductDetail">
          <NavigationPropertyBinding Path="Product" Target="Products"/>
        </EntitySet>
        <EntitySet Name="Categories" EntityType="ODataDemo.Category">
          <NavigationPropertyBinding Path="Products" Target="Products"/>
        </EntitySet>
        <EntitySet Name="Suppliers" EntityType="ODataDemo.Supplier">
          <NavigationPropertyBinding Path="Products" Target="Products"/>
        </EntitySet>
        <EntitySet Name="Persons" EntityType="ODataDemo.Person">
          <NavigationPropertyBinding Path="PersonDetail" Target="PersonDetails"/>
        </EntitySet>
        <EntitySet Name="PersonDetails" EntityType="ODataDemo.PersonDetail">
          <NavigationPropertyBinding Path="Person" Target="Persons"/>
        </EntitySet>
        <EntitySet Name="Advertisements" EntityType="ODataDemo.Advertisement">
          <NavigationPropertyBinding Path="FeaturedProduct" Target="Products"/>
        </EntitySet>
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>"""

V2_METADATA_XML = """<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="1.0" xmlns:edmx="http://schemas.microsoft.com/ado/2007/06/edmx">
  <edmx:DataServices m:DataServiceVersion="2.0" xmlns:m="http://schemas.microsoft.com/ado/2007/08/dataservices/metadata">
    <Schema Namespace="TestService" Alias="Self" xmlns="http://schemas.microsoft.com/ado/2008/09/edm">
      <EntityType Name="Order">
        <Key>
          <PropertyRef Name="OrderID"/>
        </Key>
        <Property Name="OrderID" Type="Edm.String" Nullable="false" MaxLength="10"/>
        <Property Name="Customer" Type="Edm.String" MaxLength="40" Unicode="false"/>
        <Property Name="Amount" Type="Edm.Decimal" Precision="10" Scale="2"/>
        <Property Name="CreatedAt" Type="Edm.DateTime"/>
        <Property Name="Urgent" Type="Edm.Boolean" DefaultValue="false"/>
        <NavigationProperty Name="Lines" Relationship="TestService.Order_Lines" FromRole="Order" ToRole="Lines"/>
      </EntityType>
      <EntityType Name="OrderLine">
        <Key>
          <PropertyRef Name="OrderID"/>
          <PropertyRef Name="LineNo"/>
        </Key>
        <Property Name="OrderID" Type="Edm.String" Nullable="false" MaxLength="10"/>
        <Property Name="LineNo" Type="Edm.Int32" Nullable="false"/>
        <Property Name="Quantity" Type="Edm.Int32"/>
        <NavigationProperty Name="Order" Relationship="Self.Order_Lines" FromRole="Lines" ToRole="Order"/>
      </EntityType>
      <Association Name="Order_Lines">
        <End Role="Order" Type="Self.Order" Multiplicity="1"/>
        <End Role="Lines" Type="Self.OrderLine" Multiplicity="*"/>
      </Association>
      <EntityContainer Name="TestService" m:IsDefaultEntityContainer="true">
        <EntitySet Name="Orders" EntityType="Self.Order"/>
        <EntitySet Name="OrderLines" EntityType="TestService.OrderLine"/>
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>"""


@pytest.fixture
def demo_metadata_xml():
    """ODataDemo $metadata (V4)."""
    return DEMO_METADATA_XML


@pytest.fixture
def v2_metadata_xml():
    """Small OData v2 $metadata with an association and a composite key."""
    return V2_METADATA_XML


@pytest.fixture
def demo_metadata():
    """Parsed ODataDemo service model."""
    return ODataMetadata(DEMO_SERVICE_URL, metadata_xml=DEMO_METADATA_XML)


@pytest.fixture
def v2_metadata():
    return ODataMetadata("https://test.example.com/odata/TestService", metadata_xml=V2_METADATA_XML)


@pytest.fixture
def registry():
    return ServiceRegistry()


@pytest.fixture
def make_response():
    """Factory for TransportResponse objects returned by a mocked session."""

    def _make(
        body: Any = None,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> TransportResponse:
        import json

        text = body if isinstance(body, str) else ("" if body is None else json.dumps(body))
        hdrs = CaseInsensitiveDict(headers or {})
        if text and "Content-Type" not in hdrs:
            hdrs["Content-Type"] = "application/json"
        return TransportResponse(status, text, hdrs, f"{DEMO_SERVICE_URL}/")

    return _make


@pytest.fixture
def mock_session():
    """Create a mock ODataSession."""
    session = MagicMock()
    session.base = f"{DEMO_SERVICE_URL}/"
    session.timeout = 60.0
    session.verify = True
    session.url.side_effect = lambda path: f"{DEMO_SERVICE_URL}/{path}" if path else DEMO_SERVICE_URL
    session.__enter__.return_value = session
    return session


@pytest.fixture
def products_payload():
    """Sample OData v4 collection response for Products."""
    return {
        "@odata.context": f"{DEMO_SERVICE_URL}/$metadata#Products",
        "value": [
            {
                "ID": 0,
                "Name": "Bread",
                "Description": "Whole grain bread",
                "ReleaseDate": "1992-01-01T00:00:00Z",
                "DiscontinuedDate": None,
                "Rating": 4,
                "Price": 2.5,
            },
            {
                "ID": 1,
                "Name": "Milk",
                "Description": "Low fat milk",
                "ReleaseDate": "1995-10-01T00:00:00Z",
                "DiscontinuedDate": None,
                "Rating": 3,
                "Price": 3.5,
                "ProductStatus": "LowStock",
            },
        ],
    }


@pytest.fixture
def sample_odata_response():
    """Sample OData v2 response."""
    return {
        "d": {
            "results": [
                {"OrderID": "001", "Customer": "ACME", "Amount": "10.50", "CreatedAt": "/Date(694224000000)/"},
                {"OrderID": "002", "Customer": "Globex", "Amount": "7.25", "CreatedAt": None},
            ],
            "__next": None,
        }
    }
