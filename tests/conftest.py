"""Pytest configuration and fixtures."""

import datetime
import decimal
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, Optional

import pytest

from odatafeed import (
    AssociationEnd,
    CollectingDiagnostics,
    ComplexType,
    EntityType,
    Metadata,
    Property,
)


@dataclass
class Address:
    street: Optional[str] = None
    city: Optional[str] = None


@dataclass
class Customer:
    customer_id: Optional[str] = None
    name: Optional[str] = None
    age: Optional[int] = None
    active: Optional[bool] = None
    address: Optional[Address] = None
    orders: list = field(default_factory=list)
    headline: Optional[str] = None
    author: Optional[str] = None
    updated: Optional[datetime.datetime] = None
    region: Optional[str] = None


@dataclass
class Order:
    order_id: Optional[int] = None
    freight: Optional[decimal.Decimal] = None
    customer: Optional[Any] = None


@dataclass
class Employee:
    employee_id: Optional[int] = None
    name: Optional[str] = None
    manager: Optional[Any] = None
    reports: list = field(default_factory=list)


class NeedsArguments:
    def __init__(self, value):
        self.value = value


@pytest.fixture
def models() -> SimpleNamespace:
    return SimpleNamespace(
        Address=Address,
        Customer=Customer,
        Order=Order,
        Employee=Employee,
        NeedsArguments=NeedsArguments,
    )


@pytest.fixture
def metadata() -> Metadata:
    """Northwind-like schema used across the tests."""
    address = ComplexType(
        "NorthwindModel",
        "Address",
        [Property("Street"), Property("City")],
        factory=Address,
    )
    customer = EntityType(
        "NorthwindModel",
        "Customer",
        [
            Property("CustomerID"),
            Property("Name"),
            Property("Age", "Edm.Int32"),
            Property("Active", "Edm.Boolean"),
            Property("Address", address),
            Property("Headline"),
            Property("Author"),
            Property("Updated", "Edm.DateTime"),
            Property("Region"),
        ],
        associations=[AssociationEnd("Orders", "NorthwindModel.Order", to_many=True)],
        factory=Customer,
    )
    order = EntityType(
        "NorthwindModel",
        "Order",
        [Property("OrderID", "Edm.Int32"), Property("Freight", "Edm.Decimal")],
        associations=[AssociationEnd("Customer", "NorthwindModel.Customer")],
        factory=Order,
    )
    employee = EntityType(
        "NorthwindModel",
        "Employee",
        [Property("EmployeeID", "Edm.Int32"), Property("Name")],
        associations=[
            AssociationEnd("Manager", "NorthwindModel.Employee"),
            AssociationEnd("Reports", "NorthwindModel.Employee", to_many=True),
        ],
        factory=Employee,
    )
    broken = EntityType(
        "NorthwindModel",
        "Broken",
        [Property("Value")],
        factory=NeedsArguments,
    )
    return Metadata(
        entity_types=[customer, order, employee, broken],
        complex_types=[address],
    )


@pytest.fixture
def diagnostics() -> CollectingDiagnostics:
    return CollectingDiagnostics()
