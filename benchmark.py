import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from odatafeed import AssociationEnd, EntityType, Mapping, Metadata, Property, parse, parse_feed
from odatafeed.atom import SCHEME

NAMESPACES = (
    'xmlns="http://www.w3.org/2005/Atom" '
    'xmlns:d="http://schemas.microsoft.com/ado/2007/08/dataservices" '
    'xmlns:m="http://schemas.microsoft.com/ado/2007/08/dataservices/metadata"'
)

# (customers, orders per customer)
sizes = [
    (10, 0),
    (100, 0),
    (100, 10),
    (1000, 5),
]


@dataclass
class Customer:
    customer_id: Optional[str] = None
    company_name: Optional[str] = None
    headline: Optional[str] = None
    orders: list = field(default_factory=list)


@dataclass
class Order:
    order_id: Optional[int] = None
    freight: Optional[Decimal] = None


def build_metadata() -> Metadata:
    customer = EntityType(
        "NorthwindModel",
        "Customer",
        [Property("CustomerID"), Property("CompanyName"), Property("Headline")],
        associations=[AssociationEnd("Orders", "NorthwindModel.Order", to_many=True)],
        factory=Customer,
    )
    order = EntityType(
        "NorthwindModel",
        "Order",
        [Property("OrderID", "Edm.Int32"), Property("Freight", "Edm.Decimal")],
        factory=Order,
    )
    return Metadata(
        entity_types=[customer, order],
        mappings=[Mapping(customer, "SyndicationTitle", "Headline")],
    )


def build_feed(customers: int, orders: int) -> str:
    def order_entry(n: int) -> str:
        return (
            f'<entry><category term="NorthwindModel.Order" scheme="{SCHEME}" />'
            '<content type="application/xml"><m:properties>'
            f"<d:OrderID>{n}</d:OrderID><d:Freight>{n}.25</d:Freight>"
            "</m:properties></content></entry>"
        )

    entries = []
    for i in range(customers):
        nested = "".join(order_entry(i * orders + j) for j in range(orders))
        entries.append(
            f"<entry><title>Customer {i}</title>"
            f'<category term="NorthwindModel.Customer" scheme="{SCHEME}" />'
            f'<link title="Orders" href="Customers({i})/Orders"><m:inline><feed>{nested}</feed></m:inline></link>'
            '<content type="application/xml"><m:properties>'
            f"<d:CustomerID>C{i}</d:CustomerID><d:CompanyName>Company {i}</d:CompanyName>"
            "</m:properties></content></entry>"
        )
    return f"<feed {NAMESPACES}>{''.join(entries)}</feed>"


def run_benchmark():
    print("Benchmarking odatafeed...")
    print("-" * 50)

    metadata = build_metadata()
    total_read_time = 0.0
    total_bind_time = 0.0

    for customers, orders in sizes:
        content = build_feed(customers, orders)
        print(f"\n{customers} customers x {orders} orders ({len(content) / 1024:.0f} KB)")

        start_time = time.time()
        feed = parse_feed(content)
        read_time = time.time() - start_time
        total_read_time += read_time
        print(f"Atom reader: {len(feed.entries)} entries in {read_time:.3f}s")

        start_time = time.time()
        entities = list(parse(feed, metadata=metadata))
        bind_time = time.time() - start_time
        total_bind_time += bind_time
        nested = sum(len(entity.orders) for entity in entities)
        print(f"Materializer: {len(entities)} entities, {nested} nested in {bind_time:.3f}s")

    print("\nSummary:")
    print("-" * 50)
    print(f"Total Atom reader time: {total_read_time:.3f}s")
    print(f"Total materializer time: {total_bind_time:.3f}s")


if __name__ == "__main__":
    run_benchmark()
