from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from storefront.business_hours import BusinessHoursMonitor
from storefront.cart_store import CartStore
from storefront.exceptions import ProductNotFoundError, StorageError
from storefront.models import CatalogFilters, Category, Product, ProductVariant


class MemoryStorage:
    """Dict-backed storage with the same interface as the real backends"""

    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})
        self.writes: List[str] = []

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value
        self.writes.append(value)
        return True

    def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    def ping(self):
        return True

    def close(self):
        pass


class BrokenStorage(MemoryStorage):
    def get(self, key):
        raise StorageError("read failed")

    def set(self, key, value):
        raise StorageError("write failed")


class FakeCatalog:
    """Catalog client double serving products from a dict"""

    def __init__(self, products: List[Product], categories: Optional[List[Category]] = None):
        self.products = {p.id: p for p in products}
        self.categories = list(categories or [])
        self.category_calls = 0
        self.list_calls: List[CatalogFilters] = []
        self.get_calls: List[str] = []
        self.closed = False

    async def alist_products(self, filters):
        self.list_calls.append(filters)
        return list(self.products.values())

    async def aget_product(self, product_id):
        self.get_calls.append(product_id)
        if product_id not in self.products:
            raise ProductNotFoundError(product_id)
        return self.products[product_id]

    async def alist_categories(self):
        self.category_calls += 1
        return list(self.categories)

    def close(self):
        self.closed = True


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return CartStore(storage, "test-cart")


@pytest.fixture
def rice():
    return Product(
        id="p-rice",
        name="Arroz Diana",
        image_url="https://cdn.example.com/arroz.png",
        unit_type="unit",
        has_variants=False,
        base_price=Decimal("1500"),
    )


@pytest.fixture
def cheese():
    return Product(
        id="p-cheese",
        name="Queso costeño",
        unit_type="weight",
        has_variants=True,
        base_price=Decimal("9999"),
        variants=[
            ProductVariant(id="v-half", variant_name="Media libra", price=Decimal("2000")),
            ProductVariant(id="v-pound", variant_name="Libra", price=Decimal("3800")),
            ProductVariant(id="v-kilo", variant_name="Kilo", price=Decimal("7000"), is_available=False),
        ],
    )


@pytest.fixture
def open_hours():
    return BusinessHoursMonitor(closing_hour=22, clock=lambda: datetime(2026, 10, 19, 12, 0))


@pytest.fixture
def closed_hours():
    return BusinessHoursMonitor(closing_hour=22, clock=lambda: datetime(2026, 10, 19, 22, 15))


@pytest.fixture
def valid_form():
    return {
        "customer_name": "María González",
        "customer_phone": "3001234567",
        "delivery_type": "pickup",
        "address": "",
        "notes": "",
    }
