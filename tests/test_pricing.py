from decimal import Decimal

import pytest

from storefront.exceptions import ValidationError
from storefront.models import Product, ProductVariant
from storefront.pricing import display_price, is_purchasable, resolve_unit_price


def test_base_price_for_plain_products(rice):
    assert resolve_unit_price(rice) == Decimal("1500")


def test_plain_products_reject_a_variant(rice):
    with pytest.raises(ValidationError):
        resolve_unit_price(rice, "v-any")


def test_plain_product_without_price():
    product = Product(id="p", name="Pan", base_price=None)
    with pytest.raises(ValidationError):
        resolve_unit_price(product)
    assert display_price(product) == "Precio no disponible"
    assert not is_purchasable(product)


def test_variant_price_ignores_base_price(cheese):
    assert resolve_unit_price(cheese, "v-half") == Decimal("2000")
    assert resolve_unit_price(cheese, "v-pound") == Decimal("3800")


@pytest.mark.parametrize("variant_id", [None, "", "v-unknown", "v-kilo"])
def test_variant_products_need_an_available_variant(cheese, variant_id):
    with pytest.raises(ValidationError):
        resolve_unit_price(cheese, variant_id)


def test_display_price_range_never_uses_base_price(cheese):
    assert display_price(cheese) == "$2.000 - $7.000"
    assert "9.999" not in display_price(cheese)


def test_display_price_single_variant_price():
    product = Product(
        id="p",
        name="Gaseosa",
        has_variants=True,
        base_price=Decimal("100"),
        variants=[
            ProductVariant(id="a", variant_name="Lata", price=Decimal("2500")),
            ProductVariant(id="b", variant_name="Lata fría", price=Decimal("2500")),
        ],
    )
    assert display_price(product) == "$2.500"


def test_display_price_plain(rice):
    assert display_price(rice) == "$1.500"


def test_variant_product_without_variants():
    product = Product(id="p", name="Queso", has_variants=True, base_price=Decimal("5000"))
    assert display_price(product) == "Precio no disponible"
    assert not is_purchasable(product)


def test_is_purchasable(rice, cheese):
    assert is_purchasable(rice)
    assert is_purchasable(cheese)

    rice.is_available = False
    assert not is_purchasable(rice)

    for variant in cheese.variants:
        variant.is_available = False
    assert not is_purchasable(cheese)


def test_variant_accepts_name_alias():
    variant = ProductVariant.model_validate({"id": "v", "name": "Grande", "price": 1000})
    assert variant.variant_name == "Grande"
