"""
Pricing rules for catalog products.

A product either has variants, and is priced by the selected variant, or it
has none and is priced by its base price. The two modes never mix.
"""
from decimal import Decimal
from typing import Optional

from storefront.exceptions import ValidationError
from storefront.formatters import format_currency
from storefront.models import Product

PRICE_UNAVAILABLE = "Precio no disponible"


def resolve_unit_price(product: Product, variant_id: Optional[str] = None) -> Decimal:
    """
    Price of one unit of the given product selection.

    Raises:
        ValidationError: If the selection does not match the product's pricing mode
    """
    if product.has_variants:
        if not variant_id:
            raise ValidationError(f"Product {product.id} requires a variant selection")
        variant = product.find_variant(variant_id)
        if variant is None:
            raise ValidationError(f"Variant {variant_id} does not belong to product {product.id}")
        if not variant.is_available:
            raise ValidationError(f"Variant {variant_id} is not available")
        return variant.price

    if variant_id:
        raise ValidationError(f"Product {product.id} has no variants")
    if product.base_price is None:
        raise ValidationError(f"Product {product.id} has no price")
    return product.base_price


def is_purchasable(product: Product) -> bool:
    if not product.is_available:
        return False
    if product.has_variants:
        return any(variant.is_available for variant in product.variants)
    return product.base_price is not None


def display_price(product: Product) -> str:
    """Single price, "min - max" range across variants, or a placeholder"""
    if product.has_variants:
        prices = [variant.price for variant in product.variants]
        if not prices:
            return PRICE_UNAVAILABLE
        low, high = min(prices), max(prices)
        if low == high:
            return format_currency(low)
        return f"{format_currency(low)} - {format_currency(high)}"

    if product.base_price is None:
        return PRICE_UNAVAILABLE
    return format_currency(product.base_price)
