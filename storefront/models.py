"""
Pydantic models for the cart, the catalog projection and checkout.
"""
import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_serializer,
    field_validator,
)
from pydantic_core import PydanticCustomError


def _to_number(value: Decimal) -> Union[int, float]:
    """Render a Decimal as a JSON number (whole pesos stay integers)"""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _normalize_variant_id(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class UnitKind(str, Enum):
    """How a product is sold; affects only the display suffix"""
    UNIT = "unit"
    WEIGHT = "weight"


class DeliveryType(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


# ---------------- cart ----------------

class CartLine(BaseModel):
    """One product(+variant) entry in the cart with a frozen price"""
    model_config = ConfigDict(frozen=True, populate_by_name=True, use_enum_values=True)

    product_id: str = Field(..., alias="productId", min_length=1, description="Product identifier")
    variant_id: Optional[str] = Field(None, alias="variantId", description="Variant identifier, None for the base product")
    product_name: str = Field(..., alias="productName", description="Product name at time of add")
    variant_name: Optional[str] = Field(None, alias="variantName", description="Variant name at time of add")
    quantity: int = Field(..., ge=1, description="Item quantity")
    unit_price: Decimal = Field(..., alias="price", ge=0, description="Price at time of add")
    image_url: Optional[str] = Field(None, alias="imageUrl")
    unit_kind: UnitKind = Field(UnitKind.UNIT, alias="unitType")

    @field_validator("variant_id", mode="before")
    @classmethod
    def validate_variant_id(cls, v):
        return _normalize_variant_id(v)

    @field_serializer("unit_price", when_used="json")
    def serialize_unit_price(self, value: Decimal):
        return _to_number(value)

    @staticmethod
    def make_key(product_id: str, variant_id: Optional[str] = None) -> Tuple[str, Optional[str]]:
        """Identity of a line, with the variant id normalised as it is stored"""
        return (product_id, _normalize_variant_id(variant_id))

    @property
    def key(self) -> Tuple[str, Optional[str]]:
        return (self.product_id, self.variant_id)

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


class Cart(BaseModel):
    """
    Immutable cart snapshot.

    total and item_count are always derived from items; values found in
    serialized input are ignored and recomputed.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    items: List[CartLine] = Field(default_factory=list)
    total: Decimal = Field(Decimal("0"))
    item_count: int = Field(0, alias="itemCount")

    @classmethod
    def from_lines(cls, lines: Iterable[CartLine]) -> "Cart":
        items = list(lines)
        total = sum((line.subtotal for line in items), Decimal("0"))
        item_count = sum(line.quantity for line in items)
        return cls(items=items, total=total, item_count=item_count)

    @classmethod
    def empty(cls) -> "Cart":
        return cls.from_lines([])

    @classmethod
    def from_json(cls, raw: str) -> "Cart":
        """
        Parse a serialized cart.

        Lines sharing a (product_id, variant_id) key are merged by summing
        quantities, keeping the first line's snapshot fields.

        Raises:
            pydantic.ValidationError or ValueError: If the payload is malformed
        """
        parsed = cls.model_validate_json(raw)
        merged: Dict[Tuple[str, Optional[str]], CartLine] = {}
        for line in parsed.items:
            existing = merged.get(line.key)
            if existing is None:
                merged[line.key] = line
            else:
                merged[line.key] = existing.model_copy(
                    update={"quantity": existing.quantity + line.quantity}
                )
        return cls.from_lines(merged.values())

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json", by_alias=True))

    @field_serializer("total", when_used="json")
    def serialize_total(self, value: Decimal):
        return _to_number(value)

    @property
    def is_empty(self) -> bool:
        return not self.items


class AddItemRequest(BaseModel):
    """Request model for adding a catalog product to the cart"""
    product_id: str = Field(..., min_length=1, description="Product identifier")
    variant_id: Optional[str] = Field(None, description="Variant identifier (required for variant products)")
    quantity: int = Field(1, ge=1, description="Quantity to add")

    @field_validator("variant_id", mode="before")
    @classmethod
    def validate_variant_id(cls, v):
        return _normalize_variant_id(v)


class UpdateQuantityRequest(BaseModel):
    """Request model for replacing a line quantity; 0 removes the line"""
    variant_id: Optional[str] = None
    quantity: int = Field(..., ge=0)

    @field_validator("variant_id", mode="before")
    @classmethod
    def validate_variant_id(cls, v):
        return _normalize_variant_id(v)


# ---------------- catalog ----------------

class ProductVariant(BaseModel):
    """Purchasable sub-option of a product with its own price"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    variant_name: str = Field(..., validation_alias=AliasChoices("variant_name", "name"))
    price: Decimal = Field(..., ge=0)
    is_available: bool = True

    @field_serializer("price", when_used="json")
    def serialize_price(self, value: Decimal):
        return _to_number(value)


class Product(BaseModel):
    """Read-only projection of a catalog product"""
    model_config = ConfigDict(use_enum_values=True)

    id: str
    name: str
    description: Optional[str] = None
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    category_slug: Optional[str] = None
    image_url: Optional[str] = None
    unit_type: UnitKind = UnitKind.UNIT
    is_available: bool = True
    has_variants: bool = False
    base_price: Optional[Decimal] = None
    variants: List[ProductVariant] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("variants", mode="before")
    @classmethod
    def validate_variants(cls, v):
        return v or []

    @field_serializer("base_price", when_used="json")
    def serialize_base_price(self, value: Optional[Decimal]):
        return None if value is None else _to_number(value)

    def find_variant(self, variant_id: str) -> Optional[ProductVariant]:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None


class CatalogFilters(BaseModel):
    """Filter set for the product listing"""
    model_config = ConfigDict(frozen=True)

    category: Optional[str] = Field(None, description="Category slug")
    available: Optional[bool] = Field(True, description="Availability flag")
    search: Optional[str] = Field(None, description="Substring of the product name")

    @field_validator("category", "search", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    def to_params(self) -> Dict[str, str]:
        params: Dict[str, str] = {}
        if self.category:
            params["category"] = self.category
        if self.available is not None:
            params["available"] = "true" if self.available else "false"
        if self.search:
            params["search"] = self.search
        return params

    def cache_key(self) -> str:
        """Stable key identifying the effective filter set"""
        return json.dumps(self.to_params(), sort_keys=True)


class Category(BaseModel):
    """Catalog category used by the listing filter"""
    id: str
    name: str
    slug: str
    product_count: int = 0
    created_at: Optional[datetime] = None


class CategoryListResponse(BaseModel):
    categories: List[Category] = Field(default_factory=list)


class ProductListResponse(BaseModel):
    products: List[Product] = Field(default_factory=list)


class ProductResponse(BaseModel):
    product: Product


# ---------------- business hours ----------------

class BusinessHoursState(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_open: bool
    closing_hour: int
    current_hour: int
    minutes_until_close: int
    near_closing: bool = False


# ---------------- checkout ----------------

NAME_PATTERN = r"^[A-Za-zÀ-ÖØ-öø-ÿ\s]+$"
PHONE_PATTERN = r"^\d{10}$"

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
ADDRESS_MIN_LENGTH = 10
ADDRESS_MAX_LENGTH = 200
NOTES_MAX_LENGTH = 500


class CheckoutForm(BaseModel):
    """Validated customer data for an order"""
    customer_name: str = Field(
        ..., min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH, pattern=NAME_PATTERN,
        description="Customer name, letters and spaces only",
    )
    customer_phone: str = Field(..., pattern=PHONE_PATTERN, description="Colombian mobile number")
    delivery_type: DeliveryType = Field(..., description="Pickup at the store or home delivery")
    address: Optional[str] = Field(None, validate_default=True, description="Required for delivery only")
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH)

    @field_validator("customer_name", mode="before")
    @classmethod
    def collapse_name(cls, v):
        if v is None:
            return ""
        return " ".join(str(v).split())

    @field_validator("customer_phone", mode="before")
    @classmethod
    def strip_phone(cls, v):
        if v is None:
            return ""
        return "".join(str(v).split())

    @field_validator("customer_phone")
    @classmethod
    def validate_mobile_prefix(cls, v):
        if not v.startswith("3"):
            raise PydanticCustomError("phone_prefix", "El número debe iniciar con 3 (celular)")
        return v

    @field_validator("notes", mode="before")
    @classmethod
    def blank_notes(cls, v):
        if v is None:
            return None
        return str(v).strip() or None

    @field_validator("address")
    @classmethod
    def validate_address(cls, v, info: ValidationInfo):
        # Only delivery orders carry an address
        if info.data.get("delivery_type") != DeliveryType.DELIVERY:
            return None
        v = (v or "").strip()
        if not v:
            raise PydanticCustomError("address_required", "La dirección es requerida para domicilio")
        if len(v) < ADDRESS_MIN_LENGTH:
            raise PydanticCustomError(
                "address_too_short", "La dirección es muy corta (mínimo 10 caracteres)"
            )
        if len(v) > ADDRESS_MAX_LENGTH:
            raise PydanticCustomError("address_too_long", "La dirección es muy larga")
        return v


class CheckoutOrder(BaseModel):
    """Order payload assembled from the form and a cart snapshot"""
    model_config = ConfigDict(frozen=True)

    form: CheckoutForm
    items: List[CartLine]
    total: Decimal

    @field_serializer("total", when_used="json")
    def serialize_total(self, value: Decimal):
        return _to_number(value)


class CheckoutResponse(BaseModel):
    """Response model for a sent order"""
    whatsapp_url: str = Field(..., description="Pre-filled messaging URL to open")
    message: str = Field(..., description="Order text sent to the store")
    total: Decimal = Field(..., description="Order total")
    items: List[CartLine] = Field(..., description="Ordered items")
    redirect: str = Field(..., description="Where the client navigates next")

    @field_serializer("total", when_used="json")
    def serialize_total(self, value: Decimal):
        return _to_number(value)
