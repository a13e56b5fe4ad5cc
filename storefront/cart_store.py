"""
Cart store: the single owner of cart state for one storefront instance.

Every effective mutation rebuilds the line list, recomputes totals from it,
writes the full snapshot to durable storage and notifies subscribers.
"""
import hashlib
import logging
from decimal import Decimal
from typing import Callable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from storefront.config import Config
from storefront.exceptions import StorageError
from storefront.models import Cart, CartLine, Product, UnitKind
from storefront.pricing import resolve_unit_price

logger = logging.getLogger(__name__)

CartListener = Callable[[Cart], None]


class CartStore:
    """In-memory cart persisted to a key-value storage after each mutation"""

    def __init__(self, storage, storage_key: Optional[str] = None):
        self.storage = storage
        self.storage_key = storage_key or Config.CART_STORAGE_KEY
        self._listeners: List[CartListener] = []
        self._cart = self._load()

    def _hash_key(self) -> str:
        """Hash storage key for logging"""
        return hashlib.sha256(self.storage_key.encode()).hexdigest()[:8]

    def _load(self) -> Cart:
        """Rehydrate the cart; anything unreadable becomes an empty cart"""
        try:
            raw = self.storage.get(self.storage_key)
        except StorageError as e:
            logger.warning(f"Could not read stored cart {self._hash_key()}: {e}")
            return Cart.empty()

        if not raw:
            return Cart.empty()

        try:
            cart = Cart.from_json(raw)
        except (PydanticValidationError, ValueError) as e:
            logger.warning(f"Discarding malformed stored cart {self._hash_key()}: {e}")
            return Cart.empty()

        logger.info(f"Restored cart {self._hash_key()} with {len(cart.items)} lines")
        return cart

    def _persist(self) -> None:
        try:
            self.storage.set(self.storage_key, self._cart.to_json())
        except StorageError as e:
            # In-memory state stays authoritative; the next mutation rewrites everything
            logger.error(f"Could not persist cart {self._hash_key()}: {e}")

    def _commit(self, lines: List[CartLine]) -> Cart:
        self._cart = Cart.from_lines(lines)
        self._persist()
        for listener in list(self._listeners):
            listener(self._cart)
        return self._cart

    def _find(self, product_id: str, variant_id: Optional[str]) -> Optional[int]:
        key = CartLine.make_key(product_id, variant_id)
        for index, line in enumerate(self._cart.items):
            if line.key == key:
                return index
        return None

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unsubscribes it"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_cart(self) -> Cart:
        """Current immutable snapshot"""
        return self._cart

    def add_item(
        self,
        product_id: str,
        product_name: str,
        unit_price: Decimal,
        quantity: int = 1,
        variant_id: Optional[str] = None,
        variant_name: Optional[str] = None,
        image_url: Optional[str] = None,
        unit_kind: UnitKind = UnitKind.UNIT,
    ) -> Cart:
        """
        Add a product(+variant) to the cart.

        An existing line for the same (product_id, variant_id) gets its
        quantity increased; its name and price snapshot are kept.
        Non-positive quantities are ignored.
        """
        if quantity <= 0:
            logger.warning(f"Ignoring add of non-positive quantity {quantity} for product {product_id}")
            return self._cart

        lines = list(self._cart.items)
        index = self._find(product_id, variant_id)

        if index is not None:
            existing = lines[index]
            lines[index] = existing.model_copy(update={"quantity": existing.quantity + quantity})
        else:
            lines.append(CartLine(
                product_id=product_id,
                variant_id=variant_id,
                product_name=product_name,
                variant_name=variant_name,
                quantity=quantity,
                unit_price=Decimal(str(unit_price)),
                image_url=image_url,
                unit_kind=unit_kind,
            ))

        return self._commit(lines)

    def add_product(
        self,
        product: Product,
        quantity: int = 1,
        variant_id: Optional[str] = None,
    ) -> Cart:
        """
        Add a catalog product, snapshotting its current name and price.

        Raises:
            ValidationError: If the variant selection breaks the product's pricing mode
        """
        unit_price = resolve_unit_price(product, variant_id)
        variant = product.find_variant(variant_id) if variant_id else None
        return self.add_item(
            product_id=product.id,
            product_name=product.name,
            unit_price=unit_price,
            quantity=quantity,
            variant_id=variant.id if variant else None,
            variant_name=variant.variant_name if variant else None,
            image_url=product.image_url,
            unit_kind=product.unit_type,
        )

    def update_quantity(self, product_id: str, variant_id: Optional[str], quantity: int) -> Cart:
        """Replace a line's quantity; zero or less removes the line"""
        if quantity <= 0:
            return self.remove_item(product_id, variant_id)

        index = self._find(product_id, variant_id)
        if index is None:
            return self._cart

        lines = list(self._cart.items)
        lines[index] = lines[index].model_copy(update={"quantity": quantity})
        return self._commit(lines)

    def remove_item(self, product_id: str, variant_id: Optional[str] = None) -> Cart:
        """Drop a line; unknown keys are a no-op"""
        index = self._find(product_id, variant_id)
        if index is None:
            return self._cart

        lines = list(self._cart.items)
        del lines[index]
        return self._commit(lines)

    def clear(self) -> Cart:
        """Remove every line and persist the empty cart"""
        return self._commit([])
