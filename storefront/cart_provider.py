"""
Cart provider: owns the one CartStore of an application instance.
"""
import logging
from typing import Optional

from storefront.cart_store import CartStore
from storefront.exceptions import CartProviderError

logger = logging.getLogger(__name__)


class CartProvider:
    """Holds a single CartStore and hands it to consumers"""

    def __init__(self):
        self._store: Optional[CartStore] = None

    @property
    def initialized(self) -> bool:
        return self._store is not None

    def init(self, storage, storage_key: Optional[str] = None) -> CartStore:
        """Create the store once; later calls return the existing one"""
        if self._store is None:
            self._store = CartStore(storage, storage_key)
            logger.info("Cart provider initialized")
        return self._store

    def use_cart(self) -> CartStore:
        """
        The provider's store.

        Raises:
            CartProviderError: If called before init()
        """
        if self._store is None:
            raise CartProviderError("use_cart must be used within a CartProvider")
        return self._store

    @property
    def store(self) -> CartStore:
        return self.use_cart()

    def reset(self) -> None:
        """Drop the store, e.g. when the application shuts down"""
        self._store = None
