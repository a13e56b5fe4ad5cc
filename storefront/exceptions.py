"""
Custom exceptions for the storefront client.
"""
from typing import Dict, Optional


class StorefrontError(Exception):
    """Base exception for storefront operations"""
    pass


class ValidationError(StorefrontError):
    """Raised when validation fails"""
    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        self.message = message
        self.errors = errors or {}
        super().__init__(message)


class LimitExceededError(StorefrontError):
    """Raised when cart limits are exceeded"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class StorageError(StorefrontError):
    """Raised when the durable cart storage fails"""
    pass


class CatalogFetchError(StorefrontError):
    """Raised when the catalog API cannot be reached or answers with an error"""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ProductNotFoundError(CatalogFetchError):
    """Raised when a product does not exist in the catalog"""
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}", status_code=404)


class CartProviderError(StorefrontError):
    """Raised when the cart is read before its provider has been initialised"""
    pass


class EmptyCartError(StorefrontError):
    """Raised when checking out an empty cart"""
    pass


class StoreClosedError(StorefrontError):
    """Raised when an order is sent outside business hours"""
    def __init__(self, closing_hour: int):
        self.closing_hour = closing_hour
        super().__init__(f"Store is closed (closes at {closing_hour}:00)")


class HandOffError(StorefrontError):
    """Raised when the external messaging hand-off could not be started"""
    pass
