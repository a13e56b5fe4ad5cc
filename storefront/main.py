"""
FastAPI application for the storefront client shell.

One application instance owns one cart, like one browser tab of the store.
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.business_hours import BusinessHoursMonitor, closing_time_message
from storefront.cart_provider import CartProvider
from storefront.cart_store import CartStore
from storefront.catalog import (
    PRODUCT_NOT_FOUND_MESSAGE,
    CatalogClient,
    CategoryLoader,
    ProductListLoader,
    ProductLoader,
)
from storefront.checkout import CART_PATH, CheckoutFlow, validate_checkout_form, validate_field
from storefront.config import Config
from storefront.exceptions import (
    CartProviderError,
    CatalogFetchError,
    EmptyCartError,
    HandOffError,
    LimitExceededError,
    ProductNotFoundError,
    StorageError,
    StoreClosedError,
    ValidationError,
)
from storefront.middleware import RequestLoggingMiddleware
from storefront.models import (
    AddItemRequest,
    Cart,
    CartLine,
    CatalogFilters,
    CheckoutResponse,
    UpdateQuantityRequest,
)
from storefront.pricing import is_purchasable
from storefront.storage import create_storage
from storefront.whatsapp import open_in_browser

logger = logging.getLogger(__name__)


def create_app(
    storage=None,
    catalog: Optional[CatalogClient] = None,
    hand_off: Callable[[str], None] = open_in_browser,
    hours: Optional[BusinessHoursMonitor] = None,
) -> FastAPI:
    """Build the application; collaborators default to the configured ones"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cart_storage = storage or create_storage()
        catalog_client = catalog or CatalogClient()
        monitor = hours or BusinessHoursMonitor()

        provider = CartProvider()
        provider.init(cart_storage)
        monitor.start()

        app.state.cart_provider = provider
        app.state.storage = cart_storage
        app.state.catalog = catalog_client
        app.state.product_list = ProductListLoader(catalog_client.alist_products)
        app.state.product = ProductLoader(catalog_client.aget_product)
        app.state.categories = CategoryLoader(catalog_client.alist_categories)
        app.state.hours = monitor
        app.state.hand_off = hand_off
        logger.info(f"{Config.STORE_NAME} storefront started")

        yield

        await monitor.stop()
        provider.reset()
        catalog_client.close()
        cart_storage.close()

    app = FastAPI(
        title="Storefront API",
        description="Neighborhood store cart, catalog and WhatsApp checkout",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    _register_routes(app)
    _register_error_handlers(app)
    return app


def get_cart_store(request: Request) -> CartStore:
    """Cart store of this application instance"""
    provider: Optional[CartProvider] = getattr(request.app.state, "cart_provider", None)
    if provider is None:
        raise CartProviderError("use_cart must be used within a CartProvider")
    return provider.use_cart()


def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    async def health_check(request: Request):
        storage_status = "healthy"
        try:
            if not request.app.state.storage.ping():
                storage_status = "unhealthy"
        except StorageError:
            storage_status = "unhealthy"

        return {
            "status": "healthy",
            "service": "storefront",
            "storage": {"status": storage_status, "backend": Config.STORAGE_BACKEND},
            "timestamp": time.time(),
        }

    # Cart endpoints
    @app.get("/cart", response_model=Cart)
    async def get_cart(store: CartStore = Depends(get_cart_store)):
        return store.get_cart()

    @app.post("/cart/items", response_model=Cart)
    async def add_cart_item(
        payload: AddItemRequest,
        request: Request,
        store: CartStore = Depends(get_cart_store),
    ):
        """
        Add a product to the cart at its current catalog price.
        Repeated adds of the same product+variant sum quantities.
        """
        existing = next(
            (line for line in store.get_cart().items
             if line.key == CartLine.make_key(payload.product_id, payload.variant_id)),
            None,
        )
        requested = payload.quantity + (existing.quantity if existing else 0)
        if requested > Config.MAX_QUANTITY_PER_ITEM:
            raise LimitExceededError(
                f"Quantity {requested} exceeds maximum {Config.MAX_QUANTITY_PER_ITEM}"
            )

        product = await request.app.state.catalog.aget_product(payload.product_id)
        if not is_purchasable(product):
            raise ValidationError(f"Product {product.id} is not available")

        return store.add_product(product, payload.quantity, payload.variant_id)

    @app.patch("/cart/items/{product_id}", response_model=Cart)
    async def update_cart_item(
        product_id: str,
        payload: UpdateQuantityRequest,
        store: CartStore = Depends(get_cart_store),
    ):
        """Set a line quantity; 0 removes the line"""
        if payload.quantity > Config.MAX_QUANTITY_PER_ITEM:
            raise LimitExceededError(
                f"Quantity {payload.quantity} exceeds maximum {Config.MAX_QUANTITY_PER_ITEM}"
            )
        return store.update_quantity(product_id, payload.variant_id, payload.quantity)

    @app.delete("/cart/items/{product_id}", response_model=Cart)
    async def remove_cart_item(
        product_id: str,
        variant_id: Optional[str] = Query(None),
        store: CartStore = Depends(get_cart_store),
    ):
        return store.remove_item(product_id, variant_id or None)

    @app.delete("/cart", response_model=Cart)
    async def clear_cart(store: CartStore = Depends(get_cart_store)):
        return store.clear()

    # Catalog endpoints
    @app.get("/products")
    async def list_products(
        request: Request,
        category: Optional[str] = Query(None),
        available: Optional[bool] = Query(True),
        search: Optional[str] = Query(None),
        refresh: bool = Query(False, description="Bypass already-loaded results"),
    ):
        loader: ProductListLoader = request.app.state.product_list
        filters = CatalogFilters(category=category, available=available, search=search)
        if refresh and loader.filters == filters:
            loader.refetch()
        else:
            loader.set_filters(filters)
        await loader.wait()

        # Echo the filters the products belong to; a newer request may have replaced ours
        content = {**loader.state.model_dump(mode="json"), "filters": loader.filters.model_dump()}
        if content["error"]:
            return JSONResponse(status_code=502, content=content)
        return content

    @app.get("/categories")
    async def list_categories(request: Request, refresh: bool = Query(False)):
        loader: CategoryLoader = request.app.state.categories
        if refresh:
            loader.refetch()
        else:
            loader.load()
        await loader.wait()

        state = loader.state
        if state.error:
            return JSONResponse(status_code=502, content=state.model_dump(mode="json"))
        return state.model_dump(mode="json")

    @app.get("/products/{product_id}")
    async def get_product(
        product_id: str,
        request: Request,
        refresh: bool = Query(False),
    ):
        loader: ProductLoader = request.app.state.product
        if refresh and loader.product_id == product_id:
            loader.refetch()
        else:
            loader.load(product_id)
        await loader.wait()

        state = loader.state
        if state.error:
            status_code = 404 if state.error == PRODUCT_NOT_FOUND_MESSAGE else 502
            return JSONResponse(status_code=status_code, content=state.model_dump(mode="json"))
        return state.model_dump(mode="json")

    # Business hours
    @app.get("/business-hours")
    async def business_hours(request: Request):
        state = request.app.state.hours.check()
        return {
            **state.model_dump(),
            "closing_time": closing_time_message(state.closing_hour),
        }

    # Checkout endpoints
    @app.post("/checkout/validate")
    async def validate_checkout(
        form_data: Dict[str, Any] = Body(...),
        field: Optional[str] = Query(None, description="Validate only this field"),
    ):
        if field:
            try:
                message = validate_field(field, form_data)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            errors = {field: message} if message else {}
        else:
            errors = validate_checkout_form(form_data)
        return {"valid": not errors, "errors": errors}

    @app.post("/checkout/send", response_model=CheckoutResponse)
    async def send_checkout(
        request: Request,
        form_data: Dict[str, Any] = Body(...),
        store: CartStore = Depends(get_cart_store),
    ):
        """
        Validate the form, hand the order off to WhatsApp and clear the cart.
        The cart is kept when the hand-off fails.
        """
        flow = CheckoutFlow(
            store,
            hand_off=request.app.state.hand_off,
            hours=request.app.state.hours,
        )
        try:
            flow.start()
            if flow.redirect == CART_PATH:
                raise EmptyCartError("Cannot checkout empty cart")
            if not flow.submit_form(form_data):
                raise ValidationError("Invalid checkout form", errors=flow.errors)
            return flow.send()
        finally:
            flow.close()


def _register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request, exc):
        return JSONResponse(
            status_code=400,
            content={"error": "Validation error", "message": str(exc), "errors": exc.errors}
        )

    @app.exception_handler(LimitExceededError)
    async def limit_error_handler(request, exc):
        return JSONResponse(
            status_code=400,
            content={"error": "Limit exceeded", "message": str(exc)}
        )

    @app.exception_handler(ProductNotFoundError)
    async def product_not_found_handler(request, exc):
        return JSONResponse(
            status_code=404,
            content={"error": "Product not found", "message": str(exc)}
        )

    @app.exception_handler(CatalogFetchError)
    async def catalog_error_handler(request, exc):
        return JSONResponse(
            status_code=502,
            content={"error": "Catalog unavailable", "message": "Error al cargar productos"}
        )

    @app.exception_handler(EmptyCartError)
    async def empty_cart_handler(request, exc):
        return JSONResponse(
            status_code=409,
            content={"error": "Empty cart", "message": str(exc), "redirect": CART_PATH}
        )

    @app.exception_handler(StoreClosedError)
    async def store_closed_handler(request, exc):
        return JSONResponse(
            status_code=409,
            content={
                "error": "Store closed",
                "message": str(exc),
                "closing_time": closing_time_message(exc.closing_hour),
            }
        )

    @app.exception_handler(HandOffError)
    async def hand_off_error_handler(request, exc):
        return JSONResponse(
            status_code=502,
            content={"error": "Hand-off failed", "message": str(exc)}
        )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request, exc):
        return JSONResponse(
            status_code=503,
            content={"error": "Service unavailable", "message": "Cart storage failed"}
        )

    @app.exception_handler(CartProviderError)
    async def cart_provider_error_handler(request, exc):
        logger.error(f"Cart accessed before initialization: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Cart unavailable", "message": str(exc)}
        )

    # Generic exception handler for unhandled errors
    @app.exception_handler(Exception)
    async def generic_exception_handler(request, exc):
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {exc}",
            exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": str(exc),
                "type": type(exc).__name__
            }
        )


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.APP_PORT)
