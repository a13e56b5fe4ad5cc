"""
Product catalog fetch layer.

CatalogClient talks to the catalog API. ProductListLoader and ProductLoader
hold the loaded/loading/error state seen by views, skip redundant fetches and
make sure a superseded request can never overwrite newer results: each fetch
carries a token and its outcome is applied only if that token is still the
latest one issued.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

import requests
from pydantic import BaseModel, Field

from storefront.config import Config
from storefront.exceptions import CatalogFetchError, ProductNotFoundError
from storefront.models import (
    Category,
    CategoryListResponse,
    CatalogFilters,
    Product,
    ProductListResponse,
    ProductResponse,
)

logger = logging.getLogger(__name__)

LIST_ERROR_MESSAGE = "Error al cargar productos"
PRODUCT_ERROR_MESSAGE = "Error al cargar producto"
PRODUCT_NOT_FOUND_MESSAGE = "Producto no encontrado"
CATEGORIES_ERROR_MESSAGE = "Error al cargar categorías"

T = TypeVar("T")


class CatalogClient:
    """HTTP client for the catalog read endpoints"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or Config.CATALOG_API_URL).rstrip("/")
        self.timeout = timeout or Config.CATALOG_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        api_key = api_key or Config.CATALOG_API_KEY
        if api_key:
            self.session.headers.update({
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
            })

    def _get(self, path: str, params: Optional[dict] = None) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Catalog request to {path} failed: {e}")
            raise CatalogFetchError(f"Catalog request failed: {e}")

    def list_products(self, filters: Optional[CatalogFilters] = None) -> List[Product]:
        """
        Fetch the product listing.

        Raises:
            CatalogFetchError: On network errors, non-2xx answers or malformed bodies
        """
        filters = filters or CatalogFilters()
        response = self._get("/products", params=filters.to_params())
        if response.status_code >= 400:
            logger.warning(f"Catalog listing failed: {response.status_code} {response.text[:200]}")
            raise CatalogFetchError("Failed to fetch products", status_code=response.status_code)

        try:
            return ProductListResponse.model_validate(response.json()).products
        except ValueError as e:
            raise CatalogFetchError(f"Malformed product listing: {e}")

    def get_product(self, product_id: str) -> Product:
        """
        Fetch one product with its variants.

        Raises:
            ProductNotFoundError: If the catalog answers 404
            CatalogFetchError: On any other failure
        """
        response = self._get(f"/products/{product_id}")
        if response.status_code == 404:
            raise ProductNotFoundError(product_id)
        if response.status_code >= 400:
            logger.warning(f"Catalog product {product_id} failed: {response.status_code}")
            raise CatalogFetchError("Failed to fetch product", status_code=response.status_code)

        try:
            return ProductResponse.model_validate(response.json()).product
        except ValueError as e:
            raise CatalogFetchError(f"Malformed product payload: {e}")

    def list_categories(self) -> List[Category]:
        """
        Fetch every category with its product count.

        Raises:
            CatalogFetchError: On network errors, non-2xx answers or malformed bodies
        """
        response = self._get("/categories")
        if response.status_code >= 400:
            logger.warning(f"Catalog categories failed: {response.status_code}")
            raise CatalogFetchError("Failed to fetch categories", status_code=response.status_code)

        try:
            return CategoryListResponse.model_validate(response.json()).categories
        except ValueError as e:
            raise CatalogFetchError(f"Malformed category listing: {e}")

    async def alist_products(self, filters: CatalogFilters) -> List[Product]:
        return await asyncio.to_thread(self.list_products, filters)

    async def aget_product(self, product_id: str) -> Product:
        return await asyncio.to_thread(self.get_product, product_id)

    async def alist_categories(self) -> List[Category]:
        return await asyncio.to_thread(self.list_categories)

    def close(self) -> None:
        self.session.close()


class ProductListState(BaseModel):
    products: List[Product] = Field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None


class CategoryListState(BaseModel):
    categories: List[Category] = Field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None


class ProductState(BaseModel):
    product: Optional[Product] = None
    loading: bool = False
    error: Optional[str] = None


class _TokenLoader(Generic[T]):
    """Runs one fetch at a time; stale outcomes are dropped by token"""

    def __init__(self):
        self._token = 0
        self._task: Optional[asyncio.Task] = None
        self._pending_key: Optional[str] = None
        self._loaded_key: Optional[str] = None
        self._listeners: List[Callable] = []

    def subscribe(self, listener: Callable) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            listener(state)

    @property
    def state(self):
        raise NotImplementedError

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def _start(self, key: str, fetch: Callable[[], Awaitable[T]]) -> asyncio.Task:
        self._token += 1
        token = self._token
        if self.in_flight:
            self._task.cancel()
        self._pending_key = key
        self._on_loading()
        self._notify()
        self._task = asyncio.get_running_loop().create_task(self._run(token, key, fetch))
        return self._task

    async def _run(self, token: int, key: str, fetch: Callable[[], Awaitable[T]]) -> None:
        try:
            result = await fetch()
        except CatalogFetchError as e:
            self._fail(token, e)
            return
        except Exception as e:
            logger.error(f"Unexpected catalog failure for {key}: {type(e).__name__}: {e}", exc_info=True)
            self._fail(token, CatalogFetchError(f"Unexpected catalog failure: {e}"))
            return

        if token != self._token:
            logger.debug(f"Discarding stale catalog result for {key}")
            return
        self._pending_key = None
        self._loaded_key = key
        self._on_result(result)
        self._notify()

    def _fail(self, token: int, error: CatalogFetchError) -> None:
        if token != self._token:
            return
        self._pending_key = None
        self._loaded_key = None
        self._on_error(error)
        self._notify()

    async def wait(self) -> None:
        """Wait until no fetch is in flight"""
        while self.in_flight:
            await asyncio.wait({self._task})

    def _on_loading(self) -> None:
        raise NotImplementedError

    def _on_result(self, result: T) -> None:
        raise NotImplementedError

    def _on_error(self, error: CatalogFetchError) -> None:
        raise NotImplementedError


class ProductListLoader(_TokenLoader[List[Product]]):
    """Product listing state for a filter set"""

    def __init__(self, fetch: Callable[[CatalogFilters], Awaitable[List[Product]]]):
        super().__init__()
        self._fetch = fetch
        self.filters = CatalogFilters()
        self.products: List[Product] = []
        self.loading = False
        self.error: Optional[str] = None

    @property
    def state(self) -> ProductListState:
        return ProductListState(products=list(self.products), loading=self.loading, error=self.error)

    def set_filters(self, filters: CatalogFilters) -> Optional[asyncio.Task]:
        """
        Switch to a new filter set, fetching only when needed.

        Returns the fetch task, or None when the current results already
        match the filters.
        """
        self.filters = filters
        key = filters.cache_key()
        if self.in_flight and key == self._pending_key:
            return self._task
        if not self.in_flight and key == self._loaded_key and self.error is None:
            return None
        return self._start(key, lambda: self._fetch(filters))

    def refetch(self) -> asyncio.Task:
        """Fetch the current filters again, ignoring what is loaded"""
        filters = self.filters
        return self._start(filters.cache_key(), lambda: self._fetch(filters))

    def _on_loading(self) -> None:
        self.loading = True

    def _on_result(self, result: List[Product]) -> None:
        self.products = list(result)
        self.error = None
        self.loading = False

    def _on_error(self, error: CatalogFetchError) -> None:
        logger.warning(f"Product listing failed: {error}")
        self.products = []
        self.error = LIST_ERROR_MESSAGE
        self.loading = False


class ProductLoader(_TokenLoader[Product]):
    """State of a single product lookup"""

    def __init__(self, fetch: Callable[[str], Awaitable[Product]]):
        super().__init__()
        self._fetch = fetch
        self.product_id: Optional[str] = None
        self.product: Optional[Product] = None
        self.loading = False
        self.error: Optional[str] = None

    @property
    def state(self) -> ProductState:
        return ProductState(product=self.product, loading=self.loading, error=self.error)

    def load(self, product_id: str) -> Optional[asyncio.Task]:
        self.product_id = product_id
        if self.in_flight and product_id == self._pending_key:
            return self._task
        if not self.in_flight and product_id == self._loaded_key and self.error is None:
            return None
        return self._start(product_id, lambda: self._fetch(product_id))

    def refetch(self) -> Optional[asyncio.Task]:
        if self.product_id is None:
            return None
        product_id = self.product_id
        return self._start(product_id, lambda: self._fetch(product_id))

    def _on_loading(self) -> None:
        self.loading = True

    def _on_result(self, result: Product) -> None:
        self.product = result
        self.error = None
        self.loading = False

    def _on_error(self, error: CatalogFetchError) -> None:
        self.product = None
        self.loading = False
        if isinstance(error, ProductNotFoundError):
            self.error = PRODUCT_NOT_FOUND_MESSAGE
        else:
            logger.warning(f"Product lookup failed: {error}")
            self.error = PRODUCT_ERROR_MESSAGE


class CategoryLoader(_TokenLoader[List[Category]]):
    """Category list state; categories rarely change, so one load is kept until refetch"""

    KEY = "categories"

    def __init__(self, fetch: Callable[[], Awaitable[List[Category]]]):
        super().__init__()
        self._fetch = fetch
        self.categories: List[Category] = []
        self.loading = False
        self.error: Optional[str] = None

    @property
    def state(self) -> CategoryListState:
        return CategoryListState(categories=list(self.categories), loading=self.loading, error=self.error)

    def load(self) -> Optional[asyncio.Task]:
        if self.in_flight:
            return self._task
        if self._loaded_key == self.KEY and self.error is None:
            return None
        return self._start(self.KEY, self._fetch)

    def refetch(self) -> asyncio.Task:
        return self._start(self.KEY, self._fetch)

    def _on_loading(self) -> None:
        self.loading = True

    def _on_result(self, result: List[Category]) -> None:
        self.categories = list(result)
        self.error = None
        self.loading = False

    def _on_error(self, error: CatalogFetchError) -> None:
        # Previous categories stay visible while the error is shown
        logger.warning(f"Category listing failed: {error}")
        self.error = CATEGORIES_ERROR_MESSAGE
        self.loading = False
