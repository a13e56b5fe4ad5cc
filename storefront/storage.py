"""
Durable key-value storage for the cart: Redis with connection pooling and
retry logic, or a directory of JSON files.
"""
import logging
import os
import random
import re
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Optional

import redis
from redis.exceptions import (
    ConnectionError,
    TimeoutError,
    RedisError,
    AuthenticationError
)

from storefront.config import Config
from storefront.exceptions import StorageError

logger = logging.getLogger(__name__)


class RedisStorage:
    """Redis-backed storage with connection pooling and retry logic"""

    def __init__(self, url: Optional[str] = None):
        self.url = url or self._build_url()
        self.pool: Optional[redis.ConnectionPool] = None
        self.client: Optional[redis.Redis] = None
        self._connect()

    @staticmethod
    def _build_url() -> str:
        scheme = "rediss" if Config.REDIS_SSL else "redis"
        auth = f":{Config.REDIS_AUTH_TOKEN}@" if Config.REDIS_AUTH_TOKEN else ""
        return f"{scheme}://{auth}{Config.REDIS_HOST}:{Config.REDIS_PORT}/{Config.REDIS_DB}"

    def _connect(self):
        """Initialize Redis connection pool"""
        try:
            self.pool = redis.ConnectionPool.from_url(
                self.url,
                max_connections=Config.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=Config.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=Config.REDIS_RETRY_ON_TIMEOUT,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)

            # Test connection
            self.client.ping()

        except (ConnectionError, AuthenticationError) as e:
            raise StorageError(f"Failed to connect to Redis: {e}")

    def _retry_with_backoff(
        self,
        func: Callable,
        max_retries: int = 3,
        initial_backoff: float = 0.1,
        max_backoff: float = 2.0
    ) -> Any:
        """
        Execute function with exponential backoff retry.

        Args:
            func: Function to execute
            max_retries: Maximum number of retry attempts
            initial_backoff: Initial backoff delay in seconds
            max_backoff: Maximum backoff delay in seconds

        Returns:
            Result of function execution

        Raises:
            StorageError: If all retries fail
        """
        backoff = initial_backoff

        for attempt in range(max_retries):
            try:
                return func()
            except (ConnectionError, TimeoutError) as e:
                if attempt == max_retries - 1:
                    raise StorageError(f"Redis operation failed after {max_retries} retries: {e}")

                # Exponential backoff with jitter
                jitter = random.uniform(0, backoff * 0.1)
                time.sleep(backoff + jitter)
                backoff = min(backoff * 2, max_backoff)

                try:
                    self._connect()
                except StorageError as reconnect_error:
                    logger.warning(f"Redis reconnect failed: {reconnect_error}")

            except RedisError as e:
                # Non-retryable errors
                raise StorageError(f"Redis error: {e}")

    def get(self, key: str) -> Optional[str]:
        """Get value from Redis"""
        def _get():
            return self.client.get(key)
        return self._retry_with_backoff(_get)

    def set(self, key: str, value: str) -> bool:
        """Set value in Redis"""
        def _set():
            return self.client.set(key, value)
        return self._retry_with_backoff(_set)

    def delete(self, key: str) -> int:
        """Delete a key"""
        def _delete():
            return self.client.delete(key)
        return self._retry_with_backoff(_delete)

    def ping(self) -> bool:
        """Test Redis connection"""
        try:
            return self.client.ping()
        except RedisError:
            return False

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.disconnect()


class FileStorage:
    """One JSON document per key inside a directory, replaced atomically"""

    _SAFE_KEY = re.compile(r"[^A-Za-z0-9._-]")

    def __init__(self, directory: Optional[str] = None):
        self.directory = Path(directory or Config.STORAGE_DIR)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{self._SAFE_KEY.sub('_', key)}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Could not read {path}: {e}")

    def set(self, key: str, value: str) -> bool:
        path = self._path(key)
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageError(f"Could not write {path}: {e}")
        return True

    def delete(self, key: str) -> int:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return 0
        return 1

    def ping(self) -> bool:
        return self.directory.is_dir()

    def close(self):
        pass


def create_storage(backend: Optional[str] = None):
    """Build the storage backend named by Config.STORAGE_BACKEND"""
    backend = (backend or Config.STORAGE_BACKEND).lower()
    if backend == "redis":
        return RedisStorage()
    if backend == "file":
        return FileStorage()
    raise ValueError(f"Unknown storage backend: {backend}")
