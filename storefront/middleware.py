"""
Middleware for FastAPI: request logging and latency headers.
"""
import time
import hashlib
import logging
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def hash_identifier(identifier: str) -> str:
    """Hash identifier for logging (no PII)"""
    return hashlib.sha256(identifier.encode()).hexdigest()[:8]


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its status and latency"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        client_id = request.headers.get("X-Client-ID")
        hashed_client_id = hash_identifier(client_id) if client_id else None

        logger.info(
            f"Request: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "hashed_client_id": hashed_client_id,
            }
        )

        try:
            response = await call_next(request)

            latency_ms = (time.time() - start_time) * 1000

            logger.info(
                f"Response: {request.method} {request.url.path} {response.status_code}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "latency_ms": round(latency_ms, 2),
                    "hashed_client_id": hashed_client_id,
                }
            )

            response.headers["X-Response-Time-Ms"] = f"{latency_ms:.2f}"
            return response

        except Exception as e:
            logger.error(
                f"Error: {request.method} {request.url.path}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "hashed_client_id": hashed_client_id,
                },
                exc_info=True
            )
            # Let the exception handlers build the response
            raise
