"""
Configuration management for the storefront client.
Loads settings from environment variables and AWS Secrets Manager.
"""
import os
import json
import logging
import boto3
from typing import Optional

logger = logging.getLogger(__name__)


class Config:
    """Application configuration"""

    # Application settings
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "tienda-did-storefront")
    REGION: str = os.getenv("REGION", "us-east-1")

    # Store settings
    STORE_NAME: str = os.getenv("STORE_NAME", "Tienda DID")
    STORE_ADDRESS: str = os.getenv(
        "STORE_ADDRESS",
        "Sector 1 Manzana D-1, Barrio Villa Consuelo, Bosconia - Cesar",
    )
    WHATSAPP_NUMBER: str = os.getenv("WHATSAPP_NUMBER", "573235725922")
    WHATSAPP_URL: str = os.getenv("WHATSAPP_URL", "https://wa.me")
    CLOSING_HOUR: int = int(os.getenv("CLOSING_HOUR", "22"))
    CLOSING_WARNING_MINUTES: int = int(os.getenv("CLOSING_WARNING_MINUTES", "30"))
    BUSINESS_HOURS_POLL_SECONDS: float = float(os.getenv("BUSINESS_HOURS_POLL_SECONDS", "60"))

    # Cart settings
    CART_STORAGE_KEY: str = os.getenv("CART_STORAGE_KEY", "tienda-did-cart")
    MAX_QUANTITY_PER_ITEM: int = int(os.getenv("MAX_QUANTITY_PER_ITEM", "100"))

    # Durable storage settings ("redis" or "file")
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "file")
    STORAGE_DIR: str = os.getenv("STORAGE_DIR", os.path.expanduser("~/.tienda-did"))

    # Redis settings
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_AUTH_TOKEN: Optional[str] = os.getenv("REDIS_AUTH_TOKEN")
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_SSL: bool = os.getenv("REDIS_SSL", "false").lower() == "true"

    # Redis connection settings
    REDIS_SOCKET_CONNECT_TIMEOUT: int = 5
    REDIS_SOCKET_TIMEOUT: int = 5
    REDIS_RETRY_ON_TIMEOUT: bool = True
    REDIS_MAX_CONNECTIONS: int = 10

    # Catalog API settings
    CATALOG_API_URL: str = os.getenv("CATALOG_API_URL", "http://localhost:3000/api")
    CATALOG_API_KEY: Optional[str] = os.getenv("CATALOG_API_KEY")
    CATALOG_TIMEOUT_SECONDS: float = float(os.getenv("CATALOG_TIMEOUT_SECONDS", "10"))

    @classmethod
    def load_secrets(cls) -> None:
        """Load the Redis auth token and catalog API key from AWS Secrets Manager"""
        if cls.REDIS_AUTH_TOKEN and cls.CATALOG_API_KEY:
            return  # Already loaded from environment

        secret_name = os.getenv("STOREFRONT_SECRET_NAME")
        if not secret_name:
            return

        try:
            client = boto3.client("secretsmanager", region_name=cls.REGION)
            response = client.get_secret_value(SecretId=secret_name)
            secret_data = json.loads(response["SecretString"])

            cls.REDIS_AUTH_TOKEN = cls.REDIS_AUTH_TOKEN or secret_data.get("redis_auth_token")
            cls.CATALOG_API_KEY = cls.CATALOG_API_KEY or secret_data.get("catalog_api_key")
            if "redis_endpoint" in secret_data:
                cls.REDIS_HOST = secret_data["redis_endpoint"]
        except Exception as e:
            # Continue without secrets; the catalog may still allow anonymous reads
            logger.warning(f"Could not load secrets from Secrets Manager: {e}")


# Load secrets at module import
Config.load_secrets()
