"""
Core module - Configuration, storage, Redis, signing and service errors.

Authentication dependencies live in ``app.core.auth`` and are imported from
there directly.
"""

from app.core.config import get_settings, settings
from app.core.database import Base, StorageBackend, create_storage, get_storage
from app.core.errors import InfrastructureUnavailableError, ServiceError
from app.core.redis import close_redis, create_redis_client
from app.core.security import Signer, hash_password, verify_password

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Storage
    "Base",
    "StorageBackend",
    "create_storage",
    "get_storage",
    # Redis
    "create_redis_client",
    "close_redis",
    # Security
    "Signer",
    "hash_password",
    "verify_password",
    # Errors
    "ServiceError",
    "InfrastructureUnavailableError",
]
