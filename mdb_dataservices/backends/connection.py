"""
MongoDB client pool keyed by connection profile.

One AsyncIOMotorClient is created per profile and shared by every store
that uses that profile. The pool is owned by whoever builds it (usually
DataServiceFactory) and closed explicitly.
"""

import logging
import threading
from typing import Dict

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import ConfigurationError as PyMongoConfigurationError
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from ..config import ConnectionProfile
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def create_motor_client(profile: ConnectionProfile) -> AsyncIOMotorClient:
    """
    Create a motor client for ``profile``.

    Raises:
        ConfigurationError: If the connection string is rejected
    """
    logger.info(
        f"Creating MongoDB client for profile '{profile.name}' "
        f"(max_pool_size={profile.number_of_workers}, "
        f"retry_writes={profile.max_retry_attempts > 0})"
    )
    try:
        return AsyncIOMotorClient(
            profile.connection_string,
            appname="MDB_DATASERVICES",
            tz_aware=True,
            maxPoolSize=profile.number_of_workers,
            serverSelectionTimeoutMS=profile.server_selection_timeout_ms,
            retryWrites=profile.max_retry_attempts > 0,
            retryReads=profile.max_retry_attempts > 0,
        )
    except (PyMongoConfigurationError, ConnectionFailure, ServerSelectionTimeoutError, ValueError, TypeError) as e:
        logger.error(f"Failed to create MongoDB client for '{profile.name}': {e}", exc_info=True)
        raise ConfigurationError(
            f"Invalid connection settings for profile '{profile.name}': {e}",
            config_key="connection_string",
        ) from e


class MongoClientPool:
    """Lazily created clients, one per connection profile."""

    def __init__(self):
        self._clients: Dict[str, AsyncIOMotorClient] = {}
        self._lock = threading.Lock()

    def get(self, profile: ConnectionProfile) -> AsyncIOMotorClient:
        client = self._clients.get(profile.name)
        if client is not None:
            return client
        with self._lock:
            # Double-check: another thread may have created it while we waited
            client = self._clients.get(profile.name)
            if client is None:
                client = create_motor_client(profile)
                self._clients[profile.name] = client
            return client

    def close(self) -> None:
        with self._lock:
            for name, client in self._clients.items():
                logger.info(f"Closing MongoDB client for profile '{name}'")
                client.close()
            self._clients.clear()

    def __len__(self) -> int:
        return len(self._clients)
