"""
Redis client manager that creates and tracks clients per connection label.

A manager is constructed once at the application boundary and handed to the
components that need Redis; nothing in the ingest core reaches for it globally.
"""

import threading
from collections.abc import Mapping

from loguru import logger
from redis.asyncio import Redis

from ..config import EnvironConfig


class RedisManager:
    """
    Redis client manager.

    Features:
    - Loads connection strings from `REDIS_URL` / `REDIS_URL_<LABEL>` settings
    - Supports standalone and cluster modes (`?mode=cluster`)
    - Lazily creates one cache client per label and closes them all on demand
    """

    def __init__(self, settings: EnvironConfig | Mapping[str, str]):
        self._settings = settings
        self._cache_clients: dict[str, Redis] = {}
        self._connection_strings: dict[str, str] = {}
        self._connection_modes: dict[str, str] = {}
        self._lock = threading.Lock()

        self._load_connection_strings()

    @staticmethod
    def _get_label_from_env_var(env_var: str) -> str | None:
        if env_var.startswith('REDIS_URL_'):
            return env_var[10:].lower()
        return None

    def _load_connection_strings(self):
        """Load Redis connection strings from settings."""
        for key, value in self._settings.items():
            label = self._get_label_from_env_var(key)
            if label is None or not value:
                continue

            self._connection_strings[label] = value
            mode = self._extract_mode_from_url(value)
            self._connection_modes[label] = mode
            logger.info(
                "Loaded Redis connection string for label '{}' (mode: {}): {}",
                label, mode, self._hide_password_in_connection_string(value),
            )

        if 'default' not in self._connection_strings:
            default_url = self._settings.get('REDIS_URL') or 'redis://localhost:6379'
            self._connection_strings['default'] = default_url
            mode = self._extract_mode_from_url(default_url)
            self._connection_modes['default'] = mode
            logger.info(
                "Using default Redis connection string (mode: {}): {}",
                mode, self._hide_password_in_connection_string(default_url),
            )

    @staticmethod
    def _extract_mode_from_url(connection_string: str) -> str:
        """Extract mode (cluster|standalone) from the `mode` query parameter."""
        _, _, query = connection_string.partition('?')
        for param in query.split('&'):
            if param.startswith('mode='):
                mode = param.split('=', 1)[1]
                if mode in ('cluster', 'standalone'):
                    return mode
        return 'standalone'

    @staticmethod
    def _clean_connection_string(connection_string: str) -> str:
        """Remove the `mode` parameter before connecting."""
        base_url, sep, query = connection_string.partition('?')
        if not sep:
            return connection_string
        params = [param for param in query.split('&') if param and not param.startswith('mode=')]
        return f"{base_url}?{'&'.join(params)}" if params else base_url

    @staticmethod
    def _hide_password_in_connection_string(connection_string: str) -> str:
        """Hide password in Redis connection string for logging."""
        if '://' not in connection_string:
            return connection_string

        protocol_part, rest = connection_string.split('://', 1)
        last_at_index = rest.rfind('@')
        if last_at_index == -1:
            return connection_string

        auth_part, host_part = rest[:last_at_index], rest[last_at_index + 1:]
        if ':' not in auth_part:
            return connection_string

        username, password = auth_part.split(':', 1)
        if not password:
            return connection_string
        return f"{protocol_part}://{username}:***@{host_part}"

    def labels(self) -> list[str]:
        return list(self._connection_strings)

    def get_cache_client(self, label: str | None = None) -> Redis:
        """
        Get Redis cache client by label.

        Args:
            label: Client label (defaults to 'default')

        Returns:
            Redis instance

        Raises:
            ValueError: If label not found
        """
        if label is None:
            label = 'default'

        with self._lock:
            if label not in self._cache_clients:
                if label not in self._connection_strings:
                    raise ValueError(f"No Redis connection string found for label '{label}'")

                mode = self._connection_modes.get(label, 'standalone')
                clean_url = self._clean_connection_string(self._connection_strings[label])

                logger.info("Open Redis cache client for label '{}' (mode: {})", label, mode)

                if mode == 'cluster':
                    from redis.asyncio.cluster import RedisCluster
                    self._cache_clients[label] = RedisCluster.from_url(clean_url)
                else:
                    self._cache_clients[label] = Redis.from_url(clean_url)

            return self._cache_clients[label]

    async def close_cache_client(self, label: str):
        """Close specific cache client."""
        with self._lock:
            client = self._cache_clients.pop(label, None)
        if client is None:
            return

        try:
            await client.aclose()
            logger.info("Closed Redis cache client for label '{}'", label)
        except Exception as e:
            logger.error("Error closing Redis cache client for label '{}': {}", label, e)

    async def close_all(self):
        """Close all clients."""
        with self._lock:
            cache_labels = list(self._cache_clients.keys())

        for label in cache_labels:
            await self.close_cache_client(label)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_all()
