"""
Redis access for invalidating cached smart-contract definitions
(keys like LOAN_SMART_CONTRACT:Revolving_Loan).
"""

from __future__ import annotations

import logging

import redis

from dcb_lending.utils.config_loader import RedisSettings

logger = logging.getLogger(__name__)


class SmartContractCache:
    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0, client=None) -> None:
        self.host = host
        self.port = port
        self._client = client or redis.Redis(host=host, port=port, db=db, decode_responses=True)

    @classmethod
    def from_settings(cls, settings: RedisSettings) -> "SmartContractCache":
        return cls(host=settings.host, port=settings.port, db=settings.db)

    def invalidate(self, key: str) -> bool:
        """Delete one key. Returns False when the key was already absent."""
        logger.info("Deleting Redis key %s at %s:%s", key, self.host, self.port)
        deleted = self._client.delete(key)
        if deleted:
            logger.info("Deleted Redis key %s: Success", key)
        else:
            logger.info("Deleted Redis key %s: Key not found", key)
        return bool(deleted)

    def close(self) -> None:
        self._client.close()
        logger.info("Closed Redis connection")

    def __enter__(self) -> "SmartContractCache":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

