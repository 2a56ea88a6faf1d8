"""
Redis-backed rate table store.

The whole table lives under one key as a JSON snapshot, so a reader sees
either the previous table or the next one and never a half-applied
update.  Partial updates are read-merge-write and run under a
``DistributedLock`` to keep concurrent operator edits from being lost.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

import redis.asyncio as aioredis

from .locks import DistributedLock
from src.config import settings
from src.domain.pricing import RateTable, default_rate_table

logger = logging.getLogger(__name__)


class RedisRateTableStore:
    def __init__(
        self,
        client: aioredis.Redis,
        key: str = settings.rate_table_key,
        utc_offset_minutes: int = settings.pricing_utc_offset_minutes,
        lock_ttl_seconds: int = settings.rate_table_lock_ttl_seconds,
    ):
        self.redis = client
        self.key = key
        self.utc_offset_minutes = utc_offset_minutes
        self.lock_ttl = lock_ttl_seconds

    async def get(self) -> RateTable:
        """Current snapshot; factory defaults until an operator saves one."""
        raw = await self.redis.get(self.key)
        if raw is None:
            return default_rate_table(self.utc_offset_minutes)
        return RateTable.from_dict(json.loads(raw))

    async def update(self, changes: Mapping[str, Any]) -> RateTable:
        async with DistributedLock(self.redis, self.key, ttl_seconds=self.lock_ttl):
            current = await self.get()
            table = current.merged(changes)
            await self._write(table)
        logger.info("Rate table updated to version %d", table.version)
        return table

    async def reset(self) -> RateTable:
        async with DistributedLock(self.redis, self.key, ttl_seconds=self.lock_ttl):
            current = await self.get()
            table = default_rate_table(self.utc_offset_minutes, version=current.version + 1)
            await self._write(table)
        logger.info("Rate table reset to defaults (version %d)", table.version)
        return table

    async def replace(self, table: RateTable) -> None:
        await self._write(table)

    async def _write(self, table: RateTable) -> None:
        await self.redis.set(self.key, json.dumps(table.to_dict()))
