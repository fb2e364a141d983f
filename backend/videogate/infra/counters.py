"""Narrow counter-store interface over Redis.

Every gate component talks to the store through `CounterStore`; nothing else in
the domain layer touches the Redis client directly. Each method is one round
trip, and combined increment/expire operations run inside a MULTI block so the
key never exists without its TTL.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from redis.exceptions import RedisError

from videogate.errors import StoreUnavailable
from videogate.infra.redis import redis_client
from videogate.obs import metrics

logger = logging.getLogger(__name__)


def _apply_ttl(pipe: Any, key: str, ttl_seconds: float) -> None:
	if float(ttl_seconds).is_integer():
		pipe.expire(key, int(ttl_seconds))
	else:
		pipe.pexpire(key, max(1, int(ttl_seconds * 1000)))


class CounterStore:
	"""Key-value operations with per-key expiry and atomic increments."""

	def __init__(self, client: Any = None) -> None:
		self._client = client if client is not None else redis_client

	def _unavailable(self, operation: str, exc: Exception) -> StoreUnavailable:
		metrics.inc_store_failure(operation)
		return StoreUnavailable(operation, detail=str(exc) or None)

	async def get(self, key: str) -> Optional[str]:
		try:
			return await self._client.get(key)
		except RedisError as exc:
			raise self._unavailable("get", exc) from exc

	async def set_with_ttl(self, key: str, value: str, ttl_seconds: float) -> None:
		try:
			if float(ttl_seconds).is_integer():
				await self._client.set(key, value, ex=int(ttl_seconds))
			else:
				await self._client.set(key, value, px=max(1, int(ttl_seconds * 1000)))
		except RedisError as exc:
			raise self._unavailable("set", exc) from exc

	async def incr(self, key: str, amount: int = 1) -> int:
		try:
			return int(await self._client.incrby(key, amount))
		except RedisError as exc:
			raise self._unavailable("incr", exc) from exc

	async def incr_by_float(self, key: str, amount: float) -> float:
		try:
			return float(await self._client.incrbyfloat(key, amount))
		except RedisError as exc:
			raise self._unavailable("incrbyfloat", exc) from exc

	async def expire(self, key: str, ttl_seconds: float) -> bool:
		try:
			if float(ttl_seconds).is_integer():
				return bool(await self._client.expire(key, int(ttl_seconds)))
			return bool(await self._client.pexpire(key, max(1, int(ttl_seconds * 1000))))
		except RedisError as exc:
			raise self._unavailable("expire", exc) from exc

	async def incr_with_ttl(self, key: str, amount: int, ttl_seconds: float) -> int:
		"""Increment an integer counter and re-arm its TTL in one transaction."""
		try:
			async with self._client.pipeline(transaction=True) as pipe:
				pipe.incrby(key, amount)
				_apply_ttl(pipe, key, ttl_seconds)
				count, _ = await pipe.execute()
		except RedisError as exc:
			raise self._unavailable("incr_with_ttl", exc) from exc
		return int(count)

	async def incr_float_with_ttl(self, key: str, amount: float, ttl_seconds: float) -> float:
		"""Increment a float accumulator and re-arm its TTL in one transaction."""
		try:
			async with self._client.pipeline(transaction=True) as pipe:
				pipe.incrbyfloat(key, amount)
				_apply_ttl(pipe, key, ttl_seconds)
				total, _ = await pipe.execute()
		except RedisError as exc:
			raise self._unavailable("incr_float_with_ttl", exc) from exc
		return float(total)

	async def read_and_touch(self, key: str, ttl_seconds: float) -> Optional[str]:
		"""Return the value held before this call, then increment and re-arm the key."""
		try:
			async with self._client.pipeline(transaction=True) as pipe:
				pipe.get(key)
				pipe.incr(key)
				_apply_ttl(pipe, key, ttl_seconds)
				previous, _, _ = await pipe.execute()
		except RedisError as exc:
			raise self._unavailable("read_and_touch", exc) from exc
		return previous

	async def ping(self) -> bool:
		try:
			return bool(await self._client.ping())
		except RedisError as exc:
			raise self._unavailable("ping", exc) from exc
