"""Per-identity ban flag stored with a fixed TTL."""

from __future__ import annotations

import logging
from typing import Optional

from videogate.domain.gate import keys
from videogate.errors import StoreUnavailable
from videogate.infra.counters import CounterStore
from videogate.obs import metrics
from videogate.settings import settings

logger = logging.getLogger(__name__)


class BanRegistry:
	def __init__(self, store: CounterStore, *, ttl_seconds: Optional[int] = None) -> None:
		self._store = store
		self._ttl_seconds = ttl_seconds

	@property
	def ttl_seconds(self) -> int:
		return self._ttl_seconds if self._ttl_seconds is not None else settings.ban_ttl_seconds

	async def is_banned(self, identity: str) -> bool:
		"""Read-only check. A store failure reads as "not banned"."""
		try:
			value = await self._store.get(keys.banned(identity))
		except StoreUnavailable:
			logger.warning("store_unavailable", extra={"operation": "ban_check", "identity": identity})
			return False
		return bool(value)

	async def ban(self, identity: str, *, reason: str) -> None:
		"""Set the ban flag. Repeated calls only refresh the TTL."""
		metrics.inc_ban(reason)
		try:
			await self._store.set_with_ttl(keys.banned(identity), "1", self.ttl_seconds)
		except StoreUnavailable:
			logger.error("store_unavailable", extra={"operation": "ban", "identity": identity, "reason": reason})
			return
		logger.warning("client_banned", extra={"identity": identity, "reason": reason})
