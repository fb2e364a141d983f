"""Detection of clients slicing a video into small, spaced-out range requests.

A small read normally comes from a player seeking or buffering, and the player
comes back for the next range within seconds, often while the previous one is
still in flight. A scraper that wants to stay under the fraction quota instead
spaces its slices out.

Every request touches a `last_access-*` counter: once when it is admitted and
once when its transfer ends. An eligible small read then pauses for the grace
period and reads the counter back. If nothing from the same identity touched
the resource during the pause (the counter still holds the value this request
left, or it has expired) the read is counted as a full view.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from videogate.domain.gate import keys
from videogate.errors import StoreUnavailable
from videogate.infra.counters import CounterStore
from videogate.obs import metrics
from videogate.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

FULL_VIEW = 1.0

Sleep = Callable[[float], Awaitable[None]]


class PartialReadDetector:
	def __init__(
		self,
		store: CounterStore,
		config: Optional[Settings] = None,
		*,
		sleep: Sleep = asyncio.sleep,
	) -> None:
		self._store = store
		self._config = config
		self._sleep = sleep

	@property
	def config(self) -> Settings:
		return self._config or default_settings

	def is_eligible(self, bytes_transferred: int, fraction: float) -> bool:
		"""Small but not trivial: over 100 bytes, and under 1 MiB or a quarter of the file."""
		cfg = self.config
		if bytes_transferred <= cfg.partial_read_min_bytes:
			return False
		return bytes_transferred < cfg.partial_read_max_bytes or fraction < cfg.partial_read_max_fraction

	async def arm(self, identity: str, resource: str) -> None:
		"""Mark the identity as mid-session on the resource for the grace window."""
		try:
			await self._store.incr_with_ttl(
				keys.last_access(identity, resource), 1, self.config.recent_access_ttl_seconds
			)
		except StoreUnavailable:
			logger.warning("store_unavailable", extra={"operation": "arm_marker", "identity": identity})

	async def settle(self, identity: str, resource: str, bytes_transferred: int, fraction: float) -> float:
		"""Return the fraction to commit for this transfer.

		Blocks this request's task for the grace period. Reads that are not
		eligible are returned unchanged without waiting.
		"""
		if not self.is_eligible(bytes_transferred, fraction):
			return fraction
		cfg = self.config
		marker = keys.last_access(identity, resource)
		# Must outlive the pause so that reads finishing together see each other.
		try:
			own_touch = await self._store.incr_with_ttl(
				marker, 1, cfg.partial_read_grace_seconds + cfg.recent_access_ttl_seconds
			)
		except StoreUnavailable:
			logger.warning("store_unavailable", extra={"operation": "rearm_marker", "identity": identity})
			return fraction
		await self._sleep(cfg.partial_read_grace_seconds)
		try:
			previous = await self._store.read_and_touch(marker, cfg.recent_access_ttl_seconds)
		except StoreUnavailable:
			logger.warning("store_unavailable", extra={"operation": "partial_read_check", "identity": identity})
			return fraction
		if previous is not None and int(previous) != own_touch:
			return fraction
		metrics.inc_partial_read_forced()
		logger.warning(
			"partial_read_forced",
			extra={
				"identity": identity,
				"resource": resource,
				"bytes": bytes_transferred,
				"fraction_computed": round(fraction, 6),
			},
		)
		return FULL_VIEW
