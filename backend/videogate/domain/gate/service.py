"""Request gate: admission before a video transfer and accounting after it.

Per request the gate moves through identity resolution, the ban check and the
quota check before the transfer; any of them can end the request early. Once the
transfer finished (completely, partially or aborted) `settle` runs the partial
read detector, commits the counters and writes the access log line.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from videogate.domain.gate import identity as identity_resolver
from videogate.domain.gate.bans import BanRegistry
from videogate.domain.gate.consumption import ConsumptionSnapshot, ConsumptionTracker, read_fraction
from videogate.domain.gate.partial_reads import PartialReadDetector, Sleep
from videogate.errors import ClientRejected, ResourceNotFound
from videogate.infra.counters import CounterStore
from videogate.infra.streaming import Resource, TransferMeter, open_resource, resource_key
from videogate.obs import logging as obs_logging
from videogate.obs import metrics
from videogate.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Admission:
	identity: str
	resource: Resource


class RequestGate:
	def __init__(
		self,
		store: Optional[CounterStore] = None,
		config: Optional[Settings] = None,
		*,
		sleep: Sleep = asyncio.sleep,
	) -> None:
		store = store or CounterStore()
		self._config = config
		self.bans = BanRegistry(store, ttl_seconds=config.ban_ttl_seconds if config else None)
		self.consumption = ConsumptionTracker(store, config)
		self.partial_reads = PartialReadDetector(store, config, sleep=sleep)

	@property
	def config(self) -> Settings:
		return self._config or default_settings

	async def admit(
		self,
		remote_address: Optional[str],
		forwarded_for: Optional[str],
		name: str,
		extension: str,
	) -> Admission:
		"""Decide whether the request may receive bytes.

		Raises InvalidAddress, ClientRejected or ResourceNotFound. On success the
		recent-access marker for the identity and resource is armed.
		"""
		cfg = self.config
		identity = identity_resolver.resolve(remote_address, forwarded_for, mask=cfg.identity_mask_ipv4)
		obs_logging.bind_context(client_ip=identity)

		if await self.bans.is_banned(identity):
			metrics.inc_decision("banned")
			logger.info("client_banned_request", extra={"identity": identity})
			raise ClientRejected("banned")

		key = resource_key(cfg.video_root, name, extension)
		verdict = await self.consumption.check_quota(identity, key)
		if not verdict.admitted:
			metrics.inc_decision(verdict.value)
			await self.bans.ban(identity, reason=verdict.value)
			raise ClientRejected(verdict.value)

		try:
			resource = open_resource(cfg.video_root, name, extension)
		except ResourceNotFound:
			metrics.inc_decision("not_found")
			raise
		metrics.inc_decision("admitted")
		await self.partial_reads.arm(identity, resource.key)
		return Admission(identity=identity, resource=resource)

	async def settle(self, admission: Admission, meter: TransferMeter) -> ConsumptionSnapshot:
		"""Account for a finished transfer and log it."""
		cfg = self.config
		identity = admission.identity
		resource = admission.resource
		sent = meter.bytes_sent
		fraction = read_fraction(sent, resource.size)
		fraction = await self.partial_reads.settle(identity, resource.key, sent, fraction)
		snapshot = await self.consumption.record(identity, resource.key, sent, resource.size, fraction=fraction)
		metrics.add_bytes_served(sent)
		if sent > cfg.trivial_read_bytes:
			extra = {
				"identity": identity,
				"resource": resource.key,
				"bytes_total": snapshot.total_bytes,
				"bytes": sent,
				"size": resource.size,
				"fraction_total": round(snapshot.total_fraction, 2) if snapshot.total_fraction is not None else None,
			}
			if meter.error is not None:
				extra["transfer_error"] = meter.error.detail
			logger.info("video_access", extra=extra)
		return snapshot
