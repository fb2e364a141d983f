"""Rolling byte and per-resource fraction accounting."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from videogate.domain.gate import keys
from videogate.errors import StoreUnavailable
from videogate.infra.counters import CounterStore
from videogate.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class Verdict(str, Enum):
	ADMIT = "admit"
	REJECT_BYTE_QUOTA = "byte_quota"
	REJECT_FRACTION_QUOTA = "fraction_quota"

	@property
	def admitted(self) -> bool:
		return self is Verdict.ADMIT


@dataclass(frozen=True)
class ConsumptionSnapshot:
	"""Cumulative counters after a record() call. None when the store was unreachable."""

	total_bytes: Optional[int] = None
	total_fraction: Optional[float] = None


def read_fraction(bytes_transferred: int, resource_size: int) -> float:
	if resource_size <= 0:
		return 0.0
	return bytes_transferred / resource_size


def _as_int(value: Optional[str]) -> int:
	if not value:
		return 0
	if value.lstrip("-").isdigit():
		return int(value)
	try:
		return int(float(value))
	except (ValueError, OverflowError) as exc:
		raise StoreUnavailable("decode", detail=f"not a number: {value!r}") from exc


def _as_float(value: Optional[str]) -> float:
	if not value:
		return 0.0
	try:
		return float(value)
	except ValueError as exc:
		raise StoreUnavailable("decode", detail=f"not a number: {value!r}") from exc


class ConsumptionTracker:
	def __init__(self, store: CounterStore, config: Optional[Settings] = None) -> None:
		self._store = store
		self._config = config

	@property
	def config(self) -> Settings:
		return self._config or default_settings

	async def check_quota(self, identity: str, resource: str) -> Verdict:
		"""Compare both rolling counters against their caps. Store failures admit."""
		cfg = self.config
		try:
			total_bytes = _as_int(await self._store.get(keys.bytes_read(identity)))
			if total_bytes > cfg.byte_quota:
				logger.warning(
					"quota_exceeded",
					extra={"identity": identity, "quota": "bytes", "bytes_total": total_bytes},
				)
				return Verdict.REJECT_BYTE_QUOTA
			fraction = _as_float(await self._store.get(keys.fraction_read(identity, resource)))
		except StoreUnavailable:
			logger.warning("store_unavailable", extra={"operation": "quota_check", "identity": identity})
			return Verdict.ADMIT
		if fraction > cfg.fraction_quota:
			logger.warning(
				"quota_exceeded",
				extra={
					"identity": identity,
					"quota": "fraction",
					"resource": resource,
					"fraction_total": round(fraction, 4),
				},
			)
			return Verdict.REJECT_FRACTION_QUOTA
		return Verdict.ADMIT

	async def record(
		self,
		identity: str,
		resource: str,
		bytes_transferred: int,
		resource_size: int,
		*,
		fraction: Optional[float] = None,
	) -> ConsumptionSnapshot:
		"""Add one completed transfer to both counters and re-arm their windows.

		`fraction` overrides bytes/size, e.g. when a partial read was forced to a
		full view.
		"""
		cfg = self.config
		if fraction is None:
			fraction = read_fraction(bytes_transferred, resource_size)
		try:
			total_bytes = await self._store.incr_with_ttl(
				keys.bytes_read(identity), int(bytes_transferred), cfg.byte_window_seconds
			)
			total_fraction = await self._store.incr_float_with_ttl(
				keys.fraction_read(identity, resource), float(fraction), cfg.fraction_window_seconds
			)
		except StoreUnavailable:
			logger.error(
				"store_unavailable",
				extra={"operation": "record", "identity": identity, "resource": resource, "bytes": bytes_transferred},
			)
			return ConsumptionSnapshot()
		return ConsumptionSnapshot(total_bytes=total_bytes, total_fraction=total_fraction)
