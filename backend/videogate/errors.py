"""Exceptions raised by the access gate and its infrastructure."""

from __future__ import annotations

from fastapi import status


class GateError(Exception):
	"""Base class for gate errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "gate_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class InvalidAddress(GateError):
	"""The client address could not be parsed into an identity."""

	detail = "invalid_address"


class StoreUnavailable(GateError):
	"""A counter store call failed. Callers decide whether to fail open."""

	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	detail = "store_unavailable"

	def __init__(self, operation: str, detail: str | None = None) -> None:
		super().__init__(detail)
		self.operation = operation


class ResourceNotFound(GateError):
	"""The requested video is not part of the catalog."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class TransferError(GateError):
	"""Reading the video failed part way through the response body."""

	status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
	detail = "transfer_error"


class RangeNotSatisfiable(GateError):
	"""The Range header cannot be served for this resource."""

	status_code = status.HTTP_416_RANGE_NOT_SATISFIABLE
	detail = "range_not_satisfiable"

	def __init__(self, size: int, detail: str | None = None) -> None:
		super().__init__(detail)
		self.size = size


class ClientRejected(GateError):
	"""The client is banned or just crossed a quota.

	Answered with a plain 200 and the fixed rejection body rather than an
	error status.
	"""

	status_code = status.HTTP_200_OK
	detail = "rejected"

	def __init__(self, reason: str) -> None:
		super().__init__()
		self.reason = reason
