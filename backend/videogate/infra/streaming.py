"""Byte-range aware file streaming with transfer metering."""

from __future__ import annotations

import logging
import mimetypes
import re
import stat
from dataclasses import dataclass
from email.utils import formatdate
from pathlib import Path
from typing import Awaitable, Callable, Iterator, Optional

import anyio
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from videogate.errors import RangeNotSatisfiable, ResourceNotFound, TransferError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_BYTES = 64 * 1024

_RANGE_SPEC = re.compile(r"^\s*(\d*)\s*-\s*(\d*)\s*$")
_UNSAFE_NAME_CHARS = ("/", "\\", "\x00")

OnComplete = Callable[["TransferMeter"], Awaitable[None]]


@dataclass(frozen=True)
class Resource:
	key: str
	path: Path
	size: int
	modified: float
	media_type: str


@dataclass(frozen=True)
class ByteRange:
	start: int
	end: int  # inclusive

	@property
	def length(self) -> int:
		return self.end - self.start + 1


def resource_key(root: str, name: str, extension: str) -> str:
	"""Catalog path of a video as it appears in counter keys, e.g. ./videos/clip.mp4"""
	return f"{root}/{name}.{extension}"


def open_resource(root: str, name: str, extension: str) -> Resource:
	filename = f"{name}.{extension}"
	if not name or any(ch in filename for ch in _UNSAFE_NAME_CHARS):
		raise ResourceNotFound()
	path = Path(root) / filename
	try:
		info = path.stat()
	except OSError as exc:
		raise ResourceNotFound() from exc
	if not stat.S_ISREG(info.st_mode):
		raise ResourceNotFound()
	media_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
	return Resource(
		key=resource_key(root, name, extension),
		path=path,
		size=info.st_size,
		modified=info.st_mtime,
		media_type=media_type,
	)


def parse_range(header: Optional[str], size: int) -> Optional[ByteRange]:
	"""Parse a single-range `Range` header against a resource size.

	Returns None when the whole resource should be served: no header, or a
	multi-range request, which is answered with the full body. Raises
	RangeNotSatisfiable for malformed or out-of-bounds ranges.
	"""
	if not header:
		return None
	unit, sep, spec = header.partition("=")
	if not sep or unit.strip().lower() != "bytes":
		raise RangeNotSatisfiable(size)
	if "," in spec:
		return None
	match = _RANGE_SPEC.match(spec)
	if not match:
		raise RangeNotSatisfiable(size)
	start_text, end_text = match.groups()
	if not start_text:
		# suffix range: bytes=-N
		if not end_text or int(end_text) == 0 or size == 0:
			raise RangeNotSatisfiable(size)
		return ByteRange(start=max(size - int(end_text), 0), end=size - 1)
	start = int(start_text)
	end = int(end_text) if end_text else size - 1
	if start >= size or end < start:
		raise RangeNotSatisfiable(size)
	return ByteRange(start=start, end=min(end, size - 1))


class TransferMeter:
	"""Bytes handed to the transport so far."""

	def __init__(self) -> None:
		self.bytes_sent = 0
		self.error: Optional[TransferError] = None


def iter_file(path: Path, start: int, length: int, meter: TransferMeter, chunk_size: int = DEFAULT_CHUNK_BYTES) -> Iterator[bytes]:
	# A chunk is counted once the consumer asks for the next one, i.e. after the
	# previous chunk was sent. An abort therefore leaves the last chunk uncounted.
	try:
		with open(path, "rb") as fh:
			fh.seek(start)
			remaining = length
			while remaining > 0:
				chunk = fh.read(min(chunk_size, remaining))
				if not chunk:
					break
				remaining -= len(chunk)
				yield chunk
				meter.bytes_sent += len(chunk)
	except OSError as exc:
		meter.error = TransferError(str(exc) or None)
		logger.warning(
			"transfer_error",
			extra={"file": str(path), "bytes": meter.bytes_sent, "error": str(exc)},
		)


class MeteredFileResponse(StreamingResponse):
	"""Serve a file (or one byte range of it) and report how much was sent.

	`on_complete` receives the meter exactly once after the body is done, including when the
	client went away or the file could not be read. It is shielded from
	cancellation so the byte count always reaches the caller. With
	`send_body=False` (HEAD) only the headers go out and the count stays 0.
	"""

	def __init__(
		self,
		resource: Resource,
		byte_range: Optional[ByteRange],
		*,
		on_complete: OnComplete,
		chunk_size: int = DEFAULT_CHUNK_BYTES,
		send_body: bool = True,
	) -> None:
		self.meter = TransferMeter()
		self._on_complete = on_complete
		headers = {
			"Accept-Ranges": "bytes",
			"Last-Modified": formatdate(resource.modified, usegmt=True),
		}
		if byte_range is None:
			start, length, status_code = 0, resource.size, 200
		else:
			start, length, status_code = byte_range.start, byte_range.length, 206
			headers["Content-Range"] = f"bytes {byte_range.start}-{byte_range.end}/{resource.size}"
		headers["Content-Length"] = str(length)
		body = iter_file(resource.path, start, length, self.meter, chunk_size) if send_body else iter(())
		super().__init__(
			body,
			status_code=status_code,
			headers=headers,
			media_type=resource.media_type,
		)

	async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
		try:
			await super().__call__(scope, receive, send)
		finally:
			with anyio.CancelScope(shield=True):
				try:
					await self._on_complete(self.meter)
				except Exception:
					logger.exception("accounting_failed", extra={"bytes": self.meter.bytes_sent})
