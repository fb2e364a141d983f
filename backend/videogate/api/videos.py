"""Video delivery behind the access gate."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import PlainTextResponse

from videogate.api.errors import to_http_error
from videogate.domain.gate import RequestGate
from videogate.errors import ClientRejected, InvalidAddress, RangeNotSatisfiable, ResourceNotFound
from videogate.infra.streaming import MeteredFileResponse, TransferMeter, parse_range
from videogate.settings import settings

router = APIRouter(tags=["videos"])

_gate = RequestGate()


def get_gate() -> RequestGate:
	return _gate


def rejection_response() -> Response:
	# Same status as a successful read so that probing status codes does not reveal a ban.
	return PlainTextResponse(settings.rejection_body, status_code=status.HTTP_200_OK)


@router.api_route("/videos/{name}.{extension}", methods=["GET", "HEAD"])
async def stream_video(
	name: str,
	extension: str,
	request: Request,
	gate: RequestGate = Depends(get_gate),
) -> Response:
	client = request.client
	forwarded_for = request.headers.get(settings.forwarded_for_header)
	try:
		admission = await gate.admit(client.host if client else None, forwarded_for, name, extension)
	except InvalidAddress as exc:
		raise to_http_error(exc) from exc
	except ClientRejected:
		return rejection_response()
	except ResourceNotFound:
		return Response(status_code=status.HTTP_404_NOT_FOUND)

	try:
		byte_range = parse_range(request.headers.get("range"), admission.resource.size)
	except RangeNotSatisfiable as exc:
		await gate.settle(admission, TransferMeter())
		return Response(
			status_code=exc.status_code,
			headers={"Content-Range": f"bytes */{exc.size}"},
		)

	async def _account(meter: TransferMeter) -> None:
		await gate.settle(admission, meter)

	return MeteredFileResponse(
		admission.resource,
		byte_range,
		on_complete=_account,
		chunk_size=settings.stream_chunk_bytes,
		send_body=request.method != "HEAD",
	)
