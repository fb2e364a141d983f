import asyncio
import logging

import pytest

from videogate.infra.redis import redis_client, set_redis_client
from videogate.settings import settings

from ..unit.test_counters import BrokenRedis

MIB = 1024 * 1024
CLIENT = {"X-Forwarded-For": "1.2.3.4"}


def fraction_key(video_root, filename, identity="1.2.3.4"):
	return f"fraction_read-{identity}-{video_root}/{filename}"


@pytest.mark.asyncio
async def test_full_read_counts_one_view(api_client, video_root):
	response = await api_client.get("/videos/clip.mp4", headers=CLIENT)
	assert response.status_code == 200
	assert len(response.content) == MIB
	assert response.headers["accept-ranges"] == "bytes"
	assert response.headers["content-type"] == "video/mp4"

	assert float(await redis_client.get(fraction_key(video_root, "clip.mp4"))) == pytest.approx(1.0)
	assert int(await redis_client.get("bytes_read-1.2.3.4")) == MIB
	assert await redis_client.exists("banned-1.2.3.4") == 0


@pytest.mark.asyncio
async def test_two_half_reads_add_up_to_one_view(api_client, video_root):
	size = 10 * MIB
	half = size // 2
	first = await api_client.get("/videos/movie.mp4", headers={**CLIENT, "Range": f"bytes=0-{half - 1}"})
	second = await api_client.get("/videos/movie.mp4", headers={**CLIENT, "Range": f"bytes={half}-"})
	assert first.status_code == 206
	assert second.status_code == 206
	assert first.headers["content-range"] == f"bytes 0-{half - 1}/{size}"
	assert len(first.content) + len(second.content) == size
	assert float(await redis_client.get(fraction_key(video_root, "movie.mp4"))) == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_socket_address_is_used_without_forwarding_header(api_client, video_root):
	response = await api_client.get("/videos/tiny.webm")
	assert response.status_code == 200
	assert int(await redis_client.get("bytes_read-127.0.0.1")) == 64


@pytest.mark.asyncio
async def test_trivial_read_is_accounted_without_detection(api_client, video_root, monkeypatch):
	monkeypatch.setattr(settings, "partial_read_grace_seconds", 30.0)
	response = await api_client.get("/videos/movie.mp4", headers={**CLIENT, "Range": "bytes=0-49"})
	assert response.status_code == 206
	assert len(response.content) == 50
	# detection would have waited 30s and forced a full view
	assert float(await redis_client.get(fraction_key(video_root, "movie.mp4"))) == pytest.approx(50 / (10 * MIB))
	assert int(await redis_client.get("bytes_read-1.2.3.4")) == 50


@pytest.mark.asyncio
async def test_isolated_partial_read_counts_as_full_view(api_client, video_root, monkeypatch):
	monkeypatch.setattr(settings, "recent_access_ttl_seconds", 0.05)
	monkeypatch.setattr(settings, "partial_read_grace_seconds", 0.2)
	response = await api_client.get("/videos/movie.mp4", headers={**CLIENT, "Range": "bytes=0-499"})
	assert response.status_code == 206
	assert len(response.content) == 500
	assert float(await redis_client.get(fraction_key(video_root, "movie.mp4"))) == pytest.approx(1.0)
	assert int(await redis_client.get("bytes_read-1.2.3.4")) == 500


@pytest.mark.asyncio
async def test_partial_reads_inside_grace_window_are_not_forced(api_client, video_root, monkeypatch):
	monkeypatch.setattr(settings, "recent_access_ttl_seconds", 1.0)
	monkeypatch.setattr(settings, "partial_read_grace_seconds", 1.2)

	async def follow_up():
		await asyncio.sleep(0.5)
		return await api_client.get("/videos/movie.mp4", headers={**CLIENT, "Range": "bytes=500-999"})

	first, second = await asyncio.gather(
		api_client.get("/videos/movie.mp4", headers={**CLIENT, "Range": "bytes=0-499"}),
		follow_up(),
	)
	assert first.status_code == 206
	assert second.status_code == 206
	expected = 1000 / (10 * MIB)
	assert float(await redis_client.get(fraction_key(video_root, "movie.mp4"))) == pytest.approx(expected)


@pytest.mark.asyncio
async def test_simultaneous_partial_reads_are_not_forced(api_client, video_root, monkeypatch):
	monkeypatch.setattr(settings, "recent_access_ttl_seconds", 0.3)
	monkeypatch.setattr(settings, "partial_read_grace_seconds", 0.3)
	first, second = await asyncio.gather(
		api_client.get("/videos/movie.mp4", headers={**CLIENT, "Range": "bytes=0-499"}),
		api_client.get("/videos/movie.mp4", headers={**CLIENT, "Range": "bytes=500-999"}),
	)
	assert first.status_code == 206
	assert second.status_code == 206
	expected = 1000 / (10 * MIB)
	assert float(await redis_client.get(fraction_key(video_root, "movie.mp4"))) == pytest.approx(expected)


@pytest.mark.asyncio
async def test_head_returns_headers_only(api_client, video_root, caplog):
	caplog.set_level(logging.INFO, logger="videogate")
	response = await api_client.head("/videos/clip.mp4", headers=CLIENT)
	assert response.status_code == 200
	assert response.headers["content-length"] == str(MIB)
	assert response.headers["accept-ranges"] == "bytes"
	assert response.content == b""
	# accounted as an empty transfer, not logged
	assert int(await redis_client.get("bytes_read-1.2.3.4")) == 0
	assert float(await redis_client.get(fraction_key(video_root, "clip.mp4"))) == 0.0
	assert not [r for r in caplog.records if r.getMessage() == "video_access"]


@pytest.mark.asyncio
async def test_head_with_range(api_client, video_root):
	response = await api_client.head("/videos/tiny.webm", headers={**CLIENT, "Range": "bytes=10-19"})
	assert response.status_code == 206
	assert response.headers["content-range"] == "bytes 10-19/64"
	assert response.headers["content-length"] == "10"
	assert response.content == b""


@pytest.mark.asyncio
async def test_banned_client_short_circuits(api_client, video_root):
	await redis_client.set("banned-1.2.3.4", "1", ex=120)
	await redis_client.set("bytes_read-1.2.3.4", "42")
	response = await api_client.get("/videos/clip.mp4", headers=CLIENT)
	assert response.status_code == 200
	assert response.text == "NOPE"
	assert await redis_client.get("bytes_read-1.2.3.4") == "42"
	assert await redis_client.exists(fraction_key(video_root, "clip.mp4")) == 0
	assert await redis_client.exists(f"last_access-1.2.3.4-{video_root}/clip.mp4") == 0
	# a ban check does not re-ban: the TTL is still the one set above
	assert await redis_client.ttl("banned-1.2.3.4") <= 120


@pytest.mark.asyncio
async def test_byte_quota_bans(api_client, video_root):
	await redis_client.set("bytes_read-1.2.3.4", str(1024 * MIB + 1))
	response = await api_client.get("/videos/clip.mp4", headers=CLIENT)
	assert response.status_code == 200
	assert response.text == "NOPE"
	assert await redis_client.get("banned-1.2.3.4") == "1"
	assert await redis_client.ttl("banned-1.2.3.4") > 86000

	again = await api_client.get("/videos/tiny.webm", headers=CLIENT)
	assert again.text == "NOPE"


@pytest.mark.asyncio
async def test_fraction_quota_bans_regardless_of_bytes(api_client, video_root):
	await redis_client.set(fraction_key(video_root, "clip.mp4"), "10.01")
	response = await api_client.get("/videos/clip.mp4", headers=CLIENT)
	assert response.text == "NOPE"
	assert await redis_client.get("banned-1.2.3.4") == "1"
	assert await redis_client.exists("bytes_read-1.2.3.4") == 0


@pytest.mark.asyncio
async def test_other_clients_are_unaffected_by_a_ban(api_client, video_root):
	await redis_client.set("banned-1.2.3.4", "1", ex=120)
	response = await api_client.get("/videos/tiny.webm", headers={"X-Forwarded-For": "5.6.7.8"})
	assert response.status_code == 200
	assert len(response.content) == 64


@pytest.mark.asyncio
async def test_missing_video_is_404_without_accounting(api_client, video_root):
	response = await api_client.get("/videos/nope.mp4", headers=CLIENT)
	assert response.status_code == 404
	assert response.content == b""
	assert await redis_client.exists("bytes_read-1.2.3.4") == 0
	assert await redis_client.exists(f"last_access-1.2.3.4-{video_root}/nope.mp4") == 0


@pytest.mark.asyncio
async def test_invalid_forwarded_address_is_rejected(api_client):
	response = await api_client.get("/videos/clip.mp4", headers={"X-Forwarded-For": "1.2.3.4, 5.6.7.8"})
	assert response.status_code == 400
	assert response.json()["detail"] == "invalid_address"
	assert await redis_client.keys("*") == []


@pytest.mark.asyncio
async def test_unsatisfiable_range(api_client, video_root):
	response = await api_client.get("/videos/tiny.webm", headers={**CLIENT, "Range": "bytes=100-200"})
	assert response.status_code == 416
	assert response.headers["content-range"] == "bytes */64"
	assert int(await redis_client.get("bytes_read-1.2.3.4")) == 0


@pytest.mark.asyncio
async def test_store_outage_fails_open(api_client, video_root):
	set_redis_client(BrokenRedis())
	response = await api_client.get("/videos/tiny.webm", headers=CLIENT)
	assert response.status_code == 200
	assert len(response.content) == 64


@pytest.mark.asyncio
async def test_access_log_skips_trivial_reads(api_client, video_root, caplog):
	caplog.set_level(logging.INFO, logger="videogate")
	await api_client.get("/videos/movie.mp4", headers={**CLIENT, "Range": "bytes=0-99"})
	assert not [r for r in caplog.records if r.getMessage() == "video_access"]

	await api_client.get("/videos/clip.mp4", headers=CLIENT)
	records = [r for r in caplog.records if r.getMessage() == "video_access"]
	assert len(records) == 1
	record = records[0]
	assert record.identity == "1.2.3.4"
	assert record.resource == f"{video_root}/clip.mp4"
	assert record.bytes == MIB
	assert record.size == MIB
	assert record.fraction_total == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_corrupt_counter_fails_open(api_client, video_root):
	await redis_client.set("bytes_read-1.2.3.4", "garbage")
	response = await api_client.get("/videos/tiny.webm", headers=CLIENT)
	assert response.status_code == 200
	assert len(response.content) == 64
