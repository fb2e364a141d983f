import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from videogate.main import app
from videogate.settings import settings

MIB = 1024 * 1024


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from videogate.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture
def video_root(tmp_path):
	root = tmp_path / "videos"
	root.mkdir()
	(root / "clip.mp4").write_bytes(b"\x01" * MIB)
	(root / "movie.mp4").write_bytes(b"\x02" * (10 * MIB))
	(root / "tiny.webm").write_bytes(b"\x03" * 64)
	return root


@pytest.fixture(autouse=True)
def force_test_settings(video_root):
	"""Point the gate at a temporary catalog and drop the grace pause."""
	overrides = {
		"environment": "test",
		"video_root": str(video_root),
		"partial_read_grace_seconds": 0.0,
		"recent_access_ttl_seconds": 10.0,
		"identity_mask_ipv4": False,
	}
	original = {key: getattr(settings, key) for key in overrides}
	for key, value in overrides.items():
		setattr(settings, key, value)
	try:
		yield
	finally:
		for key, value in original.items():
			setattr(settings, key, value)


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
