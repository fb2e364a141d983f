"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from videogate.api import ops, videos
from videogate.api.errors import install_error_handlers
from videogate.infra import redis as redis_infra
from videogate.obs import init as obs_init


@asynccontextmanager
async def lifespan(app: FastAPI):
	try:
		yield
	finally:
		await redis_infra.close()


app = FastAPI(title="videogate", lifespan=lifespan)
install_error_handlers(app)
obs_init(app)

app.include_router(videos.router, tags=["videos"])
app.include_router(ops.router, tags=["ops"])
