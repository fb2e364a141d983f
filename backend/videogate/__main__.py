"""Run the service with uvicorn: `python -m videogate`."""

from __future__ import annotations

import uvicorn

from videogate.settings import settings


def main() -> None:
	uvicorn.run(
		"videogate.main:app",
		host=settings.host,
		port=settings.port,
		log_config=None,
		proxy_headers=False,
	)


if __name__ == "__main__":
	main()
