"""
API service entrypoint.
Serves the league live-match API with uvicorn, configured from the LL_API_*
settings.
"""
from __future__ import annotations

import uvicorn

from shared.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        log_level=settings.log_level.lower(),
        access_log=False,  # request logs come from api.middleware
        timeout_keep_alive=settings.api_keep_alive_s,
    )


if __name__ == "__main__":
    main()
