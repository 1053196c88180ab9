"""
FastAPI/ASGI application entrypoint.

Run with: uvicorn wallet_whisperer.api_server.app:app --host 0.0.0.0 --port 8000
or the wallet-whisperer-api console script (host/port from API_HOST / API_PORT).
"""

import uvicorn

from wallet_whisperer.api_server.server import app
from wallet_whisperer.config import get_settings

__all__ = ["app", "main"]


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "wallet_whisperer.api_server.app:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )
