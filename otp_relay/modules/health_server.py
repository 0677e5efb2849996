"""
Liveness Endpoint Module
Minimal HTTP responder for platform health checks
"""

import logging
import threading
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

HEALTH_RESPONSE = "OK"
STATUS_RESPONSE = "OTP relay running"


def create_app() -> FastAPI:
    """Build the FastAPI app: health paths answer OK, everything else a static status"""
    app = FastAPI(title="OTP Relay", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/health", response_class=PlainTextResponse)
    @app.get("/healthz", response_class=PlainTextResponse)
    async def health() -> str:
        return HEALTH_RESPONSE

    @app.get("/{path:path}", response_class=PlainTextResponse)
    async def status(path: str) -> str:
        return STATUS_RESPONSE

    return app


class HealthServer:
    """Runs the liveness app with uvicorn on a daemon thread"""

    def __init__(self, host: str = "0.0.0.0", port: int = 8080):
        self.host = host
        self.port = port
        self.server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self.logger = logging.getLogger("HealthServer")

    def start(self) -> None:
        config = uvicorn.Config(
            create_app(),
            host=self.host,
            port=self.port,
            log_level="warning",
            access_log=False
        )
        self.server = uvicorn.Server(config)
        self._thread = threading.Thread(target=self.server.run, name="health-server", daemon=True)
        self._thread.start()
        self.logger.info(f"Liveness endpoint listening on {self.host}:{self.port}")

    def stop(self, timeout: float = 5) -> None:
        if self.server is None:
            return
        self.server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout)
        self.logger.info("Liveness endpoint stopped")
