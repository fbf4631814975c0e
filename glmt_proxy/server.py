"""
GLMT proxy server - loopback-only FastAPI app served by uvicorn
"""

import asyncio
import socket
import sys
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import Settings
from .errors import PROXY_ERROR, error_envelope
from .helpers import DebugArtifactWriter, error_log, info_log
from .proxy_api import create_router
from .request_transformer import RequestTransformer
from .services.proxy_service import ProxyService
from .services.response_transformer import ResponseTransformer
from .services.upstream_client import UpstreamClient


LOOPBACK_HOST = "127.0.0.1"
READY_PREFIX = "PROXY_READY:"
STARTUP_POLL_INTERVAL = 0.05


class ProxyServer:
    """Own the listener, the per-process collaborators and the ASGI app."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self.port: Optional[int] = None
        self._socket: Optional[socket.socket] = None
        self.server: Optional[uvicorn.Server] = None

        self.request_transformer = RequestTransformer(
            default_thinking=settings.DEFAULT_THINKING,
            enforce_locale=settings.ENFORCE_LOCALE,
            tag_policy=settings.THINKING_TAG_POLICY,
        )
        self.response_transformer = ResponseTransformer(verbose=settings.VERBOSE)
        self.upstream = UpstreamClient(
            base_url=settings.UPSTREAM_BASE_URL,
            path=settings.UPSTREAM_PATH,
            timeout=settings.REQUEST_TIMEOUT,
            authorization=settings.UPSTREAM_AUTHORIZATION,
            user_agent=settings.USER_AGENT,
            transport=transport,
        )
        self.debug_writer = DebugArtifactWriter(settings.DEBUG_LOG_DIR, enabled=settings.DEBUG_LOG)
        self.service = ProxyService(
            self.request_transformer,
            self.response_transformer,
            self.upstream,
            self.debug_writer,
            max_body_bytes=settings.MAX_BODY_BYTES,
        )
        self.app = self.create_app()

    def create_app(self) -> FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            yield
            await self.upstream.close()

        app = FastAPI(
            title="GLMT Proxy",
            description="Anthropic Messages proxy for GLM reasoning models",
            version="1.0.0",
            lifespan=lifespan,
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )
        app.include_router(create_router(self.service))

        @app.exception_handler(Exception)
        async def handle_unexpected(request: Request, exc: Exception):
            error_log("[SERVER] 未处理的异常", error=str(exc))
            return JSONResponse(
                error_envelope(PROXY_ERROR, str(exc) or type(exc).__name__),
                status_code=500,
                headers={"Access-Control-Allow-Origin": "*"},
            )

        return app

    def bind(self) -> socket.socket:
        """Bind 127.0.0.1 on an OS-assigned port."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((LOOPBACK_HOST, 0))
        except OSError:
            sock.close()
            raise
        self._socket = sock
        self.port = sock.getsockname()[1]
        return sock

    def announce_ready(self) -> None:
        # 父进程只读取这一行 stdout
        print(f"{READY_PREFIX}{self.port}", flush=True)
        print(f"[glmt] Proxy listening on port {self.port} (buffered mode)", file=sys.stderr, flush=True)
        if self.debug_writer.enabled:
            print(f"[glmt] Debug logging enabled: {self.debug_writer.directory}", file=sys.stderr, flush=True)
            print("[glmt] WARNING: Debug logs contain full request/response data", file=sys.stderr, flush=True)
        info_log("[SERVER] 代理已启动", port=self.port, upstream=self.upstream.url)

    def uvicorn_config(self) -> uvicorn.Config:
        return uvicorn.Config(
            self.app,
            log_level="debug" if self.settings.VERBOSE else "warning",
            access_log=False,
            lifespan="on",
            timeout_graceful_shutdown=int(self.settings.REQUEST_TIMEOUT),
        )

    async def serve(self) -> None:
        """Serve until SIGINT/SIGTERM; in-flight requests finish within their timeout."""
        sock = self._socket or self.bind()
        server = self.server = uvicorn.Server(self.uvicorn_config())
        serve_task = asyncio.create_task(server.serve(sockets=[sock]))
        try:
            while not server.started and not serve_task.done():
                await asyncio.sleep(STARTUP_POLL_INTERVAL)
            if server.started:
                self.announce_ready()
            await serve_task
        finally:
            info_log("[SERVER] 代理已停止", port=self.port)

    def shutdown(self) -> None:
        """Same path as SIGTERM: stop accepting, let in-flight requests drain."""
        if self.server is not None:
            self.server.should_exit = True

    def run(self) -> None:
        asyncio.run(self.serve())
