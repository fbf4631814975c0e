"""Service layer running one Anthropic <-> upstream exchange per request."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import orjson
from starlette.requests import Request
from starlette.responses import Response

from ..errors import (
    BodyTooLargeError,
    InvalidJSONError,
    MethodNotAllowedError,
    ProxyError,
    RequestState,
    STATE_ERRORS,
    UpstreamError,
    error_envelope,
)
from ..helpers import (
    DebugArtifactWriter,
    bind_request_context,
    debug_log,
    error_log,
    request_stage_log,
    reset_request_context,
    warning_log,
)
from ..request_transformer import RequestTransformer
from ..schemas import ThinkingConfig
from .response_transformer import ResponseTransformer, generate_message_id
from .upstream_client import UpstreamClient


# 仅监听回环地址，放开 CORS 无风险
CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}

DISCONNECT_POLL_INTERVAL = 0.5


class ClientDisconnectedError(UpstreamError):
    """Inbound connection went away before the upstream answered."""


@dataclass
class Exchange:
    """State of one inbound request; created at entry, dropped after the response."""

    request_id: str
    state: RequestState = RequestState.RECEIVED
    started: float = field(default_factory=time.perf_counter)
    thinking_config: Optional[ThinkingConfig] = None

    def advance(self, state: RequestState, message: str, **kwargs) -> None:
        self.state = state
        request_stage_log(state.value, message, **kwargs)

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000


def json_response(data: Any, status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> Response:
    return Response(
        content=orjson.dumps(data),
        status_code=status_code,
        media_type="application/json",
        headers={**CORS_HEADERS, **(headers or {})},
    )


class ProxyService:
    """Encapsulate the proxy workflow independent of the FastAPI layer."""

    def __init__(
        self,
        request_transformer: RequestTransformer,
        response_transformer: ResponseTransformer,
        upstream: UpstreamClient,
        debug_writer: DebugArtifactWriter,
        max_body_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        self.request_transformer = request_transformer
        self.response_transformer = response_transformer
        self.upstream = upstream
        self.debug_writer = debug_writer
        self.max_body_bytes = max_body_bytes

    async def read_body(self, request: Request) -> bytes:
        """Read the body into memory, aborting as soon as it exceeds the cap."""
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_body_bytes:
            raise BodyTooLargeError(self.max_body_bytes)

        chunks = []
        total = 0
        async for chunk in request.stream():
            total += len(chunk)
            if total > self.max_body_bytes:
                raise BodyTooLargeError(self.max_body_bytes)
            chunks.append(chunk)
        return b"".join(chunks)

    def parse_json(self, body: bytes) -> Any:
        try:
            return orjson.loads(body)
        except orjson.JSONDecodeError as exc:
            raise InvalidJSONError(str(exc)) from exc

    async def _wait_for_disconnect(self, request: Request) -> None:
        while not await request.is_disconnected():
            await asyncio.sleep(DISCONNECT_POLL_INTERVAL)

    async def forward(self, request: Request, payload: Any) -> Dict[str, Any]:
        """Forward upstream, cancelling the call if the client disconnects first."""
        upstream_task = asyncio.create_task(
            self.upstream.forward(payload, dict(request.headers))
        )
        disconnect_task = asyncio.create_task(self._wait_for_disconnect(request))
        try:
            done, _ = await asyncio.wait(
                {upstream_task, disconnect_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            upstream_task.cancel()
            raise
        finally:
            disconnect_task.cancel()

        if upstream_task in done:
            return upstream_task.result()

        upstream_task.cancel()
        warning_log("[REQUEST] 客户端已断开，取消上游请求")
        raise ClientDisconnectedError("Client disconnected; upstream call cancelled")

    def error_response(self, exchange: Exchange, exc: ProxyError) -> Response:
        exchange.state = exc.state
        headers = {}
        if isinstance(exc, BodyTooLargeError):
            headers["Connection"] = "close"
        request_stage_log(
            exc.state.value,
            "请求失败",
            status_code=exc.status_code,
            error=exc.message[:200],
            elapsed_ms=f"{exchange.elapsed_ms:.0f}",
        )
        return json_response(exc.to_envelope(), status_code=exc.status_code, headers=headers)

    async def handle(self, request: Request) -> Response:
        exchange = Exchange(request_id=generate_message_id("req_")[:20])
        bind_request_context(request_id=exchange.request_id)
        try:
            exchange.advance(RequestState.RECEIVED, "收到客户端请求", method=request.method, path=request.url.path)
            if request.method != "POST":
                raise MethodNotAllowedError(request.method)

            body = await self.read_body(request)
            exchange.advance(RequestState.BODY_READ, "请求体读取完成", size=len(body))

            payload = self.parse_json(body)
            exchange.advance(RequestState.PARSED, "请求体解析完成")
            self.debug_writer.schedule(exchange.request_id, "request-anthropic", payload)

            outbound, thinking_config = self.request_transformer.transform_request(payload)
            exchange.thinking_config = thinking_config
            if thinking_config.error:
                warning_log("[REQUEST] 请求转换失败，已转发原始请求", error=thinking_config.error)
            bind_request_context(model=outbound.get("model") if isinstance(outbound, dict) else None)
            exchange.advance(
                RequestState.REQUEST_TRANSFORMED,
                "请求已转换为上游所需格式",
                thinking=thinking_config.enabled,
                effort=thinking_config.effort,
            )
            self.debug_writer.schedule(exchange.request_id, "request-openai", outbound)

            exchange.advance(RequestState.FORWARDED, "向上游发起请求", upstream=self.upstream.url)
            upstream_response = await self.forward(request, outbound)
            exchange.advance(RequestState.UPSTREAM_RESPONDED, "上游响应成功")
            self.debug_writer.schedule(exchange.request_id, "response-openai", upstream_response)

            translated = self.response_transformer.transform_response(
                upstream_response,
                thinking_config,
                fallback_model=outbound.get("model") if isinstance(outbound, dict) else None,
            )
            exchange.advance(
                RequestState.RESPONSE_TRANSFORMED,
                "响应已转换为 Anthropic 格式",
                blocks=[block["type"] for block in translated["content"]],
                stop_reason=translated["stop_reason"],
            )
            self.debug_writer.schedule(exchange.request_id, "response-anthropic", translated)

            response = json_response(translated)
            exchange.advance(RequestState.SENT, "响应已发送", elapsed_ms=f"{exchange.elapsed_ms:.0f}")
            return response
        except ProxyError as exc:
            return self.error_response(exchange, exc)
        except Exception as exc:
            error_log("[REQUEST] 处理请求时发生未捕获异常", error=str(exc), exc_info=True)
            exchange.state = RequestState.ERROR_INTERNAL
            status_code, error_type = STATE_ERRORS[RequestState.ERROR_INTERNAL]
            return json_response(error_envelope(error_type, str(exc) or type(exc).__name__), status_code=status_code)
        finally:
            debug_log("[REQUEST] 请求结束", state=exchange.state.value)
            reset_request_context()
