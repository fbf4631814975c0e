"""HTTP client for the OpenAI-compatible upstream."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import httpx
import orjson
from furl import furl

from ..errors import UpstreamError, UpstreamTimeoutError
from ..helpers import debug_log, error_log, info_log, perf_timer


_CONNECTION_LIMITS = httpx.Limits(
    max_keepalive_connections=20,
    max_connections=100,
    keepalive_expiry=30,
)


def build_upstream_url(base_url: str, path: str) -> str:
    url = furl(base_url)
    url.path.segments = [s for s in url.path.segments if s] + [s for s in path.split("/") if s]
    return url.url


class UpstreamClient:
    """Single forward call per inbound request; no retries, no pooling across proxies."""

    def __init__(
        self,
        base_url: str,
        path: str = "chat/completions",
        timeout: float = 120.0,
        authorization: Optional[str] = None,
        user_agent: str = "GLMT-Proxy/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = build_upstream_url(base_url, path)
        self.timeout = timeout
        self.authorization = authorization
        self.user_agent = user_agent
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()

    async def get_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                info_log("[CLIENT] 创建上游客户端", url=self.url)
                kwargs: Dict[str, Any] = {
                    "limits": _CONNECTION_LIMITS,
                    "timeout": httpx.Timeout(
                        self.timeout,
                        connect=min(10.0, self.timeout),
                    ),
                }
                if self._transport is not None:
                    kwargs["transport"] = self._transport
                else:
                    kwargs["http2"] = True
                self._client = httpx.AsyncClient(**kwargs)
            return self._client

    async def close(self) -> None:
        async with self._client_lock:
            client = self._client
            self._client = None
        if client is not None:
            try:
                await client.aclose()
                info_log("[CLIENT] 上游客户端已关闭")
            except Exception as exc:  # pragma: no cover - 问题记录即可
                error_log("[CLIENT] 关闭上游客户端失败", error=str(exc))

    def build_headers(self, inbound_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Outbound headers; the inbound Authorization is preserved unless overridden."""
        inbound_headers = inbound_headers or {}
        authorization = self.authorization or inbound_headers.get("authorization", "")
        if not authorization and inbound_headers.get("x-api-key"):
            authorization = f"Bearer {inbound_headers['x-api-key']}"
        return {
            "Content-Type": "application/json",
            "Authorization": authorization,
            "User-Agent": self.user_agent,
        }

    async def forward(self, payload: Any, inbound_headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """POST the payload upstream and return the decoded JSON body."""
        client = await self.get_client()
        headers = self.build_headers(inbound_headers)
        content = orjson.dumps(payload)
        debug_log("[UPSTREAM] 转发请求", url=self.url, size=len(content))

        try:
            with perf_timer("upstream_call"):
                response = await asyncio.wait_for(
                    client.post(self.url, content=content, headers=headers),
                    timeout=self.timeout,
                )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            error_log("[UPSTREAM] 上游请求超时", timeout=self.timeout)
            raise UpstreamTimeoutError(f"Upstream request timeout after {self.timeout:g}s") from exc
        except httpx.HTTPError as exc:
            error_log("[UPSTREAM] 上游连接失败", error=str(exc))
            raise UpstreamError(f"Upstream request failed: {exc}") from exc

        body = response.content
        debug_log("[UPSTREAM] 上游响应", status_code=response.status_code, size=len(body))

        if not response.is_success:
            detail = body.decode("utf-8", errors="ignore")[:2000]
            error_log("上游返回错误", status_code=response.status_code, error_detail=detail[:200])
            raise UpstreamError(
                f"Upstream error: {response.status_code} {response.reason_phrase}\n{detail}",
                status_code=response.status_code,
            )

        try:
            decoded = orjson.loads(body)
        except orjson.JSONDecodeError as exc:
            raise UpstreamError(f"Invalid JSON from upstream: {exc}") from exc
        if not isinstance(decoded, dict):
            raise UpstreamError("Invalid JSON from upstream: expected an object")
        return decoded
