"""Pytest fixtures for testing."""

import json
from collections.abc import AsyncGenerator
from typing import Any, Callable, Optional

import httpx
import pytest
import pytest_asyncio

from glmt_proxy.config import Settings
from glmt_proxy.helpers import configure_structlog
from glmt_proxy.server import ProxyServer


configure_structlog("debug")


def make_completion(
    content: Optional[str] = "ok",
    reasoning: Optional[str] = None,
    tool_calls: Optional[list] = None,
    finish_reason: str = "stop",
    usage: Optional[dict] = None,
) -> dict[str, Any]:
    message: dict[str, Any] = {"role": "assistant", "content": content}
    if reasoning is not None:
        message["reasoning_content"] = reasoning
    if tool_calls is not None:
        message["tool_calls"] = tool_calls
    return {
        "id": "chatcmpl-test",
        "model": "glm-4.6",
        "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
        "usage": usage if usage is not None else {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
    }


class FakeUpstream:
    """Records outbound requests and answers with a configurable responder."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responder: Callable[[httpx.Request], Any] = (
            lambda request: httpx.Response(200, json=make_completion())
        )

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        result = self.responder(request)
        if not isinstance(result, httpx.Response):
            result = await result
        return result

    def reply(self, payload: dict[str, Any], status_code: int = 200) -> None:
        self.responder = lambda request: httpx.Response(status_code, json=payload)

    @property
    def last_json(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def completion() -> Callable[..., dict[str, Any]]:
    """Builder for synthetic upstream chat completions."""
    return make_completion


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(DEBUG_LOG_DIR=tmp_path / "logs", REQUEST_TIMEOUT=5.0)


@pytest.fixture
def proxy(settings: Settings, upstream: FakeUpstream) -> ProxyServer:
    return ProxyServer(settings, transport=httpx.MockTransport(upstream.handler))


@pytest_asyncio.fixture
async def client(proxy: ProxyServer) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Provide an async HTTP client wired to the proxy app."""
    transport = httpx.ASGITransport(app=proxy.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://127.0.0.1") as ac:
        yield ac
    await proxy.upstream.close()


@pytest.fixture
def anthropic_request() -> dict[str, Any]:
    return {
        "model": "claude-sonnet-4-5-20250929",
        "max_tokens": 32000,
        "messages": [{"role": "user", "content": "hello there"}],
    }
