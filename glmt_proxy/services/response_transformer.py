#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
响应转换模块 - OpenAI chat completion -> Anthropic Messages

reasoning_content 转为 thinking 块，content 转为 text 块，tool_calls 转为 tool_use 块，
顺序固定为 thinking -> text -> tool_use。
"""

from typing import Any, Dict, List, Optional

import orjson
from fastuuid import uuid4
from pydantic import ValidationError

from ..errors import NoChoicesError, ToolArgumentsError, TransformationError
from ..helpers import debug_log, error_log, info_log, warning_log
from ..schemas import (
    STOP_REASONS,
    TextContent,
    ThinkingConfig,
    ThinkingContent,
    ToolCall,
    ToolUseContent,
    TranslatedResponse,
    UpstreamResponse,
)
from ..signature import generate_thinking_signature


FINISH_REASON_MAP = {
    "stop": "end_turn",
    "length": "max_tokens",
    "tool_calls": "tool_use",
    "content_filter": "stop_sequence",
}

_BLOCK_ORDER = {"thinking": 0, "text": 1, "tool_use": 2}


def map_stop_reason(finish_reason: Optional[str]) -> str:
    return FINISH_REASON_MAP.get(finish_reason or "", "end_turn")


def generate_message_id(prefix: str = "msg_") -> str:
    return prefix + str(uuid4()).replace("-", "")


def zero_usage() -> Dict[str, int]:
    return {"input_tokens": 0, "output_tokens": 0}


class ResponseTransformer:
    """Build client responses from upstream chat completions"""

    def __init__(self, verbose: bool = False) -> None:
        self.verbose = verbose

    def decode_tool_arguments(self, tool_call: ToolCall) -> Dict[str, Any]:
        """解析工具参数；格式错误直接报错，不静默替换为空对象"""
        arguments = tool_call.function.arguments
        if arguments is None or (isinstance(arguments, str) and not arguments.strip()):
            return {}
        if isinstance(arguments, dict):
            return arguments
        try:
            decoded = orjson.loads(arguments)
        except orjson.JSONDecodeError as exc:
            raise ToolArgumentsError(tool_call.id, str(exc)) from exc
        if not isinstance(decoded, dict):
            raise ToolArgumentsError(tool_call.id, f"expected a JSON object, got {type(decoded).__name__}")
        return decoded

    def normalize_usage(self, usage: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not usage:
            warning_log("[RESPONSE] 上游响应缺少 usage，按 0 计")
            return zero_usage()
        return dict(usage)

    def _log_reasoning(self, reasoning: str) -> None:
        preview = reasoning[:100].replace("\n", " ").strip()
        debug_log(
            "[RESPONSE] 检测到 reasoning_content",
            length=len(reasoning),
            lines=len(reasoning.split("\n")),
            preview=f"{preview}...",
        )

    def build_response(
        self,
        upstream: Dict[str, Any],
        fallback_model: Optional[str] = None,
    ) -> TranslatedResponse:
        """Strict conversion; raises TransformationError on structural problems."""
        try:
            parsed = UpstreamResponse.model_validate(upstream)
        except ValidationError as exc:
            raise TransformationError(f"Malformed upstream response: {exc.error_count()} validation error(s)") from exc

        if len(parsed.choices) != 1:
            raise NoChoicesError(len(parsed.choices))

        choice = parsed.choices[0]
        message = choice.message
        content: List[Any] = []

        if message.reasoning_content:
            self._log_reasoning(message.reasoning_content)
            content.append(ThinkingContent(
                thinking=message.reasoning_content,
                signature=generate_thinking_signature(message.reasoning_content),
            ))
        else:
            debug_log("[RESPONSE] 上游响应不含 reasoning_content")

        if message.content:
            content.append(TextContent(text=message.content))

        for tool_call in message.tool_calls or []:
            content.append(ToolUseContent(
                id=tool_call.id,
                name=tool_call.function.name,
                input=self.decode_tool_arguments(tool_call),
            ))

        return TranslatedResponse(
            id=parsed.id or generate_message_id(),
            content=content,
            model=parsed.model or fallback_model,
            stop_reason=map_stop_reason(choice.finish_reason),
            usage=self.normalize_usage(parsed.usage),
        )

    def error_response(self, message: str, model: Optional[str] = None) -> Dict[str, Any]:
        return TranslatedResponse(
            id=generate_message_id("msg_error_"),
            content=[TextContent(text=f"[Transformation Error] {message}")],
            model=model,
            stop_reason="end_turn",
            usage=zero_usage(),
        ).model_dump(mode="json")

    def transform_response(
        self,
        upstream: Dict[str, Any],
        thinking_config: Optional[ThinkingConfig] = None,
        fallback_model: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        转换上游响应为 Anthropic 格式

        Never raises: any failure becomes a text-only response carrying the
        error message.
        """
        try:
            response = self.build_response(upstream, fallback_model=fallback_model).model_dump(mode="json")
        except Exception as e:
            error_log("[RESPONSE] 响应转换失败", error=str(e))
            return self.error_response(str(e), model=fallback_model)

        if thinking_config is not None and thinking_config.enabled and not any(
            block["type"] == "thinking" for block in response["content"]
        ):
            debug_log("[RESPONSE] 已请求思考但上游未返回 reasoning_content")

        if self.verbose:
            validation = self.validate_transformation(response)
            info_log(
                f"[VALIDATE] {validation['passed']}/{validation['total']} checks passed",
            )
            if not validation["valid"]:
                failed = [name for name, ok in validation["checks"].items() if not ok]
                info_log("[VALIDATE] 未通过的检查", failed=failed)

        return response

    def validate_transformation(self, response: Dict[str, Any]) -> Dict[str, Any]:
        """Advisory structural checks over a translated response."""
        content = response.get("content") or []
        order = [_BLOCK_ORDER.get(block.get("type"), -1) for block in content]
        checks = {
            "has_content": bool(content),
            "has_thinking": any(block.get("type") == "thinking" for block in content),
            "has_text": any(block.get("type") == "text" for block in content),
            "valid_structure": response.get("type") == "message" and response.get("role") == "assistant",
            "has_usage": bool(response.get("usage")),
            "block_order": -1 not in order and order == sorted(order),
            "valid_stop_reason": response.get("stop_reason") in STOP_REASONS,
        }
        passed = sum(1 for ok in checks.values() if ok)
        return {"checks": checks, "passed": passed, "total": len(checks), "valid": passed == len(checks)}
