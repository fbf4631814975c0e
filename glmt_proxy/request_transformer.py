#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Anthropic Messages -> OpenAI chat completions request conversion

Control tags (in user prompts, case-insensitive):
    <Thinking:On|Off>         enable/disable reasoning
    <Effort:Low|Medium|High>  reasoning depth
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from .config import get_max_tokens, map_model
from .helpers import debug_log, error_log, info_log, perf_timer
from .locale_enforcer import enforce_locale
from .schemas import MessagesRequest, ThinkingConfig
from .task_classifier import classify_task


THINKING_TAG = re.compile(r"<Thinking:(On|Off)>", re.IGNORECASE)
EFFORT_TAG = re.compile(r"<Effort:(Low|Medium|High)>", re.IGNORECASE)


def message_texts(message: dict) -> List[str]:
    """Text fragments of a message, from plain string or text blocks."""
    content = message.get("content")
    if isinstance(content, str):
        return [content]
    if isinstance(content, list):
        return [
            block.get("text") or ""
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
    return []


def sanitize_messages(messages: List[dict]) -> List[dict]:
    """
    Reduce every message to content the upstream can represent.

    String content passes through. Block lists keep only text blocks: one
    left collapses to a string, several stay a list, none becomes "".
    """
    sanitized = []
    for msg in messages:
        content = msg.get("content")
        if isinstance(content, str):
            sanitized.append(msg)
            continue

        if not isinstance(content, list):
            sanitized.append({"role": msg.get("role"), "content": ""})
            continue

        text_blocks = [
            block for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        if not text_blocks:
            new_content: Any = ""
        elif len(text_blocks) == 1:
            new_content = text_blocks[0].get("text") or ""
        else:
            new_content = text_blocks
        sanitized.append({"role": msg.get("role"), "content": new_content})
    return sanitized


class RequestTransformer:
    """Build the upstream request and the per-request ThinkingConfig"""

    def __init__(
        self,
        default_thinking: bool = True,
        enforce_locale: bool = True,
        tag_policy: str = "last",
    ) -> None:
        if tag_policy not in ("last", "first"):
            raise ValueError(f"Unknown tag policy: {tag_policy}")
        self.default_thinking = default_thinking
        self.enforce_locale = enforce_locale
        self.tag_policy = tag_policy

    def _pick(self, matches: List[str]) -> Optional[str]:
        if not matches:
            return None
        return matches[-1] if self.tag_policy == "last" else matches[0]

    def extract_control_tags(self, messages: List[dict]) -> Tuple[Optional[bool], Optional[str]]:
        """扫描用户消息中的控制标签，返回 (thinking, effort)，未出现则为 None"""
        thinking_matches: List[str] = []
        effort_matches: List[str] = []
        for msg in messages:
            if msg.get("role") != "user":
                continue
            for text in message_texts(msg):
                thinking_matches.extend(m.group(1).lower() for m in THINKING_TAG.finditer(text))
                effort_matches.extend(m.group(1).lower() for m in EFFORT_TAG.finditer(text))

        thinking = self._pick(thinking_matches)
        return (None if thinking is None else thinking == "on"), self._pick(effort_matches)

    def latest_user_prompt(self, messages: List[dict]) -> str:
        """Text of the most recent user message that has any."""
        for msg in reversed(messages):
            if msg.get("role") != "user":
                continue
            text = "\n".join(t for t in message_texts(msg) if t)
            if text.strip():
                return text
        return ""

    def resolve_thinking(self, messages: List[dict]) -> ThinkingConfig:
        thinking, effort = self.extract_control_tags(messages)
        if thinking is None and effort is None:
            return classify_task(self.latest_user_prompt(messages), default_enabled=self.default_thinking)

        # 只有 Effort 标签时视为开启思考
        return ThinkingConfig(
            enabled=True if thinking is None else thinking,
            effort=effort or "medium",
            source="tag",
        )

    def build_messages(self, request: Dict[str, Any]) -> List[dict]:
        """Hoist the top-level system prompt and apply the locale directive."""
        messages = list(request.get("messages") or [])
        system = request.get("system")
        if system:
            messages.insert(0, {"role": "system", "content": system})
        if self.enforce_locale:
            messages = enforce_locale(messages)
        return messages

    def transform_request(self, request: Dict[str, Any]) -> Tuple[Dict[str, Any], ThinkingConfig]:
        """
        转换 Anthropic 请求为上游 OpenAI 格式

        Returns:
            (outbound request, thinking config). On any failure the original
            payload is returned untouched with thinking off and the error set
            on the config.
        """
        try:
            with perf_timer("transform_request", threshold_ms=5):
                parsed = MessagesRequest.model_validate(request)
                messages = self.build_messages(request)
                thinking_config = self.resolve_thinking(messages)

                upstream_model = map_model(parsed.model)
                max_tokens = get_max_tokens(upstream_model)

                outbound: Dict[str, Any] = {
                    "model": upstream_model,
                    "messages": sanitize_messages(messages),
                    "max_tokens": max_tokens,
                    # 上游增量 reasoning 无法可靠拼回 thinking 块，始终走缓冲模式
                    "stream": False,
                    # 不开启采样时上游忽略 temperature/top_p
                    "do_sample": True,
                }
                if parsed.temperature is not None:
                    outbound["temperature"] = parsed.temperature
                if parsed.top_p is not None:
                    outbound["top_p"] = parsed.top_p

                if thinking_config.enabled:
                    outbound["reasoning"] = True
                    outbound["reasoning_effort"] = thinking_config.effort

            if parsed.stream:
                debug_log("[TRANSFORM] 客户端请求流式，已降级为缓冲模式")
            debug_log(f"  模型映射: {parsed.model} -> {upstream_model}", max_tokens=max_tokens)
            info_log(
                "请求转换完成",
                thinking=thinking_config.enabled,
                effort=thinking_config.effort,
                source=thinking_config.source,
            )
            return outbound, thinking_config
        except Exception as e:
            error_log("[TRANSFORM] 请求转换失败，转发原始请求", error=str(e))
            original = dict(request) if isinstance(request, dict) else request
            return original, ThinkingConfig(enabled=False, source="fallback", error=str(e))
