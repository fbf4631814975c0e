"""
Loop breaker for streamed exchanges.

Counts thinking blocks that start without any tool call or tool result in
between. One instance per streaming exchange; never shared.

The proxy forwards in buffered mode, so nothing in the request path feeds
this detector yet. A streaming upstream should create one per exchange and
pass every Anthropic stream event through ``observe``.
"""

from typing import Optional

from .helpers import debug_log, info_log


LOOP_THRESHOLD = 3

LOOP_BREAKER_TEXT = (
    "You have planned several times in a row without taking any action. "
    "Stop planning now and act: call the next tool or give the final answer."
)

_TOOL_BLOCK_TYPES = ("tool_use", "tool_result", "server_tool_use")


class LoopDetector:
    """Consecutive thinking-start counter for one exchange"""

    def __init__(self, threshold: int = LOOP_THRESHOLD) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.threshold = threshold
        self._count = 0
        self.injections = 0

    @property
    def count(self) -> int:
        return self._count

    def on_thinking_start(self) -> bool:
        """Record a thinking block start; True means inject the loop breaker now."""
        self._count += 1
        debug_log("[LOOP] thinking块开始", count=self._count, threshold=self.threshold)
        if self._count >= self.threshold:
            info_log("[LOOP] 检测到连续思考循环，注入纠正指令", count=self._count)
            self._count = 0
            self.injections += 1
            return True
        return False

    def on_tool_activity(self) -> None:
        if self._count:
            debug_log("[LOOP] 工具活动，计数器重置", previous=self._count)
        self._count = 0

    def observe(self, event: dict) -> Optional[dict]:
        """
        Feed one Anthropic stream event.

        Returns the text content block to inject when the threshold is reached,
        otherwise None.
        """
        if not isinstance(event, dict) or event.get("type") != "content_block_start":
            return None
        block_type = (event.get("content_block") or {}).get("type")
        if block_type == "thinking":
            if self.on_thinking_start():
                return {"type": "text", "text": LOOP_BREAKER_TEXT}
        elif block_type in _TOOL_BLOCK_TYPES:
            self.on_tool_activity()
        return None
