"""
Utility functions for the proxy: structured logging, timing and debug artifacts
"""

import asyncio
import sys
import time
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import orjson
import structlog
from structlog import contextvars as struct_context


_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "false": logging.CRITICAL,
}


def configure_structlog(log_level: str = "info") -> None:
    """配置structlog日志系统（输出到stderr，stdout只留给启动信号）"""
    processors = [
        struct_context.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=False),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_level in ("debug", "info"):
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_LOG_LEVELS.get(log_level, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: Optional[str] = None):
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger("glmt")


def bind_request_context(**kwargs) -> None:
    """绑定结构化日志上下文，忽略空值。"""
    filtered = {k: v for k, v in kwargs.items() if v is not None}
    if filtered:
        struct_context.bind_contextvars(**filtered)


def reset_request_context(*keys: str) -> None:
    """清理指定上下文字段，未传入则清空全部。"""
    if keys:
        struct_context.unbind_contextvars(*keys)
    else:
        struct_context.clear_contextvars()


def _format(message: str, args: tuple) -> str:
    return message % args if args else message


def error_log(message: str, *args, **kwargs) -> None:
    get_logger().error(_format(message, args), **kwargs)


def warning_log(message: str, *args, **kwargs) -> None:
    get_logger().warning(_format(message, args), **kwargs)


def info_log(message: str, *args, **kwargs) -> None:
    get_logger().info(_format(message, args), **kwargs)


def debug_log(message: str, *args, **kwargs) -> None:
    get_logger().debug(_format(message, args), **kwargs)


def request_stage_log(stage: str, message: str, **kwargs) -> None:
    """
    Log info-level request stage transitions without dumping payload data.

    Args:
        stage: Logical stage identifier (e.g. "received", "forwarded").
        message: Human readable description for terminal viewers.
        **kwargs: Extra structured fields to enrich the log.
    """
    normalized_stage = (stage or "unknown").strip().lower().replace(" ", "_")
    info_log(f"[REQUEST] {message}", stage=normalized_stage, **kwargs)


@contextmanager
def perf_timer(operation_name: str, log_result: bool = True, threshold_ms: float = 0):
    """
    性能计时上下文管理器

    Yields:
        包含elapsed_ms的字典，可在上下文中使用

    Example:
        with perf_timer("upstream_call") as timer:
            response = await client.post(...)
    """
    timer_dict = {"elapsed_ms": 0, "elapsed_s": 0}
    start_time = time.perf_counter()

    try:
        yield timer_dict
    finally:
        elapsed_s = time.perf_counter() - start_time
        elapsed_ms = elapsed_s * 1000
        timer_dict["elapsed_ms"] = elapsed_ms
        timer_dict["elapsed_s"] = elapsed_s

        if log_result and elapsed_ms >= threshold_ms:
            debug_log(
                f"⏱️ {operation_name}",
                elapsed_ms=f"{elapsed_ms:.2f}ms",
                elapsed_s=f"{elapsed_s:.4f}s",
            )


class DebugArtifactWriter:
    """Write one pretty-printed JSON file per transformation stage.

    Writes happen on the default executor so the request path never waits on
    disk; any failure is logged and dropped.
    """

    def __init__(self, directory: Path, enabled: bool = False) -> None:
        self.directory = Path(directory).expanduser()
        self.enabled = enabled

    def artifact_path(self, request_id: str, stage: str) -> Path:
        timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
        return self.directory / f"{timestamp}-{request_id}-{stage}.json"

    def write(self, request_id: str, stage: str, payload: Any) -> Optional[Path]:
        if not self.enabled:
            return None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path = self.artifact_path(request_id, stage)
            path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2, default=str) + b"\n")
            debug_log("[DEBUG_LOG] 调试日志已写入", path=str(path))
            return path
        except Exception as exc:
            error_log("[DEBUG_LOG] 写入调试日志失败", stage=stage, error=str(exc))
            return None

    def schedule(self, request_id: str, stage: str, payload: Any) -> None:
        if not self.enabled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.write(request_id, stage, payload)
            return
        loop.run_in_executor(None, self.write, request_id, stage, payload)
