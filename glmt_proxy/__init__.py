"""
glmt_proxy package - Anthropic Messages <-> GLM reasoning proxy
"""

from .config import Settings, MODEL_MAPPING, MODEL_MAX_TOKENS, map_model, get_max_tokens
from .helpers import configure_structlog, get_logger, debug_log, info_log, error_log
from .schemas import MessagesRequest, ThinkingConfig, UpstreamResponse, TranslatedResponse
from .locale_enforcer import enforce_locale, LOCALE_DIRECTIVE
from .task_classifier import classify_task, TASK_RULES
from .loop_detector import LoopDetector, LOOP_BREAKER_TEXT
from .request_transformer import RequestTransformer, sanitize_messages
from .services.response_transformer import ResponseTransformer
from .server import ProxyServer

__all__ = [
    "Settings",
    "MODEL_MAPPING",
    "MODEL_MAX_TOKENS",
    "map_model",
    "get_max_tokens",
    "configure_structlog",
    "get_logger",
    "debug_log",
    "info_log",
    "error_log",
    "MessagesRequest",
    "ThinkingConfig",
    "UpstreamResponse",
    "TranslatedResponse",
    "enforce_locale",
    "LOCALE_DIRECTIVE",
    "classify_task",
    "TASK_RULES",
    "LoopDetector",
    "LOOP_BREAKER_TEXT",
    "RequestTransformer",
    "sanitize_messages",
    "ResponseTransformer",
    "ProxyServer",
]
