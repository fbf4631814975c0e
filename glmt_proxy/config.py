"""
GLMT proxy configuration module
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Proxy settings, supplied to the core by the launching process"""

    model_config = SettingsConfigDict(env_prefix="GLMT_", extra="ignore", populate_by_name=True)

    # Upstream Configuration
    UPSTREAM_BASE_URL: str = "https://api.z.ai/api/coding/paas/v4"
    UPSTREAM_PATH: str = "chat/completions"
    # 未设置时转发客户端自带的 Authorization
    UPSTREAM_AUTHORIZATION: Optional[str] = None
    USER_AGENT: str = "GLMT-Proxy/1.0"

    # Request Configuration
    REQUEST_TIMEOUT: float = 120.0
    MAX_BODY_BYTES: int = 10 * 1024 * 1024

    # Logging Configuration - false, info, debug
    LOG_LEVEL: Literal["false", "info", "debug"] = "info"
    VERBOSE: bool = False
    DEBUG_LOG: bool = Field(
        default=False,
        validation_alias=AliasChoices("GLMT_DEBUG_LOG", "CCS_DEBUG_LOG"),
    )
    DEBUG_LOG_DIR: Path = Path.home() / ".ccs" / "logs"

    # Thinking Configuration
    DEFAULT_THINKING: bool = True
    ENFORCE_LOCALE: bool = True
    THINKING_TAG_POLICY: Literal["last", "first"] = "last"

    @model_validator(mode="after")
    def _verbose_implies_debug(self) -> "Settings":
        if self.VERBOSE:
            self.LOG_LEVEL = "debug"
        return self


# Model Mapping Configuration - 按顺序匹配，子串不区分大小写
MODEL_MAPPING = (
    ("glm-4.5-air", "GLM-4.5-Air"),
    ("glm-4.5", "GLM-4.5"),
    ("glm-4.6", "GLM-4.6"),
    ("haiku", "GLM-4.5-Air"),
    ("sonnet", "GLM-4.6"),
    ("opus", "GLM-4.6"),
)

DEFAULT_UPSTREAM_MODEL = "GLM-4.6"

MODEL_MAX_TOKENS = {
    "GLM-4.6": 128000,
    "GLM-4.5": 96000,
    "GLM-4.5-Air": 16000,
}

DEFAULT_MAX_TOKENS = 16000


def map_model(model: Optional[str]) -> str:
    """Map a client model identifier onto an upstream GLM model."""
    lowered = (model or "").lower()
    for needle, upstream_model in MODEL_MAPPING:
        if needle in lowered:
            return upstream_model
    return DEFAULT_UPSTREAM_MODEL


def get_max_tokens(upstream_model: str) -> int:
    return MODEL_MAX_TOKENS.get(upstream_model, DEFAULT_MAX_TOKENS)
