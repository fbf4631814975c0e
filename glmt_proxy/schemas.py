"""
Wire data models for both sides of the proxy
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


Effort = Literal["low", "medium", "high"]
StopReason = Literal["end_turn", "max_tokens", "tool_use", "stop_sequence"]

STOP_REASONS = ("end_turn", "max_tokens", "tool_use", "stop_sequence")


class ThinkingConfig(BaseModel):
    """Reasoning activation decision for a single inbound request"""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    effort: Effort = "medium"
    # tag / classifier / fallback
    source: str = "classifier"
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Inbound (Anthropic Messages)
# ---------------------------------------------------------------------------

class ContentBlock(BaseModel):
    """Anthropic content block; text, thinking, tool_use, tool_result, ..."""

    model_config = ConfigDict(extra="allow")

    type: str
    text: Optional[str] = None


class Message(BaseModel):
    """Chat message model"""

    model_config = ConfigDict(extra="allow")

    role: str
    content: Union[str, List[ContentBlock]]


class MessagesRequest(BaseModel):
    """Anthropic-compatible request model"""

    model_config = ConfigDict(extra="allow")

    model: Optional[str] = None
    messages: List[Message]
    system: Optional[Union[str, List[ContentBlock]]] = None
    stream: Optional[bool] = False
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None


# ---------------------------------------------------------------------------
# Upstream (OpenAI chat completions + reasoning_content)
# ---------------------------------------------------------------------------

class ToolCallFunction(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    arguments: Optional[Union[str, Dict[str, Any]]] = None


class ToolCall(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    type: str = "function"
    function: ToolCallFunction


class UpstreamMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: Optional[str] = "assistant"
    content: Optional[str] = None
    reasoning_content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None


class Choice(BaseModel):
    model_config = ConfigDict(extra="allow")

    index: int = 0
    message: UpstreamMessage
    finish_reason: Optional[str] = None


class UpstreamResponse(BaseModel):
    """OpenAI-compatible chat completion response"""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    model: Optional[str] = None
    choices: List[Choice] = Field(default_factory=list)
    usage: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Client-facing response
# ---------------------------------------------------------------------------

class ThinkingSignature(BaseModel):
    """Provenance metadata for a thinking block, not a security control"""

    type: Literal["thinking_signature"] = "thinking_signature"
    hash: str
    length: int
    timestamp: int


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ThinkingContent(BaseModel):
    type: Literal["thinking"] = "thinking"
    thinking: str
    signature: ThinkingSignature


class ToolUseContent(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Dict[str, Any]


class TranslatedResponse(BaseModel):
    """Anthropic Messages response returned to the client"""

    id: str
    type: Literal["message"] = "message"
    role: Literal["assistant"] = "assistant"
    content: List[Union[ThinkingContent, TextContent, ToolUseContent]]
    model: Optional[str] = None
    stop_reason: StopReason = "end_turn"
    stop_sequence: Optional[str] = None
    usage: Dict[str, Any] = Field(default_factory=lambda: {"input_tokens": 0, "output_tokens": 0})
