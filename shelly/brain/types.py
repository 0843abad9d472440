"""Message, content block and request/response types for the inference API."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Union


class Role(StrEnum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"


class StopReason(StrEnum):
    """Why the model stopped generating."""

    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"

    def as_str(self) -> str:
        return self.value


def _required(data: Mapping[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValueError(f"missing field '{key}'") from None


def _string(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"field '{key}' must be a string")
    return value


def _optional_string(value: Any, key: str) -> str | None:
    return None if value is None else _string(value, key)


def _optional_bool(value: Any, key: str) -> bool | None:
    if value is not None and not isinstance(value, bool):
        raise ValueError(f"field '{key}' must be a boolean")
    return value


def _integer(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field '{key}' must be an integer")
    return value


def _optional_integer(value: Any, key: str) -> int | None:
    return None if value is None else _integer(value, key)


def _number(value: Any, key: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field '{key}' must be a number")
    return float(value)


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be an object")
    return data


def _list(value: Any, key: str) -> list[Any]:
    if not isinstance(value, list):
        raise ValueError(f"field '{key}' must be an array")
    return value


@dataclass
class TextBlock:
    """Plain text from the model or the user."""

    text: str = ""


@dataclass
class ToolUseBlock:
    """A tool invocation requested by the model."""

    id: str
    name: str
    input: Any = None


@dataclass
class ToolResultBlock:
    """The result of a tool invocation, sent back as user content."""

    tool_use_id: str
    content: str
    is_error: bool | None = None


@dataclass
class CacheControlBlock:
    """A cache control breakpoint."""

    ttl: str | None = None


@dataclass
class ThinkingBlock:
    """Model reasoning content."""

    thinking: str = ""


@dataclass
class RedactedThinkingBlock:
    """Reasoning content withheld by the backend."""


@dataclass
class OtherBlock:
    """A content block of a type this package does not know."""


ContentBlock = Union[
    TextBlock,
    ToolUseBlock,
    ToolResultBlock,
    CacheControlBlock,
    ThinkingBlock,
    RedactedThinkingBlock,
    OtherBlock,
]


def content_block_from_dict(data: Any) -> ContentBlock:
    """Parse a content block from its tagged JSON form."""
    data = _mapping(data, "content block")
    kind = _string(_required(data, "type"), "type")
    match kind:
        case "text":
            return TextBlock(text=_string(data.get("text", ""), "text"))
        case "tool_use":
            return ToolUseBlock(
                id=_string(_required(data, "id"), "id"),
                name=_string(_required(data, "name"), "name"),
                input=data.get("input"),
            )
        case "tool_result":
            return ToolResultBlock(
                tool_use_id=_string(_required(data, "tool_use_id"), "tool_use_id"),
                content=_string(_required(data, "content"), "content"),
                is_error=_optional_bool(data.get("is_error"), "is_error"),
            )
        case "cache_control":
            return CacheControlBlock(ttl=_optional_string(data.get("ttl"), "ttl"))
        case "thinking":
            return ThinkingBlock(thinking=_string(data.get("thinking", ""), "thinking"))
        case "redacted_thinking":
            return RedactedThinkingBlock()
        case _:
            return OtherBlock()


def content_block_to_dict(block: ContentBlock) -> dict[str, Any]:
    """Render a content block in its tagged JSON form."""
    match block:
        case TextBlock(text=text):
            return {"type": "text", "text": text}
        case ToolUseBlock(id=block_id, name=name, input=tool_input):
            return {"type": "tool_use", "id": block_id, "name": name, "input": tool_input}
        case ToolResultBlock(tool_use_id=tool_use_id, content=content, is_error=is_error):
            return {
                "type": "tool_result",
                "tool_use_id": tool_use_id,
                "content": content,
                "is_error": is_error,
            }
        case CacheControlBlock(ttl=ttl):
            return {"type": "cache_control", "ttl": ttl}
        case ThinkingBlock(thinking=thinking):
            return {"type": "thinking", "thinking": thinking}
        case RedactedThinkingBlock():
            return {"type": "redacted_thinking"}
        case OtherBlock():
            return {"type": "other"}
    raise TypeError(f"not a content block: {block!r}")


@dataclass
class Message:
    """A single message in the conversation."""

    role: Role
    content: list[ContentBlock]

    @classmethod
    def user_text(cls, content: str) -> Message:
        return cls(role=Role.USER, content=[TextBlock(text=content)])

    @classmethod
    def assistant_text(cls, content: str) -> Message:
        return cls(role=Role.ASSISTANT, content=[TextBlock(text=content)])

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "content": [content_block_to_dict(block) for block in self.content],
        }

    @classmethod
    def from_dict(cls, data: Any) -> Message:
        data = _mapping(data, "message")
        return cls(
            role=Role(_required(data, "role")),
            content=[
                content_block_from_dict(block)
                for block in _list(_required(data, "content"), "content")
            ],
        )


@dataclass
class Usage:
    """Token usage statistics."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_creation_input_tokens": self.cache_creation_input_tokens,
            "cache_read_input_tokens": self.cache_read_input_tokens,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Usage:
        data = _mapping(data, "usage")
        return cls(
            input_tokens=_integer(data.get("input_tokens", 0), "input_tokens"),
            output_tokens=_integer(data.get("output_tokens", 0), "output_tokens"),
            cache_creation_input_tokens=_optional_integer(
                data.get("cache_creation_input_tokens"), "cache_creation_input_tokens"
            ),
            cache_read_input_tokens=_optional_integer(
                data.get("cache_read_input_tokens"), "cache_read_input_tokens"
            ),
        )


@dataclass
class ToolDefinition:
    """A tool the model may call."""

    name: str
    description: str
    input_schema: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ToolDefinition:
        data = _mapping(data, "tool definition")
        return cls(
            name=_string(_required(data, "name"), "name"),
            description=_string(_required(data, "description"), "description"),
            input_schema=_required(data, "input_schema"),
        )


@dataclass
class MessageRequest:
    """A complete request to the inference backend."""

    model: str
    messages: list[Message]
    max_tokens: int
    system: str | None = None
    tools: list[ToolDefinition] | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    stop_sequences: list[str] | None = None
    stream: bool | None = None
    metadata: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "system": self.system,
            "messages": [message.to_dict() for message in self.messages],
            "tools": None if self.tools is None else [tool.to_dict() for tool in self.tools],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "stop_sequences": self.stop_sequences,
            "stream": self.stream,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Any) -> MessageRequest:
        data = _mapping(data, "request")
        tools = data.get("tools")
        stop_sequences = data.get("stop_sequences")
        return cls(
            model=_string(_required(data, "model"), "model"),
            messages=[
                Message.from_dict(message)
                for message in _list(_required(data, "messages"), "messages")
            ],
            max_tokens=_integer(_required(data, "max_tokens"), "max_tokens"),
            system=_optional_string(data.get("system"), "system"),
            tools=None
            if tools is None
            else [ToolDefinition.from_dict(tool) for tool in _list(tools, "tools")],
            temperature=_number(data.get("temperature"), "temperature"),
            top_p=_number(data.get("top_p"), "top_p"),
            top_k=_optional_integer(data.get("top_k"), "top_k"),
            stop_sequences=None
            if stop_sequences is None
            else [_string(s, "stop_sequences") for s in _list(stop_sequences, "stop_sequences")],
            stream=_optional_bool(data.get("stream"), "stream"),
            metadata=data.get("metadata"),
        )


_RESPONSE_FIELDS = frozenset(
    {"id", "content", "model", "role", "stop_reason", "stop_sequence", "usage"}
)


@dataclass
class MessageResponse:
    """A response from the inference backend."""

    id: str
    model: str
    content: list[ContentBlock] = field(default_factory=list)
    role: Role = Role.USER
    stop_reason: StopReason | None = None
    stop_sequence: str | None = None
    usage: Usage | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "content": [content_block_to_dict(block) for block in self.content],
            "model": self.model,
            "role": self.role.value,
            "stop_reason": None if self.stop_reason is None else self.stop_reason.value,
            "stop_sequence": self.stop_sequence,
            "usage": None if self.usage is None else self.usage.to_dict(),
        }
        result.update(self.extra)
        return result

    @classmethod
    def from_dict(cls, data: Any) -> MessageResponse:
        data = _mapping(data, "response")
        stop_reason = data.get("stop_reason")
        usage = data.get("usage")
        return cls(
            id=_string(_required(data, "id"), "id"),
            model=_string(_required(data, "model"), "model"),
            content=[
                content_block_from_dict(block)
                for block in _list(data.get("content", []), "content")
            ],
            role=Role(data.get("role", Role.USER.value)),
            stop_reason=None if stop_reason is None else StopReason(stop_reason),
            stop_sequence=_optional_string(data.get("stop_sequence"), "stop_sequence"),
            usage=None if usage is None else Usage.from_dict(usage),
            extra={k: v for k, v in data.items() if k not in _RESPONSE_FIELDS},
        )