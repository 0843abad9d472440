"""Chainable builder for inference requests."""

from __future__ import annotations

from typing import Any

from shelly.brain.types import (
    ContentBlock,
    Message,
    MessageRequest,
    Role,
    ToolDefinition,
    ToolResultBlock,
)


class RequestBuildError(ValueError):
    """Raised when a request cannot be built from the collected parts."""


class RequestBuilder:
    """Collects the parts of a MessageRequest; every setter returns the builder."""

    def __init__(self, model: str) -> None:
        self._model = model
        self._system: str | None = None
        self._messages: list[Message] = []
        self._tools: list[ToolDefinition] | None = None
        self._max_tokens = 4096
        self._temperature: float | None = None
        self._top_p: float | None = None
        self._top_k: int | None = None
        self._stop_sequences: list[str] | None = None
        self._stream: bool | None = None
        self._metadata: Any = None

    def system(self, system: str) -> RequestBuilder:
        self._system = system
        return self

    def user_text(self, content: str) -> RequestBuilder:
        self._messages.append(Message.user_text(content))
        return self

    def user_content(self, content: list[ContentBlock]) -> RequestBuilder:
        self._messages.append(Message(role=Role.USER, content=list(content)))
        return self

    def assistant_text(self, content: str) -> RequestBuilder:
        self._messages.append(Message.assistant_text(content))
        return self

    def assistant_content(self, content: list[ContentBlock]) -> RequestBuilder:
        self._messages.append(Message(role=Role.ASSISTANT, content=list(content)))
        return self

    def user_tool_result(
        self, tool_use_id: str, content: str, is_error: bool | None = None
    ) -> RequestBuilder:
        block = ToolResultBlock(tool_use_id=tool_use_id, content=content, is_error=is_error)
        self._messages.append(Message(role=Role.USER, content=[block]))
        return self

    def tools(self, tools: list[ToolDefinition]) -> RequestBuilder:
        self._tools = list(tools)
        return self

    def tool(self, tool: ToolDefinition) -> RequestBuilder:
        if self._tools is None:
            self._tools = []
        self._tools.append(tool)
        return self

    def max_tokens(self, max_tokens: int) -> RequestBuilder:
        self._max_tokens = max_tokens
        return self

    def temperature(self, temperature: float) -> RequestBuilder:
        self._temperature = temperature
        return self

    def top_p(self, top_p: float) -> RequestBuilder:
        self._top_p = top_p
        return self

    def top_k(self, top_k: int) -> RequestBuilder:
        self._top_k = top_k
        return self

    def stop_sequences(self, sequences: list[str]) -> RequestBuilder:
        self._stop_sequences = list(sequences)
        return self

    def stream(self, stream: bool) -> RequestBuilder:
        self._stream = stream
        return self

    def metadata(self, metadata: Any) -> RequestBuilder:
        self._metadata = metadata
        return self

    def build(self) -> MessageRequest:
        """Validate and return the request."""
        if not self._messages:
            raise RequestBuildError("messages cannot be empty")
        if self._messages[0].role is not Role.USER:
            raise RequestBuildError("first message must have user role")
        return MessageRequest(
            model=self._model,
            system=self._system,
            messages=list(self._messages),
            tools=None if self._tools is None else list(self._tools),
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            top_p=self._top_p,
            top_k=self._top_k,
            stop_sequences=None if self._stop_sequences is None else list(self._stop_sequences),
            stream=self._stream,
            metadata=self._metadata,
        )