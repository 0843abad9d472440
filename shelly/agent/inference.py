"""The inference loop: drives the model and the tools until the model finishes."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from shelly.agent.config import (
    InferenceFailed,
    InferenceRequestBuildError,
    MaxToolRoundsExceeded,
    ToolCall,
)
from shelly.brain.builder import RequestBuildError, RequestBuilder
from shelly.brain.types import (
    Message,
    MessageRequest,
    MessageResponse,
    Role,
    StopReason,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)
from shelly.executor.types import ToolOutput

log = logging.getLogger(__name__)


@dataclass
class InferenceResult:
    """Final text of an inference loop and the number of tool rounds it used."""

    text: str
    tool_rounds: int


class BrainLike(Protocol):
    """What the inference loop needs from a model client."""

    async def infer(self, request: MessageRequest) -> MessageResponse: ...

    def model(self) -> str: ...

    def max_output_tokens(self) -> int: ...

    def temperature(self) -> float | None: ...

    def top_p(self) -> float | None: ...

    def top_k(self) -> int | None: ...


class ExecutorLike(Protocol):
    """What the inference loop needs from a tool executor."""

    async def execute(self, tool_name: str, input: Any) -> ToolOutput: ...

    def tool_definitions(self) -> list[ToolDefinition]: ...


async def inference_loop(
    brain: BrainLike,
    executor: ExecutorLike,
    messages: list[Message],
    system: str,
    max_tool_rounds: int,
    tool_rounds: int = 0,
) -> InferenceResult:
    """Alternate model calls and tool executions until the model stops asking for tools.

    ``messages`` is extended in place with the assistant replies and tool results.
    Raises MaxToolRoundsExceeded when the model asks for more tool rounds than
    allowed, InferenceFailed when the model call fails and
    InferenceRequestBuildError when no valid request can be built.
    """
    while True:
        tool_defs = executor.tool_definitions()
        request = build_request(brain, system, messages, tool_defs)

        try:
            response = await brain.infer(request)
        except Exception as exc:
            raise InferenceFailed(str(exc)) from exc

        text = extract_text(response)

        if response.stop_reason is not StopReason.TOOL_USE:
            messages.append(Message(role=Role.ASSISTANT, content=list(response.content)))
            return InferenceResult(text=text, tool_rounds=tool_rounds)

        new_tool_rounds = tool_rounds + 1
        if new_tool_rounds > max_tool_rounds:
            raise MaxToolRoundsExceeded(max_tool_rounds, new_tool_rounds)

        messages.append(Message(role=Role.ASSISTANT, content=list(response.content)))
        await execute_tool_calls(executor, extract_tool_calls(response), messages)
        tool_rounds = new_tool_rounds


def build_request(
    brain: BrainLike,
    system: str,
    messages: Sequence[Message],
    tool_defs: Sequence[ToolDefinition],
) -> MessageRequest:
    """Build a request from the conversation using the brain's sampling settings."""
    builder = RequestBuilder(brain.model()).system(system).max_tokens(brain.max_output_tokens())

    for message in messages:
        if message.role is Role.USER:
            builder.user_content(message.content)
        else:
            builder.assistant_content(message.content)

    builder.tools(list(tool_defs))

    temperature = brain.temperature()
    if temperature is not None:
        builder.temperature(temperature)
    top_p = brain.top_p()
    if top_p is not None:
        builder.top_p(top_p)
    top_k = brain.top_k()
    if top_k is not None:
        builder.top_k(top_k)

    try:
        return builder.build()
    except RequestBuildError as exc:
        raise InferenceRequestBuildError("Failed to build request") from exc


def extract_text(response: MessageResponse) -> str:
    """All text blocks of a response, concatenated."""
    return "".join(block.text for block in response.content if isinstance(block, TextBlock))


def extract_tool_calls(response: MessageResponse) -> list[ToolCall]:
    """The tool invocations requested in a response, in order."""
    return [
        ToolCall(id=block.id, name=block.name, input=block.input)
        for block in response.content
        if isinstance(block, ToolUseBlock)
    ]


async def execute_tool_calls(
    executor: ExecutorLike,
    tool_calls: Iterable[ToolCall],
    messages: list[Message],
) -> None:
    """Run each tool call and append its result to the conversation as a user message."""
    for call in tool_calls:
        try:
            output = await executor.execute(call.name, call.input)
        except Exception as exc:
            log.error("Tool execution failed tool=%s error=%s", call.name, exc)
            content = f"Error: {exc}"
            is_error = True
        else:
            is_error = output.is_error
            content = f"Error: {output.content}" if output.is_error else output.content

        messages.append(
            Message(
                role=Role.USER,
                content=[
                    ToolResultBlock(tool_use_id=call.id, content=content, is_error=is_error)
                ],
            )
        )