"""The agent loop: start-up exploration, user requests and shutdown handling."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import Any

from shelly.agent.config import (
    AgentConfig,
    AgentError,
    AgentInferenceError,
    AgentRequestBuildError,
    AgentTimeout,
    ToolCall,
)
from shelly.agent.inference import extract_text, extract_tool_calls
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
)
from shelly.comm.types import UserRequest, UserResponse
from shelly.memory.storage import Memory

log = logging.getLogger(__name__)

MAX_ROUNDS_REPLY = "Maximum tool call rounds reached. Operation aborted."

SHUTDOWN_PROMPT = (
    "The system is about to shut down. Please save any important state "
    "and perform any necessary cleanup. Report what you did."
)


class AgentLoop:
    """Couples the model, the tool executor and the agent's memory."""

    def __init__(self, brain: Any, executor: Any, config: AgentConfig | None = None) -> None:
        self._brain = brain
        self._executor = executor
        self._config = config if config is not None else AgentConfig()
        self._memory = Memory(self._config.identity)

    def memory(self) -> Memory:
        return self._memory

    def _build_request(
        self,
        system: str,
        messages: Sequence[Message],
        tool_defs: Sequence[ToolDefinition],
    ) -> MessageRequest:
        builder = (
            RequestBuilder(self._brain.default_model())
            .system(system)
            .max_tokens(self._brain.max_output_tokens())
        )
        for message in messages:
            if message.role is Role.USER:
                builder.user_content(message.content)
            else:
                builder.assistant_content(message.content)
        builder.tools(list(tool_defs))

        temperature = self._brain.temperature()
        if temperature is not None:
            builder.temperature(temperature)
        top_p = self._brain.top_p()
        if top_p is not None:
            builder.top_p(top_p)
        top_k = self._brain.top_k()
        if top_k is not None:
            builder.top_k(top_k)

        try:
            return builder.build()
        except RequestBuildError as exc:
            raise AgentRequestBuildError(str(exc)) from exc

    async def _infer(self, request: MessageRequest) -> MessageResponse:
        try:
            return await self._brain.infer(request)
        except Exception as exc:
            raise AgentInferenceError(str(exc)) from exc

    async def _execute_tool_calls(
        self, tool_calls: Iterable[ToolCall], messages: list[Message]
    ) -> None:
        for call in tool_calls:
            log.info("Executing tool tool=%s id=%s", call.name, call.id)
            try:
                output = await self._executor.execute(call.name, call.input)
            except Exception as exc:
                log.error("Tool execution failed tool=%s error=%s", call.name, exc)
                messages.append(
                    Message(
                        role=Role.USER,
                        content=[
                            ToolResultBlock(
                                tool_use_id=call.id, content=f"Error: {exc}", is_error=True
                            )
                        ],
                    )
                )
                self._memory.add_error(f"{call.name}: {exc}")
                continue

            result_text = f"Error: {output.content}" if output.is_error else output.content
            messages.append(
                Message(
                    role=Role.USER,
                    content=[
                        ToolResultBlock(
                            tool_use_id=call.id, content=result_text, is_error=output.is_error
                        )
                    ],
                )
            )
            self._memory.add_tool_result(call.name, result_text)

    async def run_init(self) -> None:
        """Let the model explore its environment; every reply is kept as an observation."""
        log.info("Starting agent initialization...")
        tool_defs = self._executor.tool_definitions()
        system = self._config.system_prompt
        messages = [Message(role=Role.USER, content=[TextBlock(text=self._config.init_prompt)])]

        for round_number in range(1, self._config.max_tool_rounds + 1):
            log.info("Init inference round %d", round_number)
            request = self._build_request(system, messages, tool_defs)
            try:
                response = await asyncio.wait_for(
                    self._infer(request), timeout=self._config.init_timeout_secs
                )
            except TimeoutError:
                log.error("Init inference timed out")
                raise AgentTimeout(self._config.init_timeout_secs) from None

            log.info("Init inference completed stop_reason=%s", response.stop_reason)
            self._memory.add_observation(extract_text(response))

            if response.stop_reason is StopReason.TOOL_USE:
                log.info("Tool use detected in init")
                messages.append(Message(role=Role.ASSISTANT, content=list(response.content)))
                await self._execute_tool_calls(extract_tool_calls(response), messages)
            elif response.stop_reason is StopReason.MAX_TOKENS:
                log.warning("Init inference stopped due to max tokens")
                break
            else:
                log.info("Init inference finished")
                break
        else:
            log.warning("Max tool rounds reached during init")

        log.info("Agent initialization completed")

    async def handle_user_request(self, request: UserRequest) -> None:
        """Answer one user request and hand the reply back to the server."""
        log.info("Handling user request addr=%s input=%s", request.source_addr, request.content)
        try:
            text = await asyncio.wait_for(
                self.handle(request.content), timeout=self._config.handle_timeout_secs
            )
        except TimeoutError:
            log.error("Handle timed out")
            self._memory.add_error("Handle timeout")
            response = UserResponse.error("Request timeout")
        except AgentError as exc:
            log.warning("Handle failed error=%s", exc)
            self._memory.add_error(str(exc))
            response = UserResponse.error(str(exc))
        else:
            self._memory.add_interaction(request.content, text)
            response = UserResponse(content=text)

        if request.reply.done():
            log.warning("Failed to send response to client")
        else:
            request.reply.set_result(response)

    async def handle(self, user_input: str) -> str:
        """Run the model with tools on one input and return its final text."""
        system = f"{self._config.system_prompt}\n\n# Current Context\n{self._memory.context()}"
        tool_defs = self._executor.tool_definitions()
        messages = [Message.user_text(user_input)]

        for round_number in range(1, self._config.max_tool_rounds + 1):
            log.info("Inference round %d", round_number)
            request = self._build_request(system, messages, tool_defs)
            response = await self._infer(request)
            text = extract_text(response)

            if response.stop_reason is StopReason.TOOL_USE:
                log.info("Tool use detected")
                messages.append(Message(role=Role.ASSISTANT, content=list(response.content)))
                await self._execute_tool_calls(extract_tool_calls(response), messages)
                continue
            if response.stop_reason is StopReason.MAX_TOKENS:
                log.warning("Inference stopped due to max tokens limit")
            else:
                log.info("Inference completed stop_reason=%s", response.stop_reason)
            return text

        log.warning("Max tool rounds reached, stopping")
        return MAX_ROUNDS_REPLY

    async def shutdown(self) -> None:
        """Give the model a chance to clean up before the process exits."""
        log.info("Starting shutdown handling...")
        try:
            text = await asyncio.wait_for(
                self.handle(SHUTDOWN_PROMPT), timeout=self._config.shutdown_timeout_secs
            )
        except TimeoutError:
            log.warning("Shutdown handling timed out")
        except AgentError as exc:
            log.warning("Shutdown handling failed error=%s", exc)
        else:
            log.info("Shutdown handling completed response=%s", text)
            self._memory.add_observation(f"Shutdown: {text}")