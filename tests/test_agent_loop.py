import asyncio

import pytest

from shelly.agent.config import AgentConfig, AgentInferenceError, AgentTimeout
from shelly.agent.loop import MAX_ROUNDS_REPLY, AgentLoop
from shelly.brain.types import (
    MessageResponse,
    Role,
    StopReason,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)
from shelly.comm.types import UserRequest, UserResponse
from shelly.executor.types import ToolOutput
from shelly.memory.types import JournalError, Observation, ToolResult, UserInteraction


class FakeBrain:
    def __init__(self, responses, delay=0.0):
        self.responses = list(responses)
        self.requests = []
        self.delay = delay

    def default_model(self):
        return "test-model"

    def model(self):
        return "test-model"

    def max_output_tokens(self):
        return 4096

    def temperature(self):
        return None

    def top_p(self):
        return None

    def top_k(self):
        return None

    async def infer(self, request):
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.responses:
            raise RuntimeError("No more responses")
        return self.responses.pop(0)


class FakeExecutor:
    def __init__(self, results=()):
        self.results = list(results)
        self.calls = []

    def tool_definitions(self):
        return [ToolDefinition(name="bash", description="run", input_schema={"type": "object"})]

    async def execute(self, tool_name, input):
        self.calls.append((tool_name, input))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def text_response(text, stop_reason=StopReason.END_TURN):
    return MessageResponse(
        id="test-id",
        model="test",
        content=[TextBlock(text=text)],
        role=Role.ASSISTANT,
        stop_reason=stop_reason,
    )


def tool_use_response(command="echo hello"):
    return MessageResponse(
        id="test-id",
        model="test",
        content=[ToolUseBlock(id="tool-1", name="bash", input={"command": command})],
        role=Role.ASSISTANT,
        stop_reason=StopReason.TOOL_USE,
    )


def make_request(content):
    reply = asyncio.get_running_loop().create_future()
    return UserRequest(content=content, reply=reply, source_addr=("127.0.0.1", 40000))


@pytest.mark.asyncio
async def test_handle_end_turn_returns_text_and_uses_context():
    brain = FakeBrain([text_response("Hello!")])
    config = AgentConfig()
    agent = AgentLoop(brain, FakeExecutor(), config)

    result = await agent.handle("Hi")

    assert result == "Hello!"
    request = brain.requests[0]
    assert request.model == "test-model"
    assert request.system.startswith(config.system_prompt)
    assert "# Current Context\n## Identity\nShelly" in request.system
    assert len(request.messages) == 1
    assert request.messages[0].content == [TextBlock(text="Hi")]


@pytest.mark.asyncio
async def test_handle_tool_use_records_tool_result():
    brain = FakeBrain([tool_use_response(), text_response("Done.")])
    executor = FakeExecutor([ToolOutput.success("hello")])
    agent = AgentLoop(brain, executor, AgentConfig())

    result = await agent.handle("Check something")

    assert result == "Done."
    assert executor.calls == [("bash", {"command": "echo hello"})]
    second = brain.requests[1]
    assert len(second.messages) == 3
    assert second.messages[1].role is Role.ASSISTANT
    assert second.messages[2].content == [
        ToolResultBlock(tool_use_id="tool-1", content="hello", is_error=False)
    ]
    assert agent.memory().journal_entries() == [ToolResult(tool="bash", result="hello")]


@pytest.mark.asyncio
async def test_handle_error_output_is_prefixed():
    brain = FakeBrain([tool_use_response(), text_response("Got result.")])
    executor = FakeExecutor([ToolOutput.error("bad")])
    agent = AgentLoop(brain, executor, AgentConfig())

    await agent.handle("List files")

    block = brain.requests[1].messages[2].content[0]
    assert block.content == "Error: bad"
    assert block.is_error is True
    assert agent.memory().journal_entries() == [ToolResult(tool="bash", result="Error: bad")]


@pytest.mark.asyncio
async def test_handle_executor_failure_becomes_error_result():
    brain = FakeBrain([tool_use_response("ls"), text_response("Got result.")])
    executor = FakeExecutor([RuntimeError("Command failed")])
    agent = AgentLoop(brain, executor, AgentConfig())

    result = await agent.handle("List files")

    assert result == "Got result."
    block = brain.requests[1].messages[2].content[0]
    assert block.content == "Error: Command failed"
    assert block.is_error is True
    assert agent.memory().journal_entries() == [JournalError("bash: Command failed")]


@pytest.mark.asyncio
async def test_handle_stops_after_max_tool_rounds():
    brain = FakeBrain([tool_use_response(f"cmd{i}") for i in range(5)])
    executor = FakeExecutor([ToolOutput.success("ok") for _ in range(5)])
    agent = AgentLoop(brain, executor, AgentConfig(max_tool_rounds=2))

    result = await agent.handle("Do many things")

    assert result == MAX_ROUNDS_REPLY
    assert len(brain.requests) == 2
    assert len(executor.calls) == 2


@pytest.mark.asyncio
async def test_handle_max_tokens_returns_text():
    brain = FakeBrain([text_response("Truncated...", StopReason.MAX_TOKENS)])
    agent = AgentLoop(brain, FakeExecutor(), AgentConfig())

    assert await agent.handle("Long request") == "Truncated..."


@pytest.mark.asyncio
async def test_handle_inference_failure_raises():
    agent = AgentLoop(FakeBrain([]), FakeExecutor(), AgentConfig())

    with pytest.raises(AgentInferenceError, match="No more responses"):
        await agent.handle("Hi")


@pytest.mark.asyncio
async def test_run_init_records_observations():
    brain = FakeBrain([tool_use_response(), text_response("Explored.")])
    executor = FakeExecutor([ToolOutput.success("hello")])
    config = AgentConfig()
    agent = AgentLoop(brain, executor, config)

    await agent.run_init()

    assert brain.requests[0].system == config.system_prompt
    assert brain.requests[0].messages[0].content == [TextBlock(text=config.init_prompt)]
    assert agent.memory().journal_entries() == [
        Observation(""),
        ToolResult(tool="bash", result="hello"),
        Observation("Explored."),
    ]


@pytest.mark.asyncio
async def test_run_init_stops_quietly_at_max_rounds():
    brain = FakeBrain([tool_use_response(), tool_use_response()])
    executor = FakeExecutor([ToolOutput.success("a"), ToolOutput.success("b")])
    agent = AgentLoop(brain, executor, AgentConfig(max_tool_rounds=1))

    await agent.run_init()

    assert len(brain.requests) == 1
    assert len(brain.responses) == 1


@pytest.mark.asyncio
async def test_run_init_timeout():
    brain = FakeBrain([text_response("late")], delay=1.0)
    agent = AgentLoop(brain, FakeExecutor(), AgentConfig(init_timeout_secs=0.01))

    with pytest.raises(AgentTimeout) as info:
        await agent.run_init()
    assert info.value.seconds == 0.01


@pytest.mark.asyncio
async def test_run_init_inference_failure():
    agent = AgentLoop(FakeBrain([]), FakeExecutor(), AgentConfig())

    with pytest.raises(AgentInferenceError):
        await agent.run_init()


@pytest.mark.asyncio
async def test_handle_user_request_replies_and_remembers():
    agent = AgentLoop(FakeBrain([text_response("hi there")]), FakeExecutor(), AgentConfig())
    request = make_request("hello")

    await agent.handle_user_request(request)

    assert request.reply.result() == UserResponse(content="hi there", is_error=False)
    assert agent.memory().journal_entries() == [
        UserInteraction(query="hello", response="hi there")
    ]


@pytest.mark.asyncio
async def test_handle_user_request_failure_replies_with_error():
    agent = AgentLoop(FakeBrain([]), FakeExecutor(), AgentConfig())
    request = make_request("hello")

    await agent.handle_user_request(request)

    response = request.reply.result()
    assert response.is_error is True
    assert response.content.startswith("Inference error")
    entries = agent.memory().journal_entries()
    assert entries == [JournalError(response.content)]


@pytest.mark.asyncio
async def test_handle_user_request_timeout():
    brain = FakeBrain([text_response("late")], delay=1.0)
    agent = AgentLoop(brain, FakeExecutor(), AgentConfig(handle_timeout_secs=0.01))
    request = make_request("hello")

    await agent.handle_user_request(request)

    assert request.reply.result() == UserResponse.error("Request timeout")
    assert agent.memory().journal_entries() == [JournalError("Handle timeout")]


@pytest.mark.asyncio
async def test_handle_user_request_with_closed_reply_still_remembers():
    agent = AgentLoop(FakeBrain([text_response("hi")]), FakeExecutor(), AgentConfig())
    request = make_request("hello")
    request.reply.cancel()

    await agent.handle_user_request(request)

    assert request.reply.cancelled()
    assert agent.memory().journal_entries() == [UserInteraction(query="hello", response="hi")]


@pytest.mark.asyncio
async def test_shutdown_records_observation():
    brain = FakeBrain([text_response("Saved.")])
    agent = AgentLoop(brain, FakeExecutor(), AgentConfig())

    await agent.shutdown()

    prompt = brain.requests[0].messages[0].content[0].text
    assert prompt.startswith("The system is about to shut down.")
    assert agent.memory().journal_entries() == [Observation("Shutdown: Saved.")]


@pytest.mark.asyncio
async def test_shutdown_failure_is_swallowed():
    agent = AgentLoop(FakeBrain([]), FakeExecutor(), AgentConfig())

    await agent.shutdown()

    assert agent.memory().journal_entries() == []