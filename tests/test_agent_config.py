import pytest

from shelly.agent.config import (
    AgentConfig,
    AgentConfigError,
    AgentError,
    AgentInferenceError,
    AgentRequestBuildError,
    AgentTimeout,
    InferenceError,
    InferenceFailed,
    InferenceRequestBuildError,
    MaxToolRoundsExceeded,
    ToolCall,
    parse_env_var,
)

_VARS = (
    "AGENT_MAX_TOOL_ROUNDS",
    "AGENT_INIT_TIMEOUT_SECS",
    "AGENT_SHUTDOWN_TIMEOUT_SECS",
    "AGENT_HANDLE_TIMEOUT_SECS",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults():
    config = AgentConfig()
    assert config.max_tool_rounds == 20
    assert config.init_timeout_secs == 120
    assert config.shutdown_timeout_secs == 30
    assert config.handle_timeout_secs == 300
    assert config.identity == "Shelly"
    assert config.system_prompt.startswith("You are Shelly")
    assert config.init_prompt.startswith("You just started.")


def test_parse_env_var_missing_uses_default(clean_env):
    assert parse_env_var("AGENT_MAX_TOOL_ROUNDS", 20) == 20


def test_parse_env_var_valid(clean_env):
    clean_env.setenv("AGENT_MAX_TOOL_ROUNDS", "7")
    assert parse_env_var("AGENT_MAX_TOOL_ROUNDS", 20) == 7


@pytest.mark.parametrize("raw", ["abc", "-1", "1.5", " 3", ""])
def test_parse_env_var_invalid_uses_default(clean_env, raw):
    clean_env.setenv("AGENT_MAX_TOOL_ROUNDS", raw)
    assert parse_env_var("AGENT_MAX_TOOL_ROUNDS", 20) == 20


def test_parse_env_var_string_default(clean_env):
    clean_env.setenv("AGENT_MAX_TOOL_ROUNDS", "hello")
    assert parse_env_var("AGENT_MAX_TOOL_ROUNDS", "x") == "hello"


def test_from_env_defaults(clean_env):
    assert AgentConfig.from_env() == AgentConfig()


def test_from_env_overrides(clean_env):
    clean_env.setenv("AGENT_MAX_TOOL_ROUNDS", "5")
    clean_env.setenv("AGENT_INIT_TIMEOUT_SECS", "10")
    clean_env.setenv("AGENT_SHUTDOWN_TIMEOUT_SECS", "4")
    clean_env.setenv("AGENT_HANDLE_TIMEOUT_SECS", "oops")
    config = AgentConfig.from_env()
    assert config.max_tool_rounds == 5
    assert config.init_timeout_secs == 10
    assert config.shutdown_timeout_secs == 4
    assert config.handle_timeout_secs == 300


def test_from_env_reads_dotenv_file(clean_env, tmp_path):
    (tmp_path / ".env").write_text("AGENT_INIT_TIMEOUT_SECS=9\n")
    config = AgentConfig.from_env()
    assert config.init_timeout_secs == 9


def test_tool_call_fields():
    call = ToolCall(id="call-123", name="bash", input={"command": "echo test"})
    assert call.name == "bash"
    assert call.input == {"command": "echo test"}


def test_agent_error_messages():
    assert str(AgentInferenceError("API error")) == "Inference error: API error"
    assert str(AgentRequestBuildError("Failed to build request")) == (
        "Request build error: Failed to build request"
    )
    assert str(AgentTimeout(120)) == "Timeout after 120s"
    assert str(AgentConfigError("key")) == "Config missing: key"
    assert isinstance(AgentTimeout(1), AgentError)


def test_inference_error_messages():
    err = MaxToolRoundsExceeded(20, 21)
    assert str(err) == "Max tool rounds (20) exceeded, reached 21 rounds"
    assert (err.max_rounds, err.actual_rounds) == (20, 21)
    assert str(InferenceFailed("API error")) == "Inference failed: API error"
    assert isinstance(InferenceRequestBuildError("x"), InferenceError)
    assert isinstance(InferenceFailed("x"), InferenceError)