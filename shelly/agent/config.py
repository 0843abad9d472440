"""Agent configuration, tool call records and agent errors."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, TypeVar

from dotenv import find_dotenv, load_dotenv

log = logging.getLogger(__name__)

T = TypeVar("T")

_UNSIGNED = re.compile(r"\+?[0-9]+")
_BOOLEANS = {"true": True, "false": False}

DEFAULT_SYSTEM_PROMPT = (
    "You are Shelly, a system-level daemon process running on this machine with root "
    "privileges. You have no permission boundary with the operating system. If the kernel "
    "exposes it, you can do it. There is nothing on this machine that is off-limits to you. "
    "You process one task at a time. When you receive input, you think, you act if needed, "
    "and you respond."
)

DEFAULT_INIT_PROMPT = (
    "You just started. You know nothing about this machine. Explore your environment and "
    "report what you find."
)


@dataclass
class ToolCall:
    """A tool invocation extracted from a model response."""

    id: str
    name: str
    input: Any


def _parse_as(value: str, default: Any) -> Any:
    if isinstance(default, bool):
        return _BOOLEANS[value]
    if isinstance(default, int):
        if not _UNSIGNED.fullmatch(value):
            raise ValueError(value)
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, str):
        return value
    return type(default)(value)


def parse_env_var(name: str, default: T) -> T:
    """Read and parse an environment variable, falling back to the default.

    A value that is present but invalid is logged and ignored.
    """
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return _parse_as(value, default)
    except (KeyError, ValueError, TypeError):
        log.warning("Invalid env var value, using default var=%s value=%s", name, value)
        return default


@dataclass
class AgentConfig:
    """Agent loop settings."""

    max_tool_rounds: int = 20
    init_timeout_secs: int = 120
    shutdown_timeout_secs: int = 30
    handle_timeout_secs: int = 300
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    identity: str = "Shelly"
    init_prompt: str = DEFAULT_INIT_PROMPT

    @classmethod
    def from_env(cls) -> AgentConfig:
        """Defaults, overridden by AGENT_* environment variables and a .env file."""
        dotenv_path = find_dotenv(usecwd=True)
        if dotenv_path:
            load_dotenv(dotenv_path)
        config = cls()
        config.max_tool_rounds = parse_env_var("AGENT_MAX_TOOL_ROUNDS", config.max_tool_rounds)
        config.init_timeout_secs = parse_env_var(
            "AGENT_INIT_TIMEOUT_SECS", config.init_timeout_secs
        )
        config.shutdown_timeout_secs = parse_env_var(
            "AGENT_SHUTDOWN_TIMEOUT_SECS", config.shutdown_timeout_secs
        )
        config.handle_timeout_secs = parse_env_var(
            "AGENT_HANDLE_TIMEOUT_SECS", config.handle_timeout_secs
        )
        return config


class AgentConfigError(Exception):
    """A required configuration value is missing."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Config missing: {detail}")
        self.detail = detail


class AgentError(Exception):
    """Base class for errors raised by the agent loop."""


class AgentInferenceError(AgentError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Inference error: {detail}")
        self.detail = detail


class AgentRequestBuildError(AgentError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Request build error: {detail}")
        self.detail = detail


class AgentTimeout(AgentError):
    def __init__(self, seconds: int) -> None:
        super().__init__(f"Timeout after {seconds}s")
        self.seconds = seconds


class InferenceError(Exception):
    """Base class for errors raised by the inference loop."""


class MaxToolRoundsExceeded(InferenceError):
    def __init__(self, max_rounds: int, actual_rounds: int) -> None:
        super().__init__(
            f"Max tool rounds ({max_rounds}) exceeded, reached {actual_rounds} rounds"
        )
        self.max_rounds = max_rounds
        self.actual_rounds = actual_rounds


class InferenceFailed(InferenceError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Inference failed: {detail}")
        self.detail = detail


class InferenceRequestBuildError(InferenceError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Request build error: {detail}")
        self.detail = detail