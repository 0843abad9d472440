"""Tool output, execution settings and executor errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class ToolOutput:
    """Output of one tool execution."""

    content: str
    is_error: bool = False

    @classmethod
    def success(cls, content: str) -> ToolOutput:
        return cls(content=content, is_error=False)

    @classmethod
    def error(cls, content: str) -> ToolOutput:
        return cls(content=content, is_error=True)


@dataclass
class ExecutionConstraints:
    """Limits applied to a single execution."""

    timeout_secs: int = 30
    max_output_bytes: int = 1_048_576
    working_dir: Path | None = None


@dataclass
class ExecutorConfig:
    """Executor settings."""

    constraints: ExecutionConstraints = field(default_factory=ExecutionConstraints)
    tools_toml_path: Path = field(default_factory=lambda: Path("tools.toml"))
    shell: str = "/bin/sh"


class ExecutorError(Exception):
    """Base class for errors raised while running tools."""


class UnknownTool(ExecutorError):
    def __init__(self, tool: str) -> None:
        super().__init__(f"Unknown tool: {tool}")
        self.tool = tool


class InvalidInput(ExecutorError):
    def __init__(self, tool: str, detail: str) -> None:
        super().__init__(f"Invalid input for tool '{tool}': {detail}")
        self.tool = tool
        self.detail = detail


class SpawnFailed(ExecutorError):
    def __init__(self, tool: str, detail: str) -> None:
        super().__init__(f"Failed to spawn process for tool '{tool}': {detail}")
        self.tool = tool
        self.detail = detail


class ExecutorTimeout(ExecutorError):
    def __init__(self, tool: str, seconds: int) -> None:
        super().__init__(f"Execution timeout for tool '{tool}' after {seconds} seconds")
        self.tool = tool
        self.seconds = seconds


class OutputCaptureFailed(ExecutorError):
    def __init__(self, tool: str, detail: str) -> None:
        super().__init__(f"Failed to capture output for tool '{tool}': {detail}")
        self.tool = tool
        self.detail = detail


class ToolConfigError(ExecutorError):
    """The tool configuration file could not be read or parsed."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail