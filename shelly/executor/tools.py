"""Tool interface, tool description loading and the shell command tool."""

from __future__ import annotations

import asyncio
import logging
import time
import tomllib
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from shelly.brain.types import ToolDefinition
from shelly.executor.types import InvalidInput, SpawnFailed, ToolConfigError, ToolOutput

log = logging.getLogger(__name__)

_BASH_TOOL = "bash"
_SHELL = "/bin/sh"


class Tool(ABC):
    """A tool the executor can run on behalf of the model."""

    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Name, description and input schema of the tool."""

    @abstractmethod
    async def run(self, input: Any) -> ToolOutput:
        """Run the tool with JSON-like input."""

    def name(self) -> str:
        return self.definition().name


def load_tool_descriptions(path: str | Path) -> dict[str, str]:
    """Read per-tool descriptions from a TOML file; a missing file gives none."""
    path = Path(path)
    if not path.exists():
        log.debug("%s not found, using default descriptions", path)
        return {}
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, ValueError) as exc:
        raise ToolConfigError(f"IO error: {exc}") from exc
    try:
        config = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ToolConfigError(f"TOML parse error: {exc}") from exc

    descriptions = {
        key: value["description"]
        for key, value in config.items()
        if isinstance(value, Mapping) and isinstance(value.get("description"), str)
    }
    log.debug("loaded %d tool descriptions from %s", len(descriptions), path)
    return descriptions


def default_bash_description() -> str:
    return (
        "Execute a shell command via /bin/sh -c.\n"
        "The system is Linux.\n"
        "Commands run with daemon process privileges.\n"
        "Stdout and stderr are captured. Exit code is returned."
    )


def _parse_command(input: Any) -> str:
    if not isinstance(input, Mapping):
        raise InvalidInput(_BASH_TOOL, "input must be an object")
    if "command" not in input:
        raise InvalidInput(_BASH_TOOL, "missing field 'command'")
    command = input["command"]
    if not isinstance(command, str):
        raise InvalidInput(_BASH_TOOL, "field 'command' must be a string")
    return command


class BashTool(Tool):
    """Runs a command through the system shell and reports its output."""

    def __init__(self, description: str) -> None:
        self.description = description

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=_BASH_TOOL,
            description=self.description,
            input_schema={
                "type": "object",
                "properties": {
                    "command": {
                        "type": "string",
                        "description": "The bash command to execute",
                    }
                },
                "required": ["command"],
            },
        )

    async def run(self, input: Any) -> ToolOutput:
        start = time.monotonic()
        command = _parse_command(input)
        log.debug("executing bash command %s", command)

        try:
            process = await asyncio.create_subprocess_exec(
                _SHELL,
                "-c",
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await process.communicate()
        except OSError as exc:
            raise SpawnFailed(_BASH_TOOL, str(exc)) from exc

        returncode = process.returncode
        # A negative code means the process died from a signal and has no exit code.
        exit_code = returncode if returncode is not None and returncode >= 0 else -1

        parts: list[str] = []
        if stdout:
            parts.append("[stdout]\n" + stdout.decode("utf-8", errors="replace"))
        if stderr:
            parts.append("[stderr]\n" + stderr.decode("utf-8", errors="replace"))
        content = "\n".join(parts) + f"\n[exit_code]\n{exit_code}"
        is_error = returncode != 0

        log.info(
            "bash command executed command=%s duration_ms=%d exit_code=%d output_bytes=%d is_error=%s",
            command[:100],
            int((time.monotonic() - start) * 1000),
            exit_code,
            len(content.encode("utf-8")),
            is_error,
        )
        return ToolOutput(content=content, is_error=is_error)