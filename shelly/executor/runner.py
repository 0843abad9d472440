"""The executor: a registry of tools looked up by name."""

from __future__ import annotations

import logging
from typing import Any

from shelly.brain.types import ToolDefinition
from shelly.executor.tools import BashTool, Tool, default_bash_description, load_tool_descriptions
from shelly.executor.types import ExecutorConfig, ToolConfigError, ToolOutput, UnknownTool

log = logging.getLogger(__name__)


class Executor:
    """Runs registered tools by name."""

    def __init__(self, config: ExecutorConfig | None = None) -> None:
        self.config = config if config is not None else ExecutorConfig()
        log.debug(
            "initializing executor timeout_secs=%d max_output_bytes=%d shell=%s",
            self.config.constraints.timeout_secs,
            self.config.constraints.max_output_bytes,
            self.config.shell,
        )
        try:
            descriptions = load_tool_descriptions(self.config.tools_toml_path)
        except ToolConfigError as exc:
            log.debug("ignoring unreadable tool configuration: %s", exc)
            descriptions = {}

        bash = BashTool(descriptions.get("bash") or default_bash_description())
        self._tools: dict[str, Tool] = {"bash": bash}
        log.info("executor initialized with %d tools", len(self._tools))

    def tool_definitions(self) -> list[ToolDefinition]:
        """Definitions of every registered tool."""
        return [tool.definition() for tool in self._tools.values()]

    async def execute(self, tool_name: str, input: Any) -> ToolOutput:
        """Run the named tool with the given input."""
        log.debug("looking up tool %s", tool_name)
        tool = self._tools.get(tool_name)
        if tool is None:
            raise UnknownTool(tool_name)
        log.info("executing tool %s", tool_name)
        return await tool.run(input)