"""The agent's memory: persisted semantic entries plus an in-memory journal."""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Iterable, Sequence

from shelly.memory.similarity import cosine_similarity
from shelly.memory.types import (
    JournalEntry,
    JournalError,
    LoadFailed,
    MemoryConfig,
    MemoryEntry,
    Observation,
    StoreFailed,
    SystemInfo,
    ToolResult,
    UserInteraction,
)

log = logging.getLogger(__name__)

MAX_JOURNAL_ENTRIES = 100
RECENT_HISTORY = 10
ENTRIES_FILE = "entries.json"


class Memory:
    """Semantic memory entries, a bounded journal, identity and known topology."""

    def __init__(self, identity: str = "", config: MemoryConfig | None = None) -> None:
        self._entries: list[MemoryEntry] = []
        self._journal: deque[JournalEntry] = deque(maxlen=MAX_JOURNAL_ENTRIES)
        self._identity = identity
        self._topology: list[str] = []
        self._config = config if config is not None else MemoryConfig()

    @classmethod
    def load(cls, config: MemoryConfig) -> Memory:
        """Load semantic entries from the storage directory."""
        memory = cls(config=config)
        entries_file = config.storage_dir / ENTRIES_FILE
        if not entries_file.exists():
            log.info("Memory file not found, starting with empty memory")
            return memory

        try:
            data = json.loads(entries_file.read_text(encoding="utf-8"))
            if not isinstance(data, list):
                raise ValueError("entries file must hold an array")
            memory._entries = [MemoryEntry.from_dict(item) for item in data]
        except (OSError, ValueError) as exc:
            raise LoadFailed(str(exc)) from exc

        log.info("Loaded %d memory entries", len(memory._entries))
        return memory

    def store(self, entry: MemoryEntry) -> None:
        """Add an entry and persist all entries to disk."""
        try:
            self._config.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreFailed(str(exc)) from exc
        self._entries.append(entry)
        self._persist()

    def _persist(self) -> None:
        entries_file = self._config.storage_dir / ENTRIES_FILE
        try:
            text = json.dumps(
                [entry.to_dict() for entry in self._entries], indent=2, ensure_ascii=False
            )
            entries_file.write_text(text, encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            raise StoreFailed(str(exc)) from exc
        log.debug("Persisted %d memory entries", len(self._entries))

    def recall(
        self, query: str, query_embedding: Sequence[float], top_k: int
    ) -> list[MemoryEntry]:
        """The top_k entries most similar to the query embedding, best first."""
        scored = sorted(
            ((cosine_similarity(query_embedding, entry.embedding), entry) for entry in self._entries),
            key=lambda pair: pair[0],
            reverse=True,
        )
        return [entry for _, entry in scored[:top_k]]

    def entries(self) -> list[MemoryEntry]:
        return list(self._entries)

    def config(self) -> MemoryConfig:
        return self._config

    def context_from_recall(self, entries: Iterable[MemoryEntry]) -> str:
        """Render recalled entries as a prompt section; empty if there are none."""
        lines = [
            f"- [{entry.timestamp.strftime('%Y-%m-%d %H:%M:%S')}] {entry.content}"
            for entry in entries
        ]
        if not lines:
            return ""
        return "\n".join(["## Relevant Memory", *lines])

    def add(self, entry: JournalEntry) -> None:
        """Append to the journal, dropping the oldest entries past the limit."""
        self._journal.append(entry)

    def add_system_info(self, info: str) -> None:
        self.add(SystemInfo(info))

    def add_interaction(self, query: str, response: str) -> None:
        self.add(UserInteraction(query=query, response=response))

    def add_tool_result(self, tool: str, result: str) -> None:
        self.add(ToolResult(tool=tool, result=result))

    def add_observation(self, observation: str) -> None:
        self.add(Observation(observation))

    def add_error(self, error: str) -> None:
        self.add(JournalError(error))

    def add_topology(self, info: str) -> None:
        self._topology.append(info)

    def context(self) -> str:
        """Context for the system prompt: identity, topology and recent history."""
        parts: list[str] = []
        if self._identity:
            parts.append(f"## Identity\n{self._identity}")
        if self._topology:
            parts.append("## Known Topology\n" + "\n".join(self._topology))
        recent = list(self._journal)[-RECENT_HISTORY:]
        if recent:
            parts.append("## Recent History\n" + "\n".join(f"- {entry}" for entry in recent))
        return "\n\n".join(parts)

    def journal_entries(self) -> list[JournalEntry]:
        return list(self._journal)

    def set_identity(self, identity: str) -> None:
        self._identity = identity