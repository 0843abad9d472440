"""Memory entries, journal entries, memory settings and memory errors."""

from __future__ import annotations

import re
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

_EXTRA_FRACTION = re.compile(r"^(.*\.\d{6})\d+(.*)$")


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_timestamp(text: str) -> datetime:
    # Sub-microsecond digits are dropped; datetime holds microseconds at most.
    match = _EXTRA_FRACTION.match(text)
    if match:
        text = match.group(1) + match.group(2)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class MemoryEntry:
    """One semantic memory: a summary and its embedding."""

    id: str
    timestamp: datetime
    content: str
    embedding: list[float]

    @classmethod
    def create(cls, content: str, embedding: Sequence[float]) -> MemoryEntry:
        """A new entry with a fresh id, stamped with the current time."""
        return cls(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            content=content,
            embedding=[float(x) for x in embedding],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": _format_timestamp(self.timestamp),
            "content": self.content,
            "embedding": list(self.embedding),
        }

    @classmethod
    def from_dict(cls, data: Any) -> MemoryEntry:
        """Parse an entry; raises ValueError on malformed data."""
        if not isinstance(data, Mapping):
            raise ValueError("memory entry must be an object")
        try:
            entry_id = data["id"]
            timestamp = data["timestamp"]
            content = data["content"]
            embedding = data["embedding"]
        except KeyError as exc:
            raise ValueError(f"missing field '{exc.args[0]}'") from None
        if not isinstance(entry_id, str):
            raise ValueError("field 'id' must be a string")
        if not isinstance(timestamp, str):
            raise ValueError("field 'timestamp' must be a string")
        if not isinstance(content, str):
            raise ValueError("field 'content' must be a string")
        if not isinstance(embedding, list) or any(
            isinstance(x, bool) or not isinstance(x, (int, float)) for x in embedding
        ):
            raise ValueError("field 'embedding' must be an array of numbers")
        return cls(
            id=entry_id,
            timestamp=_parse_timestamp(timestamp),
            content=content,
            embedding=[float(x) for x in embedding],
        )


class JournalEntry:
    """Base class for entries in the agent's journal."""


@dataclass(frozen=True)
class SystemInfo(JournalEntry):
    """System information such as hostname or OS."""

    info: str

    def __str__(self) -> str:
        return f"[system] {self.info}"


@dataclass(frozen=True)
class UserInteraction(JournalEntry):
    """A user query and the agent's response."""

    query: str
    response: str

    def __str__(self) -> str:
        return f"[user] {self.query} -> [response] {self.response}"


@dataclass(frozen=True)
class ToolResult(JournalEntry):
    """The result of a tool execution."""

    tool: str
    result: str

    def __str__(self) -> str:
        return f"[tool: {self.tool}] {self.result}"


@dataclass(frozen=True)
class Observation(JournalEntry):
    """An observation made by the agent."""

    text: str

    def __str__(self) -> str:
        return f"[observation] {self.text}"


@dataclass(frozen=True)
class JournalError(JournalEntry):
    """An error or warning."""

    message: str

    def __str__(self) -> str:
        return f"[error] {self.message}"


def _default_storage_dir() -> Path:
    try:
        return Path.home() / ".shelly" / "memory"
    except RuntimeError:
        return Path(".shelly/memory")


@dataclass
class MemoryConfig:
    """Memory storage and retrieval settings."""

    storage_dir: Path = field(default_factory=_default_storage_dir)
    top_k: int = 5
    max_cognition_rounds: int = 3
    embedding_model: str = "default"


class MemoryStorageError(Exception):
    """Base class for memory errors."""


class LoadFailed(MemoryStorageError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Failed to load memory: {detail}")
        self.detail = detail


class StoreFailed(MemoryStorageError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Failed to store memory: {detail}")
        self.detail = detail


class EmbeddingFailed(MemoryStorageError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Failed to generate embedding: {detail}")
        self.detail = detail