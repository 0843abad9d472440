import uuid
from datetime import datetime, timezone
from pathlib import Path

import pytest

from shelly.memory.types import (
    EmbeddingFailed,
    JournalError,
    LoadFailed,
    MemoryConfig,
    MemoryEntry,
    MemoryStorageError,
    Observation,
    StoreFailed,
    SystemInfo,
    ToolResult,
    UserInteraction,
)


def test_memory_entry_creation():
    entry = MemoryEntry.create("Test content", [0.1, 0.2, 0.3])
    assert entry.id
    assert str(uuid.UUID(entry.id)) == entry.id
    assert entry.content == "Test content"
    assert entry.embedding == [0.1, 0.2, 0.3]
    assert entry.timestamp.tzinfo is not None
    assert entry.timestamp.utcoffset().total_seconds() == 0


def test_memory_entries_have_distinct_ids():
    first = MemoryEntry.create("a", [1.0])
    second = MemoryEntry.create("a", [1.0])
    assert first.id != second.id
    assert first.content == second.content


def test_memory_entry_round_trip():
    entry = MemoryEntry.create("Deployed redis cluster", [0.9, 0.1, 0.1])
    assert MemoryEntry.from_dict(entry.to_dict()) == entry


def test_memory_entry_timestamp_is_utc_with_z_suffix():
    entry = MemoryEntry.create("x", [])
    assert entry.to_dict()["timestamp"].endswith("Z")


def test_memory_entry_from_dict_accepts_nanoseconds():
    data = {
        "id": "entry-1",
        "timestamp": "2024-01-02T03:04:05.123456789Z",
        "content": "note",
        "embedding": [1, 2.5],
    }
    entry = MemoryEntry.from_dict(data)
    assert entry.timestamp == datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)
    assert entry.embedding == [1.0, 2.5]
    assert entry.id == "entry-1"


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"id": "a", "timestamp": "2024-01-02T03:04:05Z", "content": "c"},
        {"id": 1, "timestamp": "2024-01-02T03:04:05Z", "content": "c", "embedding": []},
        {"id": "a", "timestamp": "not a time", "content": "c", "embedding": []},
        {"id": "a", "timestamp": "2024-01-02T03:04:05Z", "content": "c", "embedding": ["x"]},
    ],
)
def test_memory_entry_from_dict_rejects_malformed(data):
    with pytest.raises(ValueError):
        MemoryEntry.from_dict(data)


def test_journal_entry_display():
    assert str(SystemInfo("hostname: test")) == "[system] hostname: test"
    assert str(UserInteraction("query", "response")) == "[user] query -> [response] response"
    assert str(ToolResult("tool", "output")) == "[tool: tool] output"
    assert str(Observation("note")) == "[observation] note"
    assert str(JournalError("warning")) == "[error] warning"


def test_memory_config_defaults():
    config = MemoryConfig()
    assert config.top_k == 5
    assert config.max_cognition_rounds == 3
    assert config.embedding_model == "default"
    assert config.storage_dir.parts[-2:] == (".shelly", "memory")


def test_memory_config_override():
    config = MemoryConfig(storage_dir=Path("/tmp/x"), top_k=2)
    assert config.storage_dir == Path("/tmp/x")
    assert config.top_k == 2


def test_memory_error_messages():
    assert str(LoadFailed("bad")) == "Failed to load memory: bad"
    assert str(StoreFailed("bad")) == "Failed to store memory: bad"
    assert str(EmbeddingFailed("bad")) == "Failed to generate embedding: bad"
    assert isinstance(LoadFailed("bad"), MemoryStorageError)