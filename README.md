# shelly

Shelly is an agent meant to run on a machine as a long-lived process. It
sends a conversation to an inference backend that speaks the Messages API,
lets the model run shell commands through a `bash` tool, keeps a short
journal of what happened, and answers requests that arrive over UDP.

This package holds the parts of such an agent and an interactive
command-line client that talks to it over UDP.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## The command-line client

`shelly-cli` sends each line you type to a running agent and prints the
reply.

```
shelly-cli --target 127.0.0.1:9700
```

Options:

- `--target`, `-t`: agent address as `host:port` (IPv6 as `[host]:port`), default `127.0.0.1:9700`
- `--timeout`: seconds to wait for the agent to acknowledge a request, default `5`
- `--max-retries`, `-m`: how many times a request is sent before giving up, default `3`
- `--history-file`: where input history is kept, default `~/.shelly_history`
- `--history-size`: accepted but not used yet, default `1000`

Press Enter to send a line and Ctrl+D to quit; Ctrl+C discards the line
being typed. After an acknowledgement the client waits up to 120 seconds
for the reply. Error replies are printed with an `[error]` prefix; if no
answer comes after all retries, the client prints `[error] shelly not
responding`. A warning is printed when `LANG` is set to a locale that is
not UTF-8.

## Wire protocol

Every datagram starts with a one-byte message type and a four-byte
big-endian sequence number; a msgpack payload may follow.

| Type | Byte | Direction | Payload |
|------|------|-----------|---------|
| `MsgType.REQUEST` | `0x01` | client → agent | `[content]` |
| `MsgType.REQUEST_ACK` | `0x02` | agent → client | none |
| `MsgType.RESPONSE` | `0x03` | agent → client | `[content, is_error]` |

Payloads are written as msgpack arrays of their fields. The decoders in
`shelly.comm.protocol` also accept maps keyed by field name
(`{"content": ...}`).

```python
from shelly.comm.protocol import decode_header, encode_request_ack

packet = encode_request_ack(256)
assert packet == b"\x02\x00\x00\x01\x00"
msg_type, seq = decode_header(packet)
```

`decode_header` raises `DecodeError` for packets shorter than five bytes
and for unknown type bytes.

## The UDP server

`shelly.comm.server.Comm.create(config)` binds the socket described by a
`CommConfig` (default `0.0.0.0:9700`) and returns the server together with
an `asyncio.Queue` of `UserRequest` objects. `Comm.run()` serves datagrams
until `Comm.close()` is called:

- a request is acknowledged at once and put on the queue; the reply is
  whatever is set on the request's `reply` future, sent back as a RESPONSE;
- if no reply arrives within 300 seconds the client gets an error
  response `Response timeout`;
- repeated requests with the same sequence number from the same address
  are not queued again: the cached response is resent, or another
  acknowledgement if the answer is not ready yet;
- each client keeps at most `dedup_capacity` sequence numbers (oldest
  dropped first), and entries older than `dedup_ttl_secs` are removed
  every 30 seconds;
- packets whose payload exceeds `max_payload_bytes`, truncated packets
  and packets of other types are logged and ignored.

## Inference

Building a request:

```python
from shelly.brain.builder import RequestBuilder

request = (
    RequestBuilder("my-model")
    .system("You are helpful.")
    .user_text("What is 1 + 1?")
    .max_tokens(100)
    .build()
)
```

`build()` raises `RequestBuildError` when there are no messages or the
first message is not from the user.

`shelly.brain.client.Brain` posts requests to `<endpoint>/v1/messages`
with the settings in a `BrainSettings`:

```python
from shelly.brain.client import Brain, BrainSettings

brain = Brain(BrainSettings(
    endpoint="http://localhost:8080",
    api_key="placeholder",
    default_model="my-model",
))
response = await brain.infer(request)
await brain.aclose()
```

Any failure (network, HTTP 400/401/402, server errors, unparsable bodies)
is retried up to `max_retries` times with exponential backoff starting at
`base_retry_delay_ms` and capped at 30 seconds; after that `Exhausted` is
raised.

## Tools

```python
from shelly.executor.runner import Executor
from shelly.executor.types import ExecutorConfig

executor = Executor(ExecutorConfig())
output = await executor.execute("bash", {"command": "echo hello"})
print(output.content, output.is_error)
```

The `bash` tool runs the command with `/bin/sh -c` and reports sections
`[stdout]`, `[stderr]` and `[exit_code]`; a non-zero exit marks the output
as an error. An unknown tool raises `UnknownTool`, input without a
`command` string raises `InvalidInput`.

The tool description can be replaced in the `tools.toml` named by
`ExecutorConfig.tools_toml_path`:

```toml
[bash]
description = "Run a shell command."
```

## Memory

```python
from shelly.memory.storage import Memory

memory = Memory("Shelly")
memory.add_observation("disk is 80% full")
print(memory.context())
```

The journal keeps the last 100 entries; `context()` shows the identity,
known topology and the ten most recent entries. Semantic entries
(`MemoryEntry`) are kept in `entries.json` under
`MemoryConfig.storage_dir` (default `~/.shelly/memory`) by `store()`,
read back by `Memory.load()`, and ranked by cosine similarity with
`recall()`.

## The agent

`shelly.agent.inference.inference_loop` keeps calling the model and
running the requested tools until the model ends its turn, raising
`MaxToolRoundsExceeded` when it asks for too many tool rounds.

`shelly.agent.loop.AgentLoop` ties a brain, an executor and an
`AgentConfig` together: `run_init()` lets the model explore its
environment, `handle_user_request()` answers one `UserRequest` and sets
its reply, `shutdown()` gives the model a last turn. Wiring it to the
server:

```python
import asyncio

from shelly.agent.config import AgentConfig
from shelly.agent.loop import AgentLoop
from shelly.brain.client import Brain, BrainSettings
from shelly.comm.server import Comm
from shelly.executor.runner import Executor


async def serve() -> None:
    comm, requests = await Comm.create()
    brain = Brain(BrainSettings(
        endpoint="http://localhost:8080",
        api_key="placeholder",
        default_model="my-model",
    ))
    agent = AgentLoop(brain, Executor(), AgentConfig.from_env())
    server = asyncio.create_task(comm.run())
    await agent.run_init()
    try:
        while True:
            await agent.handle_user_request(await requests.get())
    finally:
        await agent.shutdown()
        comm.close()
        await server
        await brain.aclose()
```

`AgentConfig.from_env()` reads these variables (a `.env` file found from
the working directory is loaded first); an invalid value is logged and the
default kept:

| Variable | Default |
|----------|---------|
| `AGENT_MAX_TOOL_ROUNDS` | 20 |
| `AGENT_INIT_TIMEOUT_SECS` | 120 |
| `AGENT_SHUTDOWN_TIMEOUT_SECS` | 30 |
| `AGENT_HANDLE_TIMEOUT_SECS` | 300 |

## What this package does not do

- There is no command that starts the agent itself; `shelly-cli` is the
  only command. The server, inference client and agent loop have to be
  wired together by your own code, as above, including signal handling.
- Inference settings are not read from the environment; a
  `BrainSettings` has to be built explicitly.
- Nothing produces embeddings: `MemoryEntry` values must be given their
  vectors, and the agent loop does not use semantic memory.
- `ExecutionConstraints` (timeout, output size, working directory) are
  carried in the configuration but not applied; commands run without a
  time limit and their output is not truncated.