[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "shelly"
version = "0.1.0"
description = "Building blocks for an LLM-driven system agent with a shell tool, a UDP request server and a command-line client"
requires-python = ">=3.11"
keywords = ["agent", "llm", "shell", "udp", "msgpack", "systems-administration"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "httpx",
    "msgpack",
    "python-dotenv",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "respx",
]

[project.scripts]
shelly-cli = "shelly.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["shelly"]

[tool.pytest.ini_options]
addopts = "-ra"
