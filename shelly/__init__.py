"""Shelly: parts of an LLM-driven system agent and its UDP command-line client."""

__version__ = "0.1.0"