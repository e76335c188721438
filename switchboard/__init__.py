"""Switchboard: agent delegation and streaming orchestration engine."""

__version__ = "0.1.0"
