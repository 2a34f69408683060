"""Conductor: background agent tasks and a local tool-call server for a personal assistant."""

__version__ = "0.1.0"
