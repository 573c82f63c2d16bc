"""Synchronise Org outline documents with a remote task board."""

__version__ = "0.1.0"
