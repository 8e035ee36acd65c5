"""Etchant Selector MCP - metallographic etchant recommendations."""

__version__ = "0.3.0"
