"""Functional-option builders for protocol buffer messages."""

__version__ = "0.3.0"
