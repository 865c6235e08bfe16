"""Chatia: one prompt, many AI backends, one consolidated answer."""

__version__ = "0.3.0"
