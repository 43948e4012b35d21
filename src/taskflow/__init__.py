"""taskflow: local-first personal task tracker with optional account sync."""

__version__ = "0.3.0"
