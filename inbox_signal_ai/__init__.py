"""Inbox Signal AI: turns placement-cell emails into structured, searchable signals."""

__version__ = "0.1.0"
