"""Sage: conversation-based cognitive wellness tracking for older adults."""

__version__ = "0.1.0"
