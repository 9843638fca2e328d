"""Appointment scheduling and conversation-flow engine."""

__version__ = "1.0.0"
