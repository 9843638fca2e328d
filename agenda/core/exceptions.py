"""Scheduling error taxonomy."""

from typing import Optional


class SchedulingError(Exception):
    """Base class for scheduling core errors."""
    pass


class InvalidDate(SchedulingError, ValueError):
    """Raised when a date or time string is malformed or unparseable."""

    def __init__(self, value: object, reason: Optional[str] = None):
        self.value = value
        self.reason = reason or "Expected YYYY-MM-DD"
        super().__init__(f"Invalid date {value!r}: {self.reason}")


class ValidationFailed(SchedulingError):
    """Raised when one or more business rules reject a booking."""

    def __init__(
        self,
        errors: list[str],
        warnings: Optional[list[str]] = None,
        suggestions: Optional[list] = None,
    ):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        self.suggestions = list(suggestions or [])
        super().__init__("; ".join(self.errors) or "Booking rejected")


class PersistenceFailed(SchedulingError):
    """Raised when the storage collaborator fails to persist a booking."""
    pass


class StorageError(SchedulingError):
    """Raised by storage collaborators when a write cannot be completed."""
    pass


class FlowExpired(SchedulingError):
    """Raised when a referenced conversation flow no longer exists."""

    def __init__(self, organization_id: str, contact: str):
        self.organization_id = organization_id
        self.contact = contact
        super().__init__(f"No active flow for {contact} in {organization_id}")
