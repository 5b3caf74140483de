from __future__ import annotations
"""
Error taxonomy for the check-in engine.

Only CameraUnavailable stops the scan loop. Everything under CheckInError is
recoverable: it is reported once to the operator and the loop keeps going.
"""


class RollCallError(Exception):
    """Base for every error raised by the engine."""


class CameraUnavailable(RollCallError):
    """No permission, no device, or the capture backend refused to open."""


class CheckInError(RollCallError):
    """A single check-in attempt failed; nothing was recorded."""


class NoEventSelected(CheckInError):
    def __init__(self, message: str = "Select an event before scanning."):
        super().__init__(message)


class EventNotFound(CheckInError):
    def __init__(self, event_id: str):
        super().__init__("Selected event is no longer available.")
        self.event_id = event_id


class InvalidPayload(CheckInError):
    def __init__(self, message: str = "Code does not contain a valid ID."):
        super().__init__(message)


class IdentifierNotFound(CheckInError):
    def __init__(self, identifier: str):
        super().__init__(f"No member found with ID {identifier}.")
        self.identifier = identifier


class PersistenceFailure(CheckInError):
    """The attendance upsert was rejected by the store."""


class AuditSinkFailure(RollCallError):
    """Audit emission failed. Logged, never propagated to the check-in."""
