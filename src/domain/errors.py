"""
Error taxonomy for the booking core.

Every failure carries enough structure (kind, booking id, current and
requested status) for the caller to decide between refresh-and-retry and
surfacing the problem to the user.  Nothing in the core retries on its own.
"""

from __future__ import annotations

from typing import Any, Optional


class BookingCoreError(Exception):
    """Base class for all failures raised by the pricing and job core."""

    user_message = "The request could not be completed."

    def __init__(
        self,
        message: str,
        *,
        booking_id: Optional[int] = None,
        current_status: Any = None,
        requested_status: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.booking_id = booking_id
        self.current_status = current_status
        self.requested_status = requested_status

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "detail": self.message,
            "message": self.user_message,
            "booking_id": self.booking_id,
            "current_status": _status_value(self.current_status),
            "requested_status": _status_value(self.requested_status),
        }


def _status_value(status: Any) -> Any:
    return getattr(status, "value", status)


# ── Caller bugs ───────────────────────────────────────────────────────


class InvalidInputError(BookingCoreError):
    """Malformed or out-of-range input.  Never retried."""

    user_message = "Unable to price this trip."

    def __init__(self, message: str, *, field: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class EmptyReasonError(BookingCoreError):
    user_message = "Please provide a reason for cancellation."


# ── Stale view ────────────────────────────────────────────────────────


class JobNotFoundError(BookingCoreError):
    user_message = "This job no longer exists."


class AlreadyTerminalError(BookingCoreError):
    user_message = "Action no longer valid for this job's current status."


# ── Lost race / wrong order ───────────────────────────────────────────


class JobAlreadyClaimedError(BookingCoreError):
    user_message = "This job was just taken."


class InvalidTransitionError(BookingCoreError):
    user_message = "Action no longer valid for this job's current status."


# ── Authorization ─────────────────────────────────────────────────────


class DriverNotEligibleError(BookingCoreError):
    user_message = "You are not eligible to accept this job."


class NotAssignedDriverError(BookingCoreError):
    user_message = "Only the assigned driver can update this job."


class CancelNotPermittedError(BookingCoreError):
    user_message = "You are not allowed to cancel this booking."
