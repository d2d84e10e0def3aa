"""Error taxonomy for the sync engine.

Every error is scoped to one event view; none is fatal to the process.

Usage:
    from slotsync.errors import NotFoundError, NetworkError

    try:
        event = await store.get_event(event_id)
    except NotFoundError:
        ...  # terminal for this view, surface to the user
    except NetworkError:
        ...  # the next poll or debounce cycle retries
"""

from typing import Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Serializable error payload handed to presenters."""

    error: str
    detail: str | None = None
    error_code: str | None = None
    context: dict[str, Any] | None = None


class SyncError(Exception):
    """Base class for sync engine errors."""

    error: str = "sync_error"
    detail: str = "Event synchronization failed"
    retryable: bool = False

    def __init__(
        self,
        detail: str | None = None,
        error_code: str | None = None,
        **context: Any,
    ) -> None:
        self.detail = detail or self.__class__.detail
        self.error_code = error_code
        self.context = context if context else None
        super().__init__(self.detail)

    def to_response(self) -> ErrorResponse:
        """Convert exception to error response model."""
        return ErrorResponse(
            error=self.error,
            detail=self.detail,
            error_code=self.error_code,
            context=self.context,
        )


class NotFoundError(SyncError):
    """Event id unknown or expired. Terminal, never retried."""

    error = "not_found"
    detail = "Event not found. The link might be incorrect or the event has expired."


class NetworkError(SyncError):
    """A store read or write failed in transit or with a non-2xx status."""

    error = "network_error"
    detail = "Store request failed"
    retryable = True


class InvalidEventError(SyncError):
    """The store returned a payload that is not a valid event."""

    error = "invalid_event"
    detail = "Invalid event data structure"


class PermissionDeniedError(SyncError):
    """Finalize attempted by someone other than the creator."""

    error = "permission_denied"
    detail = "Only the event creator can finalize the event"


class EmptyFinalizeError(SyncError):
    """Finalize attempted while nobody is available anywhere."""

    error = "nothing_to_finalize"
    detail = "Cannot finalize: nobody has marked any available time"


class EventFinalizedError(SyncError):
    """The event is closed to further edits."""

    error = "event_finalized"
    detail = "Event has already been finalized"


class UnknownSlotError(SyncError):
    error = "unknown_slot"
    detail = "Slot does not belong to this event"


class IdentityTakenError(SyncError):
    """A display name collides with a known participant."""

    error = "identity_taken"
    detail = "This name is already taken. Please choose another one."


class InvalidInputError(SyncError):
    error = "invalid_input"
    detail = "Invalid input"
