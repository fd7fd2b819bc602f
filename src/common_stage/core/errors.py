"""Domain errors shared by the Common Stage services.

Services raise these; the API layer maps each family onto an HTTP status in
one place (see ``common_stage.main``). None of them is fatal to the process.
"""

from __future__ import annotations


class CommonError(RuntimeError):
    """Base exception for every domain failure raised by the services."""

    status_code = 500
    default_detail = "Something went wrong. Please try again."

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(CommonError):
    """Input was rejected; the caller should fix it rather than retry."""

    status_code = 422
    default_detail = "Invalid input"


class EmptyMessage(ValidationError):
    """Raised when a message is empty after trimming whitespace."""

    default_detail = "Message cannot be empty"


class RemoteOperationFailed(CommonError):
    """A query, insert, upload or outbound call failed.

    The detail shown to users is deliberately generic and retry-prompting.
    """

    status_code = 503
    default_detail = "Something went wrong. Please try again."


class ThreadCreationFailed(RemoteOperationFailed):
    """Raised when a conversation thread could not be stored."""


class NotificationError(RemoteOperationFailed):
    """Raised by the email notifier; callers log it and move on."""


class StorageError(RemoteOperationFailed):
    """Raised when the object storage rejects an upload or delete."""


class GeocodingError(RemoteOperationFailed):
    """Raised when the forward-geocoding lookup fails."""


class AuthorizationError(CommonError):
    """The caller is not allowed to perform this operation."""

    status_code = 403
    default_detail = "You are not allowed to do that"


class NotFoundError(CommonError):
    """A post, thread, report or profile id did not resolve."""

    status_code = 404
    default_detail = "Not found"


class InvalidTransitionError(CommonError):
    """A status change was requested from a state that does not allow it."""

    status_code = 409
    default_detail = "This action is no longer available"


class ThreadClosedError(InvalidTransitionError):
    """Raised when writing to a conversation that has closed."""

    default_detail = "This conversation has closed"
