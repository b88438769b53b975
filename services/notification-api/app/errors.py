"""Error taxonomy for the Notification Dispatch Service."""

from typing import Optional


class NotificationServiceError(Exception):
    """Base class for all service errors."""
    pass


class InvalidPayload(NotificationServiceError):
    """Dispatch payload is missing required fields or has unknown ones."""
    pass


class StorageUnavailable(NotificationServiceError):
    """The device registry could not be read or written."""
    pass


class MalformedSubscription(NotificationServiceError):
    """A push subscription is missing its endpoint or key material."""
    pass


class NotFound(NotificationServiceError):
    """Device registration does not exist or is not owned by the caller."""
    pass


class Unauthorized(NotificationServiceError):
    """Caller is not allowed to act on the requested identity or device."""
    pass


class TransportError(NotificationServiceError):
    """
    Push transport failure.

    permanent is True when the push service reports the subscription as
    gone (404/410); every other failure is transient.
    """

    def __init__(self, message: str, permanent: bool = False, status_code: Optional[int] = None):
        super().__init__(message)
        self.permanent = permanent
        self.status_code = status_code
