from __future__ import annotations


class TicketDeskError(Exception):
    """Base class for handled ticketdesk failures."""

    user_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)
        self.message = message or self.user_message


class NotFoundError(TicketDeskError):
    """Referenced ticket or channel does not exist."""

    user_message = "Ticket data not found."


class UpstreamUnavailableError(TicketDeskError):
    """A fetch, upload, store or channel call failed."""

    user_message = "An external service is unavailable, please try again."


class ServiceSuspendedError(UpstreamUnavailableError):
    """A dependency is refusing calls until its circuit breaker recovers."""

    user_message = "Media storage is paused after repeated failures, please try again later."


class PartialFailureError(TicketDeskError):
    """A batch finished with some failed items."""

    def __init__(self, message: str | None = None, *, succeeded: int = 0, failed: int = 0) -> None:
        super().__init__(message or f"{failed} of {succeeded + failed} items failed")
        self.succeeded = succeeded
        self.failed = failed


class ConfigurationMissingError(TicketDeskError):
    """A required destination is not configured."""

    user_message = "This feature is not configured."


class RateLimitedError(TicketDeskError):
    user_message = "You are creating tickets too quickly, please wait before trying again."

    def __init__(self, message: str | None = None, *, retry_after_seconds: int = 0) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds
