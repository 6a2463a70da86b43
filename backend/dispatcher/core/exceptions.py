"""Exceptions raised by the webhook dispatcher."""


class DispatcherError(Exception):
    """Base exception for all dispatcher errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SignatureError(DispatcherError):
    """Provider signature could not be verified."""


class SignatureMissingError(SignatureError):
    pass


class SignatureInvalidError(SignatureError):
    pass


class InvalidPayloadError(DispatcherError):
    """Request body is not a JSON object the provider would send."""


class ReferenceMissingError(DispatcherError):
    """Event carries no payment reference to route on."""


class SubscriberNotFoundError(DispatcherError):
    pass


class DuplicateSubscriberError(DispatcherError):
    pass
