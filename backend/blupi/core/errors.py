"""Domain exception taxonomy mapped to HTTP statuses by the error handlers."""

from __future__ import annotations

from fastapi import status


class BlupiError(Exception):
    """Base class for errors that carry a client-facing message and status."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be processed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class BoardContentError(BlupiError):
    """Board phases/columns/blocks violate a structural invariant."""

    default_message = "Invalid board content."


class ImportFormatError(BlupiError):
    """An uploaded import source could not be read at all."""

    default_message = "The uploaded file could not be imported."


class IntegrationError(BlupiError):
    """An upstream provider call failed; the client only sees a generic message."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "An external service is unavailable. Please try again later."

    def __init__(self, provider: str, message: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class FeatureDisabledError(BlupiError):
    """The requested capability is not configured on this deployment."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, feature: str) -> None:
        self.feature = feature
        super().__init__(f"Feature '{feature}' is not enabled on this server.")
