from fastapi import status


class OrderServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OrderServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(OrderServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(OrderServiceError):
    status_code = status.HTTP_409_CONFLICT


class AuthError(OrderServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidStateError(OrderServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


# User-safe messages per provider failure category
PROVIDER_ERROR_MESSAGES = {
    "configuration": "The service is not configured correctly",
    "validation": "The request was rejected by the payment or storage provider",
    "rate_limited": "The provider is busy, please try again shortly",
    "network_timeout": "The provider did not respond in time",
    "unavailable": "The provider is temporarily unavailable",
}


class ProviderError(OrderServiceError):
    """An external payment or storage service failed.

    Only the category message is shown to callers; the provider detail is
    kept on the exception for logging.
    """

    def __init__(self, category: str, detail: str = ""):
        if category not in PROVIDER_ERROR_MESSAGES:
            category = "unavailable"
        super().__init__(PROVIDER_ERROR_MESSAGES[category])
        self.category = category
        self.detail = detail
        if category == "configuration":
            self.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        else:
            self.status_code = status.HTTP_502_BAD_GATEWAY


def category_for_status_code(status_code: int) -> str:
    if status_code in (401, 403):
        return "configuration"
    if status_code == 429:
        return "rate_limited"
    if 400 <= status_code < 500:
        return "validation"
    return "unavailable"
