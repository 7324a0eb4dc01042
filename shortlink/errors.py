"""Error kinds raised by the shortlink core, plus the HTTP mapping used by the router."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "ShortLinkError",
    "InvalidInputError",
    "LinkNotFoundError",
    "LinkExpiredError",
    "UnauthorizedError",
    "ApiError",
    "STATUS_TO_ERROR_CODE",
    "to_api_error",
]


class ShortLinkError(Exception):
    """Base class for every error the core surfaces to its callers."""

    status_code: int = 500


class InvalidInputError(ShortLinkError, ValueError):
    """Malformed or oversized target, or an invalid expiry window."""

    status_code = 400


class LinkNotFoundError(ShortLinkError):
    status_code = 404

    def __init__(self, short_code: str):
        super().__init__(f"Short code not found: {short_code}")
        self.short_code = short_code


class LinkExpiredError(ShortLinkError):
    """The link exists but is no longer accessible."""

    status_code = 410

    def __init__(self, short_code: str):
        super().__init__(f"Short code has expired: {short_code}")
        self.short_code = short_code


class UnauthorizedError(ShortLinkError):
    status_code = 403


@dataclass(frozen=True)
class ApiError:
    code: str
    message: str


STATUS_TO_ERROR_CODE: dict[int, str] = {
    400: "BAD_REQUEST",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    410: "GONE",
    500: "INTERNAL_SERVER_ERROR",
}


def to_api_error(exc: ShortLinkError) -> ApiError:
    code = STATUS_TO_ERROR_CODE.get(exc.status_code, "ERROR")
    message = str(exc) or "Request failed"
    return ApiError(code=code, message=message)
