"""Errors that carry an HTTP status."""

from __future__ import annotations

from typing import ClassVar


class HTTPError(Exception):
    """An error that maps onto an HTTP status."""

    status: ClassVar[int] = 500
    reason: ClassVar[str] = "internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(self.reason if message is None else message)


class BadRequestError(HTTPError):
    status = 400
    reason = "bad request"


class NotFoundError(HTTPError):
    status = 404
    reason = "not found"


class ConflictError(HTTPError):
    status = 409
    reason = "conflict"


class InternalError(HTTPError):
    status = 500
    reason = "internal server error"


class NotImplementedHTTPError(HTTPError):
    status = 501
    reason = "not implemented"


_BY_STATUS: dict[int, type[HTTPError]] = {
    cls.status: cls
    for cls in (BadRequestError, NotFoundError, ConflictError, InternalError, NotImplementedHTTPError)
}


def error_for_status(status: int, detail: str) -> HTTPError:
    """Return the error for an HTTP status; unknown statuses become internal errors."""
    return _BY_STATUS.get(status, InternalError)(detail)