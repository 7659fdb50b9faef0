from __future__ import annotations


class DomainError(Exception):
    """Base class for failures a caller can act on.

    Services raise these; the HTTP layer renders them with the shared error
    envelope (see ``coursehub.main``).
    """

    status_code: int = 400
    error_code: str = "bad_request"

    def __init__(self, message: str, *, error_code: str | None = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code


class NotFoundError(DomainError):
    status_code = 404
    error_code = "not_found"


class ForbiddenError(DomainError):
    status_code = 403
    error_code = "forbidden"


class BadRequestError(DomainError):
    status_code = 400
    error_code = "bad_request"


class ConflictError(DomainError):
    status_code = 409
    error_code = "conflict"
