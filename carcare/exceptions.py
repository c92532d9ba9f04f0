"""Application-specific exceptions.

:class:`ValidationError` is raised by :mod:`carcare.utils.validation` and by the
intake service; the app-level error handlers in :mod:`carcare.factory` turn
each of these into a JSON error envelope.
"""

from __future__ import annotations


class ValidationError(ValueError):
    """Raised when input validation fails.

    Parameters
    ----------
    message:
        Human-readable error message.
    field:
        Optional name of the field/parameter that failed validation.
    code:
        Optional machine-readable error code.
    details:
        Optional extra context (e.g. the list of missing field labels).
    """

    def __init__(
        self,
        message: str = "Validation error",
        *,
        field: str | None = None,
        code: str | None = None,
        details: object | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.code = code
        self.details = details

    def to_dict(self) -> dict:
        """Serialize the error into a JSON-friendly dictionary."""

        data = {"message": self.message}
        if self.field is not None:
            data["field"] = self.field
        if self.code is not None:
            data["code"] = self.code
        if self.details is not None:
            data["details"] = self.details
        return data


class NotFoundError(LookupError):
    """Raised when a referenced entity (or reference row) does not exist."""

    def __init__(self, message: str = "Not found", *, code: str = "not_found") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class AuthenticationError(Exception):
    """Raised when a token is missing, malformed or expired."""

    def __init__(self, message: str, *, code: str = "unauthenticated") -> None:
        super().__init__(message)
        self.message = message
        self.code = code
