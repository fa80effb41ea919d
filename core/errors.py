"""
core/errors.py -- Domain error taxonomy for Taskboard.

Every failure the server reports on purpose is one of these classes. Each
carries a stable machine-readable `code`, the HTTP status the API layer maps
it to, and a human-readable `message`. api/main.py registers one exception
handler for TaskboardError that renders {message, code[, errors]}.

The hierarchy matters for the auth gate: ExpiredToken IS an InvalidToken,
and every gate rejection is an AuthGateError (HTTP 401).

Layer rule: core/ is the kernel. No imports from api/, auth/, tasks/, client/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class FieldError:
    """One field-level validation message."""

    field: str
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


class TaskboardError(Exception):
    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Server error"

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(TaskboardError):
    """Malformed or missing input. Carries every field-level problem found."""

    status_code = 400
    code = "validation_error"
    default_message = "Validation failed"

    def __init__(self, errors: list[FieldError], message: str | None = None) -> None:
        self.errors = list(errors)
        if message is None and len(self.errors) == 1:
            message = self.errors[0].message
        super().__init__(message)

    @classmethod
    def single(cls, field: str, message: str) -> ValidationError:
        return cls([FieldError(field, message)])


class DuplicateIdentity(TaskboardError):
    status_code = 400
    code = "duplicate_identity"
    default_message = "User already exists"


class InvalidCredentials(TaskboardError):
    # Deliberately the same message for "no such user" and "wrong password".
    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid credentials"


class AuthGateError(TaskboardError):
    """Base class for every rejection produced by the token verifier."""

    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required"


class MissingToken(AuthGateError):
    code = "missing_token"
    default_message = "No authorization header. Please log in."


class InvalidToken(AuthGateError):
    code = "invalid_token"
    default_message = "Invalid or expired token"


class ExpiredToken(InvalidToken):
    code = "token_expired"
    default_message = "Token has expired"


class UnknownSubject(AuthGateError):
    code = "unknown_subject"
    default_message = "User not found. Please log in again."


class NotFound(TaskboardError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class InternalError(TaskboardError):
    pass
