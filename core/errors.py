"""
core/errors.py -- Error taxonomy shared by the auth and engagement layers.

Services raise these; api/main.py owns a single exception handler that turns
any AppError into {"error": message, "code": code} with the class's status.
Nothing below knows about HTTP beyond the status number it carries.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for every error the API reports to callers on purpose."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed or missing input."""

    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class ConflictError(AppError):
    """A unique value (the login) is already taken."""

    status_code = 400
    code = "conflict"
    default_message = "Login already exists"


class AuthError(AppError):
    """Bad credentials. The message never says which half was wrong."""

    status_code = 401
    code = "bad_credentials"
    default_message = "Invalid login or password"


class DuplicateVoteError(AppError):
    status_code = 403
    code = "already_voted"
    default_message = "You already voted."


class PersistenceError(AppError):
    """The document store failed. Detail goes to the log, not to the caller."""

    status_code = 500
    code = "server_error"
    default_message = "Server error"
