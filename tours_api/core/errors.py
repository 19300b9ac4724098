"""Operational error taxonomy.

Every error a client is expected to see is an ``AppError`` subclass carrying
its HTTP status and a human-readable message. Anything else reaching the
terminal handler is treated as a programming error and masked.
"""

from __future__ import annotations


class AppError(Exception):
    status_code = 500
    default_message = "Something went very wrong!"
    is_operational = True

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid input data."


class NotFound(AppError):
    status_code = 404
    default_message = "Not found."


class Unauthenticated(AppError):
    status_code = 401
    default_message = "You are not logged in! Please log in to get access."


class InvalidToken(Unauthenticated):
    default_message = "Invalid token. Please log in again!"


class ExpiredToken(Unauthenticated):
    default_message = "Your token has expired! Please log in again."


class Forbidden(AppError):
    status_code = 403
    default_message = "You do not have permission to perform this action."


class InvalidOrExpiredToken(AppError):
    status_code = 400
    default_message = "Token is invalid or has expired."


class DuplicateKey(AppError):
    status_code = 400

    def __init__(self, field: str | None = None, value=None):
        self.field = field
        self.value = value
        if field and value is not None:
            message = f'Duplicate field value: "{value}" for {field}. Please use another value!'
        elif field:
            message = f"Duplicate value for {field}. Please use another value!"
        else:
            message = "Duplicate field value. Please use another value!"
        super().__init__(message)


class TooManyRequests(AppError):
    status_code = 429
    default_message = "Too many requests from this IP, please try again later."

    def __init__(self, message: str | None = None, retry_after_seconds: int = 0):
        self.retry_after_seconds = int(retry_after_seconds)
        super().__init__(message)


class Internal(AppError):
    status_code = 500
