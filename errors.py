"""
Exception hierarchy for StudySpark.

Blueprints map these to JSON error responses (see blueprints/__init__.py).
"""

from __future__ import annotations


class StudySparkError(Exception):
    """Base class for all application errors."""

    status_code = 500
    public_message = "Something went wrong. Please try again."

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotAuthenticatedError(StudySparkError):
    status_code = 401
    public_message = "User not authenticated"


class NotFoundError(StudySparkError):
    """Missing document, or one owned by another user (treated the same)."""

    status_code = 404
    public_message = "Not found"


class MissingReferenceError(StudySparkError):
    """A required foreign key is absent or points at nothing."""

    status_code = 400
    public_message = "User or Subject ID not available"


class ValidationError(StudySparkError):
    status_code = 400
    public_message = "Invalid input"

    @classmethod
    def from_pydantic(cls, exc) -> ValidationError:
        errors = [
            {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg", "")}
            for e in exc.errors()
        ]
        return cls("Invalid input", errors=errors)


class AuthError(StudySparkError):
    """Credential problems surfaced verbatim to the user."""

    status_code = 401


class DuplicateAccountError(AuthError):
    status_code = 409
    public_message = "An account with this email already exists."


class StoreError(StudySparkError):
    """The document store rejected or failed an operation."""

    status_code = 503
    public_message = "The data service is unavailable. Please try again."


class FlowError(StudySparkError):
    """A generative flow failed or returned malformed output."""

    status_code = 502
    public_message = "The AI service could not complete your request. Please try again."
