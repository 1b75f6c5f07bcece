# Overview: Domain error taxonomy shared by services and routes.

"""
Every error a service raises on purpose carries the HTTP status the route
answers with. Anything else is an internal error (500, generic message).
"""


class DomainError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(DomainError):
    """400-level input problem or business rule violation."""

    status_code = 400


class ForbiddenError(DomainError):
    """403: role or chain-ownership violation."""

    status_code = 403


class NotFoundError(DomainError):
    """
    404: missing entity, or an entity outside the caller's scope.

    Both cases answer the same way so that existence is not leaked.
    """

    status_code = 404
