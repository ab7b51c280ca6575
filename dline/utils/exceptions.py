"""
Domain exceptions raised by the service layer.

The API layer translates these into HTTP responses (see dline.api.main).
Plain ValueError is still used for request-level validation failures.
"""


class NotFoundError(Exception):
    """A referenced team, game, point or other entity does not exist."""


class PermissionDeniedError(Exception):
    """The caller's team role is too low for the requested operation."""


class ConflictError(Exception):
    """A uniqueness rule would be violated (duplicate email, member, etc.)."""
