"""Error kinds raised by pairing, token and notification services.

The API layer maps each kind to one HTTP status; see ``homepair.main``.
"""


class HomePairError(Exception):
    """Base exception for all HomePair errors."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class ValidationError(HomePairError):
    """Malformed PIN, name, device type or area list."""

    status_code = 400
    code = "validation_error"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class AuthenticationError(HomePairError):
    """Missing, invalid, expired or revoked credential, or a failed PIN check.

    The message is deliberately generic; the specific cause is only logged.
    """

    status_code = 401
    code = "unauthorized"

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class ForbiddenError(HomePairError):
    """Authenticated, but the principal's role may not perform the action."""

    status_code = 403
    code = "forbidden"


class NotFoundError(HomePairError):
    """Unknown session, client, token or area id."""

    status_code = 404
    code = "not_found"

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(HomePairError):
    """Record is not in the state the requested transition needs."""

    status_code = 409
    code = "conflict"


class RateLimitError(HomePairError):
    """Too many attempts from one source."""

    status_code = 429
    code = "rate_limited"


class InternalError(HomePairError):
    """Unexpected persistence or signing failure."""

    status_code = 500
    code = "internal_error"
