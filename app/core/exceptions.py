"""
core/exceptions.py
------------------
Error taxonomy shared by the authorization engine, the membership lifecycle
and the query facade.

Services raise these; main.py renders them as JSON with the matching HTTP
status. Lower-level errors (IntegrityError, OperationalError) are translated
into this taxonomy before they leave the service layer.

  Unauthenticated   401  missing / invalid / expired credential
  PermissionDenied  403  caller resolved, action rejected
  NotFound          404  row missing, or SELECT denied (existence not leaked)
  Conflict          409  uniqueness violations, lost races
  InvalidState      422  expired / accepted invitation, last-admin guard
  Unavailable       503  transient store or identity provider failure
"""


class AppError(Exception):
    """Base class for every error that is surfaced to API callers."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(AppError):
    status_code = 401
    code = "unauthenticated"
    default_message = "Could not validate credentials"


class PermissionDenied(AppError):
    status_code = 403
    code = "permission_denied"
    default_message = "You do not have permission to perform this action"


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"


class Conflict(AppError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists"


class InvalidState(AppError):
    status_code = 422
    code = "invalid_state"
    default_message = "This operation is not valid in the current state"


class Unavailable(AppError):
    status_code = 503
    code = "unavailable"
    default_message = "Service temporarily unavailable, please retry"


class IdentityRateLimited(Unavailable):
    """The identity provider asked us to slow down (HTTP 429 or equivalent)."""

    code = "rate_limited"
    default_message = "Identity provider rate limit reached"
