"""Error taxonomy for the marketplace.

Services raise these; the HTTP layer renders them as ``{"detail": ...}``
with the carried status code. Raw store errors never reach a caller.
"""


class MarketplaceError(Exception):
    """Base class for all marketplace errors."""

    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidInputError(MarketplaceError):
    """Malformed or missing input."""

    status_code = 400
    default_detail = "Invalid request"


class NotFoundError(MarketplaceError):
    """Unknown email or task ID."""

    status_code = 404
    default_detail = "Not found"


class InvalidStateError(MarketplaceError):
    """Task is in a status that does not allow the operation."""

    status_code = 400
    default_detail = "Task is not in a valid state for this operation"


class UnauthorizedError(MarketplaceError):
    """Caller is not allowed to perform the operation."""

    status_code = 401
    default_detail = "Not authorized"


class InvalidCredentialError(UnauthorizedError):
    """Bad password, or a missing, mismatched or expired one-time code."""

    default_detail = "Invalid credentials"


class ConflictError(MarketplaceError):
    """Operation conflicts with existing state."""

    status_code = 409
    default_detail = "Conflict"


class SelfApplicationError(ConflictError):
    """A task creator tried to apply to their own task."""

    status_code = 400
    default_detail = "You cannot apply to your own task"


class DuplicateApplicationError(ConflictError):
    """The applicant has already applied for the task."""

    default_detail = "You have already applied for this task"


class StoreError(MarketplaceError):
    """Persistence or transaction failure."""

    status_code = 500
    default_detail = "Storage operation failed"


class StoreUnavailableError(StoreError):
    """A store call did not complete within its deadline."""

    status_code = 503
    default_detail = "Storage temporarily unavailable"
