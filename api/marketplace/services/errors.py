class MarketplaceError(Exception):
    """Base error for marketplace operations; carries the HTTP status it maps to."""

    status_code = 500
    default_message = "internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(MarketplaceError):
    """Raised when input is missing or malformed."""

    status_code = 400
    default_message = "invalid request"


class AuthenticationError(MarketplaceError):
    """Raised when the caller has no valid credential."""

    status_code = 401
    default_message = "authentication required"


class AuthorizationError(MarketplaceError):
    """Raised when the caller is not the owner or lacks the role."""

    status_code = 403
    default_message = "not authorized"


class NotFoundError(MarketplaceError):
    """Raised when the requested entity does not exist for the caller."""

    status_code = 404
    default_message = "not found"


class ConflictError(MarketplaceError):
    """Raised when an operation violates a state precondition."""

    status_code = 409
    default_message = "conflict"


class StoreError(MarketplaceError):
    """Raised when the data store fails unexpectedly."""


class StoreUnavailableError(StoreError):
    """Raised when the database is unavailable or not configured."""

    status_code = 503
    default_message = "database unavailable"


class UpstreamUnavailableError(MarketplaceError):
    """Raised when an external collaborator such as the identity provider cannot be reached."""

    status_code = 503
    default_message = "upstream service unavailable"
