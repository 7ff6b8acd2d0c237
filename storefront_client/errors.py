"""
errors.py — Error Taxonomy of the Storefront Client

Every failure the client can observe is expressed as one of these exceptions:

    StorefrontError
    ├── InputValidationError    client-side, raised before anything hits the network
    ├── ApiError                the backend answered with an error (or not at all)
    │   ├── AuthorizationError  401, the session is no longer valid
    │   ├── PermissionDeniedError  403, e.g. a non-admin calling /admin
    │   ├── ConflictError       business errors (insufficient stock, duplicates, 4xx)
    │   └── TransientError      5xx, timeouts and connection failures
    └── PaymentError            the payment processor refused or failed the payment

Store and workflow methods catch these at the call site and turn them into
notifications; they are not meant to escape to the UI layer.
"""


class StorefrontError(Exception):
    """Base class for all client-side errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputValidationError(StorefrontError):
    """
    Raised when user input fails validation before submission.

    Attributes:
        field_errors (dict): Mapping of field name to a human-readable message.
    """

    def __init__(self, field_errors: dict, message: str = "Please correct the highlighted fields"):
        super().__init__(message)
        self.field_errors = field_errors

    @classmethod
    def from_pydantic(cls, exc):
        """Builds the error from a pydantic ValidationError."""
        field_errors = {}
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "__root__"
            field_errors.setdefault(field, error["msg"])
        return cls(field_errors)


class ApiError(StorefrontError):
    """
    Raised for any failed call to the storefront backend.

    Attributes:
        status_code (int | None): HTTP status, None when no response was received.
        field_errors (dict): Field-specific errors reported by the server, if any.
    """

    def __init__(self, message: str, status_code=None, field_errors=None):
        super().__init__(message)
        self.status_code = status_code
        self.field_errors = field_errors or {}


class AuthorizationError(ApiError):
    """The bearer token is missing, expired or rejected (HTTP 401)."""


class PermissionDeniedError(ApiError):
    """The session is valid but lacks the required role (HTTP 403)."""


class ConflictError(ApiError):
    """A business rule rejected the request; state must not be mutated."""


class TransientError(ApiError):
    """Server-side or network failure; the user may re-trigger the operation."""


class PaymentError(StorefrontError):
    """
    Raised when the payment processor declines or fails a confirmation.

    Attributes:
        code (str | None): Processor error code, e.g. 'card_declined'.
    """

    def __init__(self, message: str, code=None):
        super().__init__(message)
        self.code = code
