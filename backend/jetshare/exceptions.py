"""
JetShare Exception Hierarchy

Every error carries a stable machine-readable code, a human-readable message
and the HTTP status the API layer renders it with.
"""
from typing import Optional, Dict, Any


class JetShareError(Exception):
    """
    Base exception for all JetShare errors.

    Rendered by the API layer as:
        {"error_code": str, "message": str, "details": dict}
    """

    status_code: int = 400

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


class ValidationError(JetShareError):
    """
    Malformed or out-of-range input. Never retried automatically.

    Examples:
    - Share amount larger than the total flight cost
    - Empty departure location
    - A user trying to accept their own offer
    """

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: str = "validation_error"):
        super().__init__(error_code, message, details)


class UnauthorizedError(JetShareError):
    """Caller identity missing."""

    status_code = 401

    def __init__(self, message: str = "Authentication required", details: Optional[Dict[str, Any]] = None):
        super().__init__("unauthorized", message, details)


class NotFoundError(JetShareError):
    """Referenced offer, transaction or ticket does not exist."""

    status_code = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("not_found", message, details)


class ConflictError(JetShareError):
    """
    State-transition race lost.

    Example:
    - Two users accept the same open offer; the second one gets this
    """

    status_code = 409

    def __init__(self, message: str = "Offer is no longer available", details: Optional[Dict[str, Any]] = None):
        super().__init__("conflict", message, details)


class ForbiddenError(JetShareError):
    """Wrong actor for the operation (e.g. editing someone else's offer)."""

    status_code = 403

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("forbidden", message, details)


class StateError(JetShareError):
    """
    Operation invalid for the current offer status.

    Examples:
    - Deleting an offer that was already accepted
    - Paying for an offer that is still open
    """

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: str = "state_error"):
        super().__init__(error_code, message, details)


class WrongPayerError(StateError):
    """Payment attempted by someone other than the offer's matched user."""

    status_code = 403

    def __init__(self, message: str = "Only the matched user can pay for this offer", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, error_code="wrong_payer")


class GatewayError(JetShareError):
    """
    Payment provider call failed.

    Provider-specific error shapes never leave the gateway package; this is
    the only error type the lifecycle manager sees from a provider.
    """

    status_code = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("gateway_error", message, details)


class InvalidSignatureError(JetShareError):
    """Webhook authenticity check failed."""

    status_code = 400

    def __init__(self, message: str = "Webhook signature verification failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("invalid_signature", message, details)


class DependencyError(JetShareError):
    """A required upstream write (e.g. profile creation) failed."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("dependency_error", message, details)
