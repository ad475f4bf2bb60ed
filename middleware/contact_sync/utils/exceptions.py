"""
Custom Exception Classes

Defines application-specific exceptions for better error handling and logging.
"""

from typing import Any, Dict, Optional


class MiddlewareException(Exception):
    """Base exception for all middleware errors"""

    def __init__(
        self,
        message: str,
        error_code: str = "MIDDLEWARE_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/API responses"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class StripeException(MiddlewareException):
    """Stripe API related errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="STRIPE_ERROR", details=details)


class StripeSignatureException(StripeException):
    """Stripe webhook signature verification failed"""

    def __init__(self, message: str = "Invalid Stripe webhook signature"):
        super().__init__(message, details={"verification": "failed"})


class LineItemLookupException(StripeException):
    """Checkout session line items could not be retrieved"""

    def __init__(self, session_id: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            "Line item lookup failed",
            details={**(details or {}), "session_id": session_id},
        )
        self.error_code = "LINE_ITEM_LOOKUP_FAILED"


class WixException(MiddlewareException):
    """Wix API related errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="WIX_ERROR", details=details)


class WixAPIException(WixException):
    """Wix Contacts REST API call errors"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if status_code:
            details["status_code"] = status_code
        if body is not None:
            details["body"] = body
        self.status_code = status_code
        self.body = body
        super().__init__(message, details=details)


class MissingEmailException(MiddlewareException):
    """Checkout session carries no usable customer email"""

    def __init__(self, session_id: Optional[str] = None):
        super().__init__(
            "No customer email",
            error_code="MISSING_EMAIL",
            details={"session_id": session_id},
        )


class ConfigurationException(MiddlewareException):
    """Configuration or environment errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="CONFIG_ERROR", details=details)
