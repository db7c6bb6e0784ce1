"""
Domain exceptions for the School Management System API.

Handlers raise these; the exception handlers registered in ``main`` turn
them into the standard ``{"success": false, "message": ...}`` envelope.
"""

from typing import Any, Dict, Optional


class SchoolError(Exception):
    """Base exception for all request-level errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "message": self.message}
        if self.details:
            body["data"] = self.details
        return body


class AuthenticationError(SchoolError):
    """Missing, malformed, expired or unresolvable credentials"""

    status_code = 401

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="UNAUTHENTICATED")


class AuthorizationError(SchoolError):
    """Authenticated, but the role or instance check failed"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="FORBIDDEN")


class ValidationError(SchoolError):
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class DuplicateError(ValidationError):
    """Translated unique-index violation"""

    def __init__(self, message: str):
        super().__init__(message)
        self.code = "DUPLICATE"


class NotFoundError(SchoolError):
    status_code = 404

    def __init__(self, message: str):
        super().__init__(message, code="NOT_FOUND")


class SecretNotAvailableError(SchoolError):
    """A password check ran against a user record loaded without its hash"""

    def __init__(self):
        super().__init__("Password field not selected", code="SECRET_NOT_AVAILABLE")


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration detected at startup"""
