"""
Exception hierarchy for the DevHub gateway.
Every error maps to an HTTP status code and a stable error code.
"""

from typing import Any, Optional


class DevHubError(Exception):
    """Base exception for all gateway errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# Configuration Errors (500)
# =============================================================================


class ConfigurationError(DevHubError):
    """Error in application configuration."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details=details,
            status_code=500,
        )


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(DevHubError):
    """Request validation failed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details=details,
            status_code=400,
        )


class InvalidRequestError(ValidationError):
    """Invalid request parameters."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message=message, details=details)
        self.code = "INVALID_REQUEST"


# =============================================================================
# Authentication/Authorization Errors (401, 403)
# =============================================================================


class AuthenticationError(DevHubError):
    """Authentication failed."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            message=message,
            code="AUTHENTICATION_REQUIRED",
            status_code=401,
        )


class AuthorizationError(DevHubError):
    """Authorization failed - insufficient permissions."""

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(
            message=message,
            code="AUTHORIZATION_FAILED",
            status_code=403,
        )


# =============================================================================
# Not Found Errors (404)
# =============================================================================


class NotFoundError(DevHubError):
    """Requested resource not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        msg = message or f"{resource_type} not found"
        if resource_id and not message:
            msg = f"{resource_type} with ID '{resource_id}' not found"

        super().__init__(
            message=msg,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
            status_code=404,
        )


class ChatNotFoundError(NotFoundError):
    """Chat not found or not visible to the caller."""

    def __init__(self, chat_id: str) -> None:
        super().__init__(resource_type="Chat", resource_id=chat_id)
        self.code = "CHAT_NOT_FOUND"


class ChangedFileNotFoundError(NotFoundError):
    """A file name that is not among a pull request or commit's changes."""

    def __init__(self, filename: str, message: str, available_files: list[str]) -> None:
        super().__init__(resource_type="File", resource_id=filename, message=message)
        self.details.update({"availableFiles": available_files, "searchedFor": filename})


# =============================================================================
# External Service Errors (502 unless the upstream status is meaningful)
# =============================================================================


class ExternalServiceError(DevHubError):
    """Error communicating with external service."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 502,
    ) -> None:
        super().__init__(
            message=f"{service_name} error: {message}",
            code="EXTERNAL_SERVICE_ERROR",
            details={"service": service_name, **(details or {})},
            status_code=status_code,
        )


class GitHubError(ExternalServiceError):
    """Error returned by the GitHub REST API.

    The upstream status is preserved so a 404 from GitHub stays a 404.
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 502,
    ) -> None:
        super().__init__(
            service_name="GitHub",
            message=message,
            details=details,
            status_code=status_code,
        )
        self.code = "GITHUB_ERROR"


class JiraError(ExternalServiceError):
    """Error communicating with JIRA."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 502,
    ) -> None:
        super().__init__(service_name="JIRA", message=message, details=details)
        self.code = "JIRA_ERROR"
        self.upstream_status = status_code


class ChatBackendError(ExternalServiceError):
    """Error communicating with the LLM chat backend."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 502,
    ) -> None:
        super().__init__(service_name="Chat backend", message=message, details=details)
        self.code = "CHAT_BACKEND_ERROR"
        self.upstream_status = status_code


class AnalysisServiceError(ExternalServiceError):
    """Error communicating with the log or requirement analysis service."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 502,
    ) -> None:
        super().__init__(
            service_name="Analysis service",
            message=message,
            details=details,
            status_code=status_code,
        )
        self.code = "ANALYSIS_SERVICE_ERROR"


class DatabaseError(ExternalServiceError):
    """Error communicating with database."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(service_name="Database", message=message, details=details)
        self.code = "DATABASE_ERROR"


# =============================================================================
# Business Logic Errors (422)
# =============================================================================


class BusinessLogicError(DevHubError):
    """Business logic validation failed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="BUSINESS_LOGIC_ERROR",
            details=details,
            status_code=422,
        )


# =============================================================================
# Rate Limiting Errors (429)
# =============================================================================


class RateLimitError(DevHubError):
    """Rate limit exceeded."""

    def __init__(self, retry_after: Optional[int] = None) -> None:
        details = {}
        if retry_after:
            details["retry_after_seconds"] = retry_after

        super().__init__(
            message="Rate limit exceeded. Please try again later.",
            code="RATE_LIMIT_EXCEEDED",
            details=details,
            status_code=429,
        )


# =============================================================================
# Timeout Errors (504)
# =============================================================================


class TimeoutError(DevHubError):
    """Operation timed out."""

    def __init__(self, operation: str, timeout_seconds: int) -> None:
        super().__init__(
            message=f"Operation '{operation}' timed out after {timeout_seconds} seconds",
            code="TIMEOUT",
            details={"operation": operation, "timeout_seconds": timeout_seconds},
            status_code=504,
        )
