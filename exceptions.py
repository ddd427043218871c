"""
Engine Exceptions

Error taxonomy shared by every component.

- NotFoundError: unknown subscriber or cohort id, propagated to the caller
- ValidationError: malformed caller input, propagated to the caller
- ExternalProviderError: AI or market-context call failed, always recovered locally
"""
from datetime import datetime
from typing import Optional, Dict, Any


class EngineError(Exception):
    """
    Base exception for the cohort engine.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional error details
        cause: Underlying exception, if any
    """

    def __init__(
        self,
        message: str,
        error_code: str = "ENGINE_ERROR",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.utcnow()

        full_message = message
        if cause:
            full_message = f"{message} (caused by: {type(cause).__name__}: {cause})"

        super().__init__(full_message)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "error": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.details:
            result["details"] = self.details
        return result


class NotFoundError(EngineError):
    """Unknown subscriber or cohort."""

    def __init__(self, resource: str, resource_id: str, tenant_id: Optional[str] = None):
        details = {"resource": resource, "id": resource_id}
        if tenant_id:
            details["tenant_id"] = tenant_id
        super().__init__(
            message=f"{resource.capitalize()} '{resource_id}' not found",
            error_code="NOT_FOUND",
            details=details,
        )
        self.resource = resource
        self.resource_id = resource_id


class ValidationError(EngineError):
    """Caller input violates the contract (e.g. empty content)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details={"field": field} if field else None,
        )
        self.field = field


class ExternalProviderError(EngineError):
    """AI generation or market-context call failed or timed out."""

    def __init__(self, message: str, provider: str = "ai", cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code="EXTERNAL_PROVIDER_ERROR",
            details={"provider": provider},
            cause=cause,
        )
        self.provider = provider


class ResponseParseError(ExternalProviderError):
    """Provider answered, but the answer could not be turned into a typed result."""

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message=message, provider="ai")
        self.error_code = "RESPONSE_PARSE_ERROR"
        self.raw_response = raw_response
