"""
Custom Exception Hierarchy

Provides structured exceptions for consistent error handling across the application.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    CONFIGURATION_ERROR = "ERR_1007"

    # Webhook errors (2xxx)
    WEBHOOK_SIGNATURE_MISSING = "ERR_2001"
    WEBHOOK_SIGNATURE_INVALID = "ERR_2002"
    WEBHOOK_PAYLOAD_INVALID = "ERR_2003"
    WEBHOOK_STRICT_STEP_FAILED = "ERR_2004"
    IDEMPOTENCY_ABORT_FAILED = "ERR_2005"

    # External service errors (5xxx)
    FULFILLMENT_ERROR = "ERR_5001"
    PROVIDER_ERROR = "ERR_5002"
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"
    EXTERNAL_SERVICE_TIMEOUT = "ERR_5004"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ConfigurationError(AppException):
    """Raised when a required secret or URL is not configured"""

    def __init__(self, missing: list[str]):
        super().__init__(
            message=f"Server misconfigured: missing {', '.join(missing)}",
            error_code=ErrorCode.CONFIGURATION_ERROR,
            status_code=500,
            details={"missing": missing}
        )


class WebhookException(AppException):
    """Base exception for inbound webhook rejections"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 400,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details
        )


class WebhookSignatureError(WebhookException):
    """Raised when the signature header is missing or does not verify"""

    def __init__(self, message: str, missing: bool = False):
        super().__init__(
            message=message,
            error_code=(
                ErrorCode.WEBHOOK_SIGNATURE_MISSING if missing
                else ErrorCode.WEBHOOK_SIGNATURE_INVALID
            ),
        )


class WebhookPayloadError(WebhookException):
    """Raised when a verified body is not a usable event envelope"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.WEBHOOK_PAYLOAD_INVALID,
            details=details
        )


class StrictStepFailedError(WebhookException):
    """Raised when a strict pipeline step fails; the provider must redeliver"""

    def __init__(self, step: str, event_id: str, reason: str | None = None):
        super().__init__(
            message=f"Strict step '{step}' failed for event {event_id}",
            error_code=ErrorCode.WEBHOOK_STRICT_STEP_FAILED,
            status_code=500,
            details={"step": step, "event_id": event_id, "reason": reason}
        )
        self.step = step


class IdempotencyAbortError(AppException):
    """Raised when an event lock could not be released after a failure"""

    def __init__(self, event_id: str, reason: str):
        super().__init__(
            message=f"Could not release event lock for {event_id}",
            error_code=ErrorCode.IDEMPOTENCY_ABORT_FAILED,
            status_code=500,
            details={"event_id": event_id, "reason": reason}
        )


class ExternalServiceException(AppException):
    """Base exception for external service errors"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        # Upstream failures surface as 500 on the webhook path, never 502/503
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=500,
            details=details
        )
        self.details["service"] = service_name


class FulfillmentError(ExternalServiceException):
    """Raised when the Fulfillment Service rejects or fails a call"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="fulfillment",
            message=f"Fulfillment API error: {message}",
            error_code=ErrorCode.FULFILLMENT_ERROR,
            details=details
        )

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        message: str | None = None,
        max_response_chars: int = 500
    ) -> "FulfillmentError":
        """
        Build a FulfillmentError from an HTTP response.

        Args:
            operation: Endpoint name (alias, onboard-notify, orders)
            response: Response object (e.g. httpx.Response)
            message: Custom message (built from the status code if omitted)
            max_response_chars: Truncation limit for the stored response body
        """
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            message=message or f"{operation} returned status {status_code}",
            details={
                "operation": operation,
                "status_code": status_code,
                "response_text": response_text[:max_response_chars],
            },
        )


class ProviderLookupError(ExternalServiceException):
    """Raised when a payment-provider lookup fails"""

    def __init__(self, operation: str, message: str):
        super().__init__(
            service_name="stripe",
            message=f"Stripe lookup '{operation}' failed: {message}",
            error_code=ErrorCode.PROVIDER_ERROR,
            details={"operation": operation}
        )


class ServiceTimeoutError(ExternalServiceException):
    """Raised when external service times out"""

    def __init__(self, service_name: str, timeout_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} request timed out after {timeout_seconds}s",
            error_code=ErrorCode.EXTERNAL_SERVICE_TIMEOUT,
            details={"timeout_seconds": timeout_seconds}
        )


class CircuitBreakerOpenError(ExternalServiceException):
    """Raised when circuit breaker is open"""

    def __init__(self, service_name: str, retry_after_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} is temporarily unavailable (circuit breaker open)",
            error_code=ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
            details={"retry_after_seconds": retry_after_seconds}
        )
