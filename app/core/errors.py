from __future__ import annotations


class EngineError(Exception):
    status_code = 500
    code = "E_INTERNAL"
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def as_detail(self) -> dict[str, object]:
        return {"code": self.code, "message": self.message}


class UnauthenticatedError(EngineError):
    status_code = 401
    code = "E_UNAUTHENTICATED"
    default_message = "Authentication required."


class NotFoundError(EngineError):
    status_code = 404
    code = "E_NOT_FOUND"
    default_message = "Not found."


class EntitlementDeniedError(EngineError):
    status_code = 403
    code = "PREMIUM_REQUIRED"
    default_message = "This feature requires a premium subscription."


class RateLimitedError(EngineError):
    status_code = 429
    code = "E_RATE_LIMITED"
    default_message = "Too many requests. Please try again later."

    def __init__(self, *, reset_at: int, message: str | None = None) -> None:
        super().__init__(message)
        self.reset_at = reset_at

    def as_detail(self) -> dict[str, object]:
        return {**super().as_detail(), "resetAt": self.reset_at}


class ValidationError(EngineError):
    status_code = 400
    code = "E_VALIDATION"
    default_message = "Invalid request."


class IntegrityViolationError(EngineError):
    status_code = 403
    code = "E_INTEGRITY"
    default_message = "Payment verification failed."


class TransientStoreError(EngineError):
    status_code = 500
    code = "E_STORE_UNAVAILABLE"


class GatewayError(EngineError):
    status_code = 500
    code = "E_GATEWAY"
    default_message = "Payment processing failed. Please try again."


class GatewayTimeoutError(GatewayError):
    code = "E_GATEWAY_TIMEOUT"
    default_message = "The payment provider did not answer in time. Please retry."


class GatewayNotFoundError(GatewayError):
    code = "E_GATEWAY_NOT_FOUND"


class AiServiceError(EngineError):
    status_code = 500
    code = "E_AI_UNAVAILABLE"
    default_message = "Resume generation failed. Please try again."
