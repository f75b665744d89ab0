"""
Error taxonomy for the bundle pricing engine.

Fatal errors carry an ``ErrorCode`` and bubble up to the caller; soft
warnings are plain records absorbed by the pipeline and surfaced only in
debug info.

Usage:
    from bundle_pricing.errors import NotFoundError, ErrorCode

    raise NotFoundError("No bundle covers 40 days", code=ErrorCode.BUNDLE_NOT_FOUND)
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes shared by the engine and the API adapter."""

    # Initialization errors
    RULES_UNAVAILABLE = "RULES_UNAVAILABLE"
    STRATEGY_NOT_FOUND = "STRATEGY_NOT_FOUND"

    # Catalog errors
    BUNDLE_NOT_FOUND = "BUNDLE_NOT_FOUND"

    # Validation errors
    INVALID_RULE = "INVALID_RULE"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Soft warnings
    MISSING_MARKUP = "MISSING_MARKUP"
    MISSING_FEE = "MISSING_FEE"
    UNSUPPORTED_ROUNDING = "UNSUPPORTED_ROUNDING"
    UNKNOWN_EVENT = "UNKNOWN_EVENT"

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


USER_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.RULES_UNAVAILABLE: "Unable to calculate a price right now. Please try again.",
    ErrorCode.STRATEGY_NOT_FOUND: "Unable to calculate a price right now. Please try again.",
    ErrorCode.BUNDLE_NOT_FOUND: "No plan is available for the requested destination and duration.",
    ErrorCode.INVALID_RULE: "Unable to calculate a price right now. Please try again.",
    ErrorCode.INVALID_REQUEST: "Your request contains invalid information. Please check and try again.",
    ErrorCode.INTERNAL_ERROR: "Unable to calculate a price right now. Please try again.",
}


class PricingEngineError(Exception):
    """Base exception for all fatal pricing errors."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INTERNAL_ERROR):
        self.message = message
        self.code = code
        super().__init__(message)

    @property
    def user_message(self) -> str:
        return USER_MESSAGES.get(self.code, USER_MESSAGES[ErrorCode.INTERNAL_ERROR])


class InitializationError(PricingEngineError):
    """Rules or strategy could not be loaded; the request is aborted."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.RULES_UNAVAILABLE):
        super().__init__(message, code)


class NotFoundError(PricingEngineError):
    """No bundle satisfies exact-or-next-longer selection."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.BUNDLE_NOT_FOUND):
        super().__init__(message, code)


class ValidationError(PricingEngineError):
    """A rule's event parameters, or a request, failed validation."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INVALID_RULE, errors: list[str] = None):
        super().__init__(message, code)
        self.errors = errors or []


@dataclass(frozen=True)
class SoftWarning:
    """A non-fatal anomaly absorbed with a zero/no-op default."""
    code: ErrorCode
    message: str
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message, "context": dict(self.context)}
