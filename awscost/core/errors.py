"""
Error taxonomy for the pricing engine.
Caller-input errors carry structured details so the caller can self-correct.
"""
from typing import Dict, Any, Optional


class CostEngineError(Exception):
    """Base error carrying a stable code and structured details."""

    code = "INTERNAL"

    def __init__(self, message: str, details: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, str] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ARNParseError(CostEngineError):
    """Raised when a resource identifier string is malformed."""
    code = "INVALID_RESOURCE"


class MissingAttributeError(CostEngineError):
    """Raised when a required attribute (e.g. the SKU) is absent."""
    code = "INVALID_RESOURCE"

    def __init__(self, message: str, field: str, expected: str):
        super().__init__(message, {"field": field, "expected": expected})


class IncompleteResourceError(CostEngineError):
    """Raised when no usable resource identification was supplied."""
    code = "INVALID_RESOURCE"


class InvalidTimeRangeError(CostEngineError):
    """Raised when an actual-cost window is invalid."""
    code = "INVALID_RESOURCE"


class RegionMismatchError(CostEngineError):
    """Raised when a resource lives in a region this client does not price."""
    code = "UNSUPPORTED_REGION"

    def __init__(self, plugin_region: str, resource_region: str):
        super().__init__(
            "region mismatch",
            {
                "plugin_region": plugin_region,
                "resource_region": resource_region,
                "required_region": plugin_region,
            },
        )


class UnsupportedResourceError(CostEngineError):
    """Raised when a resource type has no pricing formula."""
    code = "UNSUPPORTED_RESOURCE"

    def __init__(self, resource_type: str, reason: Optional[str] = None):
        super().__init__(
            reason or f"Resource type '{resource_type}' is not supported for pricing",
            {"resource_type": resource_type},
        )


class PricingInitializationError(CostEngineError):
    """Raised when the pricing catalog cannot be built at all."""
    code = "PRICING_UNAVAILABLE"
