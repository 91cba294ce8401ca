"""
Domain models for cost estimation.
Defines projected and actual (time-windowed) cost results.
"""
from typing import Dict, Any, Optional
from dataclasses import dataclass
from datetime import datetime


@dataclass
class CostEstimate:
    """Projected steady-state monthly cost for one resource."""
    resource_type: str
    sku: str
    region: str
    cost: float
    billing_detail: str
    unit_price: float = 0.0
    pricing_unit: str = "month"
    currency: str = "USD"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "resource_type": self.resource_type,
            "sku": self.sku,
            "region": self.region,
            "cost_per_month": self.cost,
            "unit_price": self.unit_price,
            "pricing_unit": self.pricing_unit,
            "currency": self.currency,
            "billing_detail": self.billing_detail,
        }


@dataclass
class ActualCostEstimate:
    """
    Cost over a time window, derived from the projected monthly cost.

    This is an approximation (projected x runtime / 730), never measured
    billing data.
    """
    start: datetime
    end: datetime
    cost: float
    runtime_hours: float
    billing_detail: str
    currency: str = "USD"
    usage_unit: str = "hours"
    source: str = "aws-public-fallback"
    estimated: bool = True
    projected: Optional[CostEstimate] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "cost": self.cost,
            "currency": self.currency,
            "usage_amount": self.runtime_hours,
            "usage_unit": self.usage_unit,
            "source": self.source,
            "estimated": self.estimated,
            "billing_detail": self.billing_detail,
        }


@dataclass
class SupportsResult:
    """Whether a resource type can be priced."""
    supported: bool
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "supported": self.supported,
            "reason": self.reason,
        }
