"""
Domain models for cost optimization recommendations.
Defines recommendations, their impact and the per-response summary.
"""
from typing import List, Dict, Any
from dataclasses import dataclass, field


# Allowed values (strict sets)
ALLOWED_CATEGORIES = {"COST", "PERFORMANCE", "SECURITY", "RELIABILITY"}
ALLOWED_ACTION_TYPES = {"RIGHTSIZE", "TERMINATE", "PURCHASE_COMMITMENT", "ADJUST_REQUESTS", "MODIFY"}
ALLOWED_PRIORITIES = {"LOW", "MEDIUM", "HIGH", "CRITICAL"}


@dataclass
class RecommendationFilter:
    """Selects the resource to produce recommendations for."""
    sku: str = ""
    resource_type: str = ""
    region: str = ""
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class RecommendedResource:
    """Resource a recommendation applies to."""
    provider: str
    resource_type: str
    region: str
    sku: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "provider": self.provider,
            "resource_type": self.resource_type,
            "region": self.region,
            "sku": self.sku,
        }


@dataclass
class RecommendationImpact:
    """Monthly cost impact of applying a recommendation."""
    estimated_savings: float
    current_cost: float
    projected_cost: float
    savings_percentage: float
    currency: str = "USD"
    projection_period: str = "monthly"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "estimated_savings": self.estimated_savings,
            "current_cost": self.current_cost,
            "projected_cost": self.projected_cost,
            "savings_percentage": self.savings_percentage,
            "currency": self.currency,
            "projection_period": self.projection_period,
        }


@dataclass
class Recommendation:
    """A single cost optimization recommendation."""
    id: str
    category: str  # Must be one of ALLOWED_CATEGORIES
    action_type: str  # Must be one of ALLOWED_ACTION_TYPES
    resource: RecommendedResource
    modification_type: str  # e.g. "generation_upgrade"
    current_config: Dict[str, str]
    recommended_config: Dict[str, str]
    impact: RecommendationImpact
    priority: str  # Must be one of ALLOWED_PRIORITIES
    confidence_score: float  # 0.0 - 1.0
    description: str
    reasoning: List[str]
    metadata: Dict[str, str] = field(default_factory=dict)
    source: str = "aws-public"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "category": self.category,
            "action_type": self.action_type,
            "resource": self.resource.to_dict(),
            "modification_type": self.modification_type,
            "current_config": self.current_config,
            "recommended_config": self.recommended_config,
            "impact": self.impact.to_dict(),
            "priority": self.priority,
            "confidence_score": self.confidence_score,
            "description": self.description,
            "reasoning": self.reasoning,
            "metadata": self.metadata,
            "source": self.source,
        }

    def validate(self) -> bool:
        """
        Validate that the recommendation is fully and consistently populated.

        Returns:
            True if valid, False otherwise
        """
        if not self.id or not self.description or not self.reasoning:
            return False
        if self.category not in ALLOWED_CATEGORIES:
            return False
        if self.action_type not in ALLOWED_ACTION_TYPES:
            return False
        if self.priority not in ALLOWED_PRIORITIES:
            return False
        if not 0.0 <= self.confidence_score <= 1.0:
            return False

        resource = self.resource
        if not all((resource.provider, resource.resource_type, resource.region, resource.sku)):
            return False
        if not self.current_config or not self.recommended_config:
            return False

        impact = self.impact
        if impact.current_cost < 0 or impact.projected_cost < 0:
            return False
        if impact.projected_cost > impact.current_cost:
            return False
        if impact.estimated_savings < 0:
            return False

        return True


@dataclass
class RecommendationSummary:
    """Aggregate view over one set of recommendations."""
    total_recommendations: int
    total_estimated_savings: float
    currency: str = "USD"
    projection_period: str = "monthly"
    count_by_category: Dict[str, int] = field(default_factory=dict)
    count_by_action_type: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_recommendations(
        cls,
        recommendations: List[Recommendation],
        currency: str = "USD"
    ) -> "RecommendationSummary":
        """Summarize recommendations (total savings and per-kind counts)."""
        by_category: Dict[str, int] = {}
        by_action: Dict[str, int] = {}
        total = 0.0
        for rec in recommendations:
            total += rec.impact.estimated_savings
            by_category[rec.category] = by_category.get(rec.category, 0) + 1
            by_action[rec.action_type] = by_action.get(rec.action_type, 0) + 1

        return cls(
            total_recommendations=len(recommendations),
            total_estimated_savings=total,
            currency=currency,
            count_by_category=by_category,
            count_by_action_type=by_action,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "total_recommendations": self.total_recommendations,
            "total_estimated_savings": self.total_estimated_savings,
            "currency": self.currency,
            "projection_period": self.projection_period,
            "count_by_category": self.count_by_category,
            "count_by_action_type": self.count_by_action_type,
        }
