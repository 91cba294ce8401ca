"""
Recommendation engine.
Produces cost optimization suggestions by comparing on-demand rates in the pricing indices.
"""
from typing import Dict, List, Optional, Tuple
import logging
import time
import uuid

from awscost.core.config import config
from awscost.domain.recommendation_models import (
    Recommendation,
    RecommendationFilter,
    RecommendationImpact,
    RecommendationSummary,
    RecommendedResource,
)
from awscost.pricing.pricing_client import PricingClient
from awscost.services.cost_estimator import HOURS_PER_MONTH, detect_service, savings_percentage


logger = logging.getLogger(__name__)


SOURCE = "aws-public"

MOD_TYPE_GENERATION_UPGRADE = "generation_upgrade"
MOD_TYPE_GRAVITON = "graviton_migration"
MOD_TYPE_VOLUME_UPGRADE = "volume_type_upgrade"

CONFIDENCE_HIGH = 0.9
CONFIDENCE_MEDIUM = 0.7

# Same architecture, newer generation
GENERATION_UPGRADES: Dict[str, str] = {
    "t2": "t3",
    "m4": "m5",
    "c4": "c5",
    "r4": "r5",
    "i3": "i4i",
    "m5": "m6i",
    "c5": "c6i",
    "r5": "r6i",
}

# x86_64 family -> ARM (Graviton) equivalent
GRAVITON_EQUIVALENTS: Dict[str, str] = {
    "t3": "t4g",
    "m5": "m6g",
    "c5": "c6g",
    "r5": "r6g",
    "m6i": "m7g",
    "c6i": "c7g",
    "r6i": "r7g",
}


def split_instance_type(instance_type: str) -> Tuple[str, str]:
    """
    Split an instance type into family and size ('m5.large' -> ('m5', 'large')).

    Returns ('', '') when there is no size part.
    """
    family, sep, size = (instance_type or "").partition(".")
    if not sep or not family or not size:
        return "", ""
    return family, size


def _volume_size_gb(tags: Dict[str, str], default: int) -> int:
    for key in ("size", "volume_size"):
        if key in tags:
            try:
                parsed = int(tags[key])
            except (TypeError, ValueError):
                return default
            return parsed if parsed > 0 else default
    return default


class RecommendationEngine:
    """Generates generation-upgrade, Graviton and EBS volume recommendations."""

    def __init__(
        self,
        pricing_client: PricingClient,
        hours_per_month: float = HOURS_PER_MONTH,
        default_volume_gb: int = config.RECOMMENDATION_EBS_VOLUME_GB
    ):
        self.pricing = pricing_client
        self.hours_per_month = hours_per_month
        self.default_volume_gb = default_volume_gb

    def get_recommendations(
        self,
        resource_filter: Optional[RecommendationFilter]
    ) -> Tuple[List[Recommendation], RecommendationSummary]:
        """
        Generate recommendations for the filtered resource.

        Args:
            resource_filter: Resource selection; None or an empty sku yields no recommendations

        Returns:
            Tuple of (recommendations, summary)
        """
        started = time.monotonic()
        candidates: List[Optional[Recommendation]] = []

        if resource_filter is not None and resource_filter.sku:
            region = resource_filter.region or self.pricing.region()
            service = detect_service(resource_filter.resource_type)

            if region != self.pricing.region():
                logger.debug(
                    f"No recommendations for {resource_filter.sku} in {region}: "
                    f"pricing loaded for {self.pricing.region()}"
                )
            elif service == "ec2":
                candidates.append(self._generation_upgrade(resource_filter.sku, region))
                candidates.append(self._graviton_migration(resource_filter.sku, region))
            elif service == "ebs":
                candidates.append(
                    self._volume_upgrade(resource_filter.sku, region, resource_filter.tags or {})
                )

        recommendations: List[Recommendation] = []
        for rec in candidates:
            if rec is None:
                continue
            if not rec.validate():
                logger.debug(f"Dropping invalid {rec.modification_type} recommendation {rec.id}")
                continue
            recommendations.append(rec)

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Generated {len(recommendations)} recommendations in {duration_ms}ms")

        summary = RecommendationSummary.from_recommendations(
            recommendations, currency=self.pricing.currency()
        )
        return recommendations, summary

    def _impact(self, current: float, projected: float) -> RecommendationImpact:
        return RecommendationImpact(
            estimated_savings=current - projected,
            current_cost=current,
            projected_cost=projected,
            savings_percentage=savings_percentage(current, projected),
            currency=self.pricing.currency(),
        )

    def _ec2_monthly_pair(self, current_type: str, new_type: str) -> Optional[Tuple[float, float]]:
        """Monthly Linux/Shared costs for both types, or None unless new <= current."""
        current_price, found = self.pricing.ec2_on_demand_price_per_hour(current_type, "Linux", "Shared")
        if not found:
            return None
        new_price, found = self.pricing.ec2_on_demand_price_per_hour(new_type, "Linux", "Shared")
        if not found or new_price > current_price:
            return None
        return current_price * self.hours_per_month, new_price * self.hours_per_month

    def _generation_upgrade(self, instance_type: str, region: str) -> Optional[Recommendation]:
        family, size = split_instance_type(instance_type)
        new_family = GENERATION_UPGRADES.get(family)
        if new_family is None:
            return None
        new_type = f"{new_family}.{size}"

        costs = self._ec2_monthly_pair(instance_type, new_type)
        if costs is None:
            return None
        current_monthly, new_monthly = costs

        reasoning = [
            f"Newer {new_family} instances offer better performance",
            "Drop-in replacement with no architecture changes required",
        ]
        graviton_family = GRAVITON_EQUIVALENTS.get(new_family)
        if graviton_family:
            reasoning.append(
                f"Alternative: consider {graviton_family}.{size} for ARM compatibility "
                "(~20% additional savings)"
            )

        return Recommendation(
            id=str(uuid.uuid4()),
            category="COST",
            action_type="MODIFY",
            resource=RecommendedResource("aws", "ec2", region, instance_type),
            modification_type=MOD_TYPE_GENERATION_UPGRADE,
            current_config={"instance_type": instance_type},
            recommended_config={"instance_type": new_type},
            impact=self._impact(current_monthly, new_monthly),
            priority="MEDIUM",
            confidence_score=CONFIDENCE_HIGH,
            description=(
                f"Upgrade from {instance_type} to {new_type} for better performance "
                "at same or lower cost"
            ),
            reasoning=reasoning,
            source=SOURCE,
        )

    def _graviton_migration(self, instance_type: str, region: str) -> Optional[Recommendation]:
        family, size = split_instance_type(instance_type)
        graviton_family = GRAVITON_EQUIVALENTS.get(family)
        if graviton_family is None:
            return None
        graviton_type = f"{graviton_family}.{size}"

        costs = self._ec2_monthly_pair(instance_type, graviton_type)
        if costs is None:
            return None
        current_monthly, graviton_monthly = costs
        impact = self._impact(current_monthly, graviton_monthly)

        return Recommendation(
            id=str(uuid.uuid4()),
            category="COST",
            action_type="MODIFY",
            resource=RecommendedResource("aws", "ec2", region, instance_type),
            modification_type=MOD_TYPE_GRAVITON,
            current_config={"instance_type": instance_type, "architecture": "x86_64"},
            recommended_config={"instance_type": graviton_type, "architecture": "arm64"},
            impact=impact,
            priority="LOW",
            confidence_score=CONFIDENCE_MEDIUM,
            description=(
                f"Migrate from {instance_type} to {graviton_type} (Graviton) for "
                f"~{impact.savings_percentage:.0f}% cost savings"
            ),
            reasoning=[
                "Graviton instances are typically ~20% cheaper with comparable performance",
                "Requires validation that application supports ARM architecture",
            ],
            metadata={
                "architecture_change": "x86_64 -> arm64",
                "requires_validation": "Application must support ARM architecture",
            },
            source=SOURCE,
        )

    def _volume_upgrade(
        self,
        volume_type: str,
        region: str,
        tags: Dict[str, str]
    ) -> Optional[Recommendation]:
        if volume_type != "gp2":
            return None

        size_gb = _volume_size_gb(tags, self.default_volume_gb)

        gp2_price, found = self.pricing.ebs_price_per_gb_month("gp2")
        if not found:
            return None
        gp3_price, found = self.pricing.ebs_price_per_gb_month("gp3")
        if not found or gp3_price > gp2_price:
            return None

        impact = self._impact(gp2_price * size_gb, gp3_price * size_gb)
        return Recommendation(
            id=str(uuid.uuid4()),
            category="COST",
            action_type="MODIFY",
            resource=RecommendedResource("aws", "ebs", region, volume_type),
            modification_type=MOD_TYPE_VOLUME_UPGRADE,
            current_config={"volume_type": "gp2", "size_gb": str(size_gb)},
            recommended_config={"volume_type": "gp3", "size_gb": str(size_gb)},
            impact=impact,
            priority="MEDIUM",
            confidence_score=CONFIDENCE_HIGH,
            description=(
                f"Upgrade {size_gb}GB gp2 volume to gp3 for "
                f"~{impact.savings_percentage:.0f}% cost savings"
            ),
            reasoning=[
                "gp3 volumes are ~20% cheaper than gp2",
                "gp3 provides better baseline performance (3000 IOPS, 125 MB/s)",
                "API-compatible change with no data migration required",
            ],
            metadata={
                "baseline_iops": "gp2: 100 IOPS/GB, gp3: 3000 IOPS (included)",
                "baseline_throughput": "gp2: 128-250 MB/s, gp3: 125 MB/s (included)",
            },
            source=SOURCE,
        )
