"""
Cost estimator service.
Computes projected monthly and actual (time-windowed) costs from the pricing indices.
"""
from typing import Dict, List, Optional, Tuple
from datetime import datetime, timezone
import logging
import math

from awscost.core.config import config
from awscost.core.errors import (
    InvalidTimeRangeError,
    RegionMismatchError,
    UnsupportedResourceError,
)
from awscost.domain.cost_models import ActualCostEstimate, CostEstimate, SupportsResult
from awscost.domain.resource_models import ResourceDescriptor, ResourceRequest
from awscost.pricing.pricing_client import PricingClient
from awscost.services.resource_resolver import ResourceResolver


logger = logging.getLogger(__name__)


HOURS_PER_MONTH = config.HOURS_PER_MONTH

# Pulumi type token prefix (lower-cased, without the class suffix) -> service
PULUMI_TYPE_SERVICES: Dict[str, str] = {
    "aws:ec2/instance": "ec2",
    "aws:ebs/volume": "ebs",
    "aws:rds/instance": "rds",
    "aws:s3/bucket": "s3",
    "aws:s3/bucketv2": "s3",
    "aws:lambda/function": "lambda",
    "aws:dynamodb/table": "dynamodb",
    "aws:eks/cluster": "eks",
    "aws:lb/loadbalancer": "elb",
    "aws:alb/loadbalancer": "elb",
}

SERVICE_ALIASES: Dict[str, str] = {
    "ec2": "ec2",
    "instance": "ec2",
    "ebs": "ebs",
    "volume": "ebs",
    "rds": "rds",
    "s3": "s3",
    "lambda": "lambda",
    "dynamodb": "dynamodb",
    "eks": "eks",
    "elb": "elb",
    "lb": "elb",
    "alb": "alb",
    "nlb": "nlb",
}

SUPPORTED_SERVICES = ("ec2", "ebs", "rds", "s3", "lambda", "dynamodb", "eks", "elb", "alb", "nlb")

EC2_PLATFORMS: Dict[str, str] = {
    "linux": "Linux",
    "windows": "Windows",
    "rhel": "RHEL",
    "redhat": "RHEL",
    "red hat": "RHEL",
    "red hat enterprise linux": "RHEL",
    "suse": "SUSE",
    "sles": "SUSE",
}

EC2_TENANCIES: Dict[str, str] = {
    "shared": "Shared",
    "default": "Shared",
    "dedicated": "Dedicated",
    "host": "Host",
}

LB_KINDS: Dict[str, str] = {
    "alb": "alb",
    "application": "alb",
    "nlb": "nlb",
    "network": "nlb",
}

# Capacity unit tag per load balancer class
LB_CAPACITY_TAGS: Dict[str, str] = {
    "alb": "lcu_per_hour",
    "nlb": "nlcu_per_hour",
}

DYNAMODB_PROVISIONED = {"provisioned"}
DYNAMODB_ON_DEMAND = {"on-demand", "on_demand", "ondemand", "pay_per_request", "pay-per-request"}

DEFAULT_RDS_STORAGE_GB = 20
DEFAULT_LAMBDA_MEMORY_MB = 128


def detect_service(resource_type: str) -> str:
    """
    Normalize a resource type into a service token.

    Accepts plain tokens ('ec2', 'EBS') and Pulumi type tokens
    ('aws:ec2/instance:Instance'). Unknown values are returned lower-cased.
    """
    normalized = (resource_type or "").strip().lower()
    if normalized.startswith("aws:") and "/" in normalized:
        prefix = normalized.rsplit(":", 1)[0] if normalized.count(":") >= 2 else normalized
        if prefix in PULUMI_TYPE_SERVICES:
            return PULUMI_TYPE_SERVICES[prefix]
        module = normalized[len("aws:"):].split("/", 1)[0]
        return SERVICE_ALIASES.get(module, module)
    return SERVICE_ALIASES.get(normalized, normalized)


def savings_percentage(current_cost: float, new_cost: float) -> float:
    """Percentage saved moving from current_cost to new_cost; 0 for a zero base."""
    if current_cost <= 0:
        return 0.0
    return (current_cost - new_cost) / current_cost * 100


def _usage_number(
    descriptor: ResourceDescriptor,
    names: Tuple[str, ...],
    default: float,
    label: str,
    notes: List[str]
) -> float:
    """
    Read a non-negative numeric usage tag, recording any default used.

    Args:
        descriptor: Resource whose tags are read
        names: Candidate tag keys in priority order
        default: Value when no usable tag exists
        label: Human-readable quantity name for the billing detail
        notes: Billing detail notes (mutated)

    Returns:
        Parsed tag value or default
    """
    raw = descriptor.tag(*names)
    if not raw:
        notes.append(f"{label} not specified, defaulted to {default:g}")
        return default
    try:
        value = float(raw)
    except ValueError:
        notes.append(f"{label} '{raw}' is not numeric, defaulted to {default:g}")
        return default
    if not math.isfinite(value) or value < 0:
        notes.append(f"{label} '{raw}' is invalid, defaulted to {default:g}")
        return default
    return value


def _detail(parts: List[str], notes: List[str]) -> str:
    return "; ".join(parts + notes)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def calculate_runtime_hours(start: datetime, end: datetime) -> float:
    """
    Hours between start and end.

    Raises:
        InvalidTimeRangeError: If end is before start
    """
    start_utc, end_utc = _as_utc(start), _as_utc(end)
    if end_utc < start_utc:
        raise InvalidTimeRangeError(
            "invalid time range: end_time must not be before start_time",
            {"field": "end", "expected": f"end >= start ({start_utc.isoformat()})"},
        )
    return (end_utc - start_utc).total_seconds() / 3600.0


class CostEstimator:
    """Service for estimating AWS resource costs from public on-demand pricing."""

    def __init__(
        self,
        pricing_client: PricingClient,
        resolver: Optional[ResourceResolver] = None,
        hours_per_month: float = HOURS_PER_MONTH,
        default_ebs_volume_gb: float = config.DEFAULT_EBS_VOLUME_GB
    ):
        """
        Initialize cost estimator.

        Args:
            pricing_client: Pricing client for the plugin's region
            resolver: Resource resolver (defaults to one using the client region)
            hours_per_month: Hours used to convert hourly rates to monthly cost
            default_ebs_volume_gb: Volume size assumed when no size tag is given
        """
        self.pricing = pricing_client
        self.region = pricing_client.region()
        self.resolver = resolver or ResourceResolver(self.region)
        self.hours_per_month = hours_per_month
        self.default_ebs_volume_gb = default_ebs_volume_gb

    def check_region(self, descriptor: ResourceDescriptor) -> None:
        """
        Raise RegionMismatchError unless the resource is in the client's region.
        """
        if descriptor.region != self.region:
            raise RegionMismatchError(self.region, descriptor.region)

    def supports(self, descriptor: ResourceDescriptor) -> SupportsResult:
        """
        Report whether a resource can be priced, without pricing it.

        Args:
            descriptor: Resource to check

        Returns:
            SupportsResult with a reason when unsupported
        """
        if (descriptor.provider or "").lower() != "aws":
            return SupportsResult(False, f"Provider '{descriptor.provider}' is not supported")
        if descriptor.region != self.region:
            return SupportsResult(
                False,
                f"Region '{descriptor.region}' is not supported by this plugin (serves {self.region})",
            )
        service = detect_service(descriptor.resource_type)
        if service not in SUPPORTED_SERVICES:
            return SupportsResult(
                False, f"Resource type '{descriptor.resource_type}' is not supported"
            )
        if service == "elb" and self._load_balancer_kind(service, descriptor) is None:
            return SupportsResult(
                False, f"Load balancer type '{descriptor.sku}' is not supported (alb or nlb)"
            )
        return SupportsResult(True)

    def estimate_projected(self, descriptor: ResourceDescriptor) -> CostEstimate:
        """
        Estimate steady-state monthly cost.

        Args:
            descriptor: Canonical resource descriptor

        Returns:
            CostEstimate; cost 0 with an explanation when no rate is published

        Raises:
            RegionMismatchError: If the resource is outside the client's region
            UnsupportedResourceError: If the provider or type cannot be priced
        """
        if (descriptor.provider or "").lower() != "aws":
            raise UnsupportedResourceError(
                descriptor.resource_type,
                f"Provider '{descriptor.provider}' is not supported",
            )
        self.check_region(descriptor)

        service = detect_service(descriptor.resource_type)
        if service == "ec2":
            return self._price_ec2(descriptor)
        if service == "ebs":
            return self._price_ebs(descriptor)
        if service == "rds":
            return self._price_rds(descriptor)
        if service == "s3":
            return self._price_s3(descriptor)
        if service == "lambda":
            return self._price_lambda(descriptor)
        if service == "dynamodb":
            return self._price_dynamodb(descriptor)
        if service == "eks":
            return self._price_eks(descriptor)
        if service in ("elb", "alb", "nlb"):
            return self._price_load_balancer(service, descriptor)

        raise UnsupportedResourceError(descriptor.resource_type)

    def estimate_actual(
        self,
        request: ResourceRequest,
        start: datetime,
        end: datetime
    ) -> ActualCostEstimate:
        """
        Estimate cost over [start, end] by pro-rating the projected monthly cost.

        actual = projected_monthly * (runtime_hours / 730)

        Args:
            request: Caller-supplied resource identification
            start: Window start
            end: Window end

        Returns:
            ActualCostEstimate flagged as a derived estimate

        Raises:
            InvalidTimeRangeError: If end is before start
            ARNParseError, MissingAttributeError, IncompleteResourceError:
                If the resource cannot be identified
            RegionMismatchError, UnsupportedResourceError: As for projected cost
        """
        runtime_hours = calculate_runtime_hours(start, end)
        descriptor = self.resolver.resolve(request)
        self.check_region(descriptor)

        if runtime_hours == 0:
            return ActualCostEstimate(
                start=start,
                end=end,
                cost=0.0,
                runtime_hours=0.0,
                billing_detail="Zero-length time window: no runtime, no cost",
                currency=self.pricing.currency(),
            )

        projected = self.estimate_projected(descriptor)
        actual_cost = projected.cost * (runtime_hours / self.hours_per_month)

        billing_detail = (
            f"{projected.billing_detail} | Derived estimate: "
            f"${projected.cost:.4f}/month × {runtime_hours:.2f} hours / "
            f"{self.hours_per_month:g} hours = ${actual_cost:.4f} "
            "(approximation from public on-demand rates, not measured billing)"
        )
        return ActualCostEstimate(
            start=start,
            end=end,
            cost=actual_cost,
            runtime_hours=runtime_hours,
            billing_detail=billing_detail,
            currency=self.pricing.currency(),
            projected=projected,
        )

    # ------------------------------------------------------------------
    # Per-service pricing
    # ------------------------------------------------------------------

    def _estimate(
        self,
        descriptor: ResourceDescriptor,
        cost: float,
        unit_price: float,
        pricing_unit: str,
        billing_detail: str
    ) -> CostEstimate:
        return CostEstimate(
            resource_type=descriptor.resource_type,
            sku=descriptor.sku,
            region=descriptor.region,
            cost=cost,
            billing_detail=billing_detail,
            unit_price=unit_price,
            pricing_unit=pricing_unit,
            currency=self.pricing.currency(),
        )

    def _not_found(self, descriptor: ResourceDescriptor, what: str, notes: List[str]) -> CostEstimate:
        logger.debug(f"No pricing found for {what} in {descriptor.region}")
        return self._estimate(
            descriptor,
            0.0,
            0.0,
            "month",
            _detail([f"No public on-demand pricing found for {what} in {descriptor.region}"], notes),
        )

    def _price_ec2(self, descriptor: ResourceDescriptor) -> CostEstimate:
        notes: List[str] = []
        raw_platform = descriptor.tag("platform", "operatingSystem", "operating_system", "os")
        if raw_platform:
            platform = EC2_PLATFORMS.get(raw_platform.lower(), raw_platform)
        else:
            platform = "Linux"
            notes.append("platform not specified, defaulted to Linux")

        raw_tenancy = descriptor.tag("tenancy")
        if raw_tenancy:
            tenancy = EC2_TENANCIES.get(raw_tenancy.lower(), raw_tenancy)
        else:
            tenancy = "Shared"
            notes.append("tenancy not specified, defaulted to Shared")

        hourly, found = self.pricing.ec2_on_demand_price_per_hour(descriptor.sku, platform, tenancy)
        if not found:
            return self._not_found(descriptor, f"EC2 {descriptor.sku} ({platform}, {tenancy})", notes)

        monthly = hourly * self.hours_per_month
        return self._estimate(
            descriptor,
            monthly,
            hourly,
            "hour",
            _detail(
                [f"On-demand {platform}, {tenancy} tenancy: {descriptor.sku} at "
                 f"${hourly:.4f}/hour × {self.hours_per_month:g} hours/month"],
                notes,
            ),
        )

    def _price_ebs(self, descriptor: ResourceDescriptor) -> CostEstimate:
        notes: List[str] = []
        size_gb = _usage_number(
            descriptor, ("size", "volume_size", "size_gb"),
            self.default_ebs_volume_gb, "volume size (GB)", notes,
        )
        price, found = self.pricing.ebs_price_per_gb_month(descriptor.sku)
        if not found:
            return self._not_found(descriptor, f"EBS volume type {descriptor.sku}", notes)

        monthly = price * size_gb
        return self._estimate(
            descriptor,
            monthly,
            price,
            "GB-month",
            _detail([f"EBS {descriptor.sku} storage: {size_gb:g} GB × ${price:.4f}/GB-month"], notes),
        )

    def _price_rds(self, descriptor: ResourceDescriptor) -> CostEstimate:
        notes: List[str] = []
        engine = descriptor.tag("engine", "databaseEngine")
        if not engine:
            engine = "mysql"
            notes.append("engine not specified, defaulted to mysql")

        hourly, found = self.pricing.rds_on_demand_price_per_hour(descriptor.sku, engine)
        if not found:
            return self._not_found(descriptor, f"RDS {descriptor.sku} ({engine}, Single-AZ)", notes)

        storage_type = descriptor.tag("storage_type", "storageType")
        if not storage_type:
            storage_type = "gp2"
            notes.append("storage type not specified, defaulted to gp2")
        storage_gb = _usage_number(
            descriptor, ("allocated_storage", "storage_size", "storage_gb"),
            DEFAULT_RDS_STORAGE_GB, "allocated storage (GB)", notes,
        )

        instance_monthly = hourly * self.hours_per_month
        parts = [
            f"RDS {engine} Single-AZ {descriptor.sku} at ${hourly:.4f}/hour × "
            f"{self.hours_per_month:g} hours/month"
        ]
        storage_price, storage_found = self.pricing.rds_storage_price_per_gb_month(engine, storage_type)
        if storage_found:
            storage_monthly = storage_price * storage_gb
            parts.append(f"storage {storage_type}: {storage_gb:g} GB × ${storage_price:.4f}/GB-month")
        else:
            storage_monthly = 0.0
            parts.append(f"no storage pricing found for {storage_type}, storage not included")

        return self._estimate(
            descriptor, instance_monthly + storage_monthly, hourly, "hour", _detail(parts, notes)
        )

    def _price_s3(self, descriptor: ResourceDescriptor) -> CostEstimate:
        notes: List[str] = []
        storage_class = descriptor.sku or "STANDARD"
        size_gb = _usage_number(
            descriptor, ("size_gb", "storage_gb", "size"), 0, "storage size (GB)", notes
        )
        price, found = self.pricing.s3_price_per_gb_month(storage_class)
        if not found:
            return self._not_found(descriptor, f"S3 storage class {storage_class}", notes)

        return self._estimate(
            descriptor,
            price * size_gb,
            price,
            "GB-month",
            _detail([f"S3 {storage_class}: {size_gb:g} GB × ${price:.4f}/GB-month"], notes),
        )

    def _price_lambda(self, descriptor: ResourceDescriptor) -> CostEstimate:
        notes: List[str] = []
        architecture = descriptor.tag("architecture", "arch")
        if not architecture:
            architecture = "x86_64"
            notes.append("architecture not specified, defaulted to x86_64")

        default_memory = float(descriptor.sku) if descriptor.sku.isdigit() else DEFAULT_LAMBDA_MEMORY_MB
        memory_mb = _usage_number(
            descriptor, ("memory_mb", "memory_size", "memory"), default_memory, "memory (MB)", notes
        )
        requests = _usage_number(
            descriptor, ("requests_per_month", "requests"), 0, "requests per month", notes
        )
        duration_ms = _usage_number(
            descriptor, ("duration_ms", "avg_duration_ms"), 0, "average duration (ms)", notes
        )

        request_price, request_found = self.pricing.lambda_price_per_request(architecture)
        gb_second_price, duration_found = self.pricing.lambda_price_per_gb_second(architecture)
        if not request_found or not duration_found:
            return self._not_found(descriptor, f"Lambda ({architecture})", notes)

        gb_seconds = requests * (duration_ms / 1000.0) * (memory_mb / 1024.0)
        request_cost = requests * request_price
        duration_cost = gb_seconds * gb_second_price
        return self._estimate(
            descriptor,
            request_cost + duration_cost,
            gb_second_price,
            "GB-second",
            _detail(
                [f"Lambda {architecture} requests: {requests:g} × ${request_price:.10f} = ${request_cost:.4f}",
                 f"duration: {gb_seconds:g} GB-seconds × ${gb_second_price:.10f} = ${duration_cost:.4f}"],
                notes,
            ),
        )

    def _price_dynamodb(self, descriptor: ResourceDescriptor) -> CostEstimate:
        notes: List[str] = []
        mode = (descriptor.sku or "").lower()
        if mode not in DYNAMODB_PROVISIONED and mode not in DYNAMODB_ON_DEMAND:
            mode = descriptor.tag("billing_mode").lower()
            if mode not in DYNAMODB_PROVISIONED and mode not in DYNAMODB_ON_DEMAND:
                mode = "on-demand"
                notes.append("billing mode not specified, defaulted to on-demand")
        provisioned = mode in DYNAMODB_PROVISIONED

        rates, found = self.pricing.dynamodb_rates()
        if not found:
            return self._not_found(descriptor, "DynamoDB", notes)

        parts: List[str] = []
        total = 0.0
        if provisioned:
            rcu = _usage_number(descriptor, ("read_capacity_units", "rcu"), 0, "read capacity units", notes)
            wcu = _usage_number(descriptor, ("write_capacity_units", "wcu"), 0, "write capacity units", notes)
            for label, units, rate in (("RCU", rcu, rates.provisioned_rcu_hour),
                                       ("WCU", wcu, rates.provisioned_wcu_hour)):
                if rate is None:
                    parts.append(f"no provisioned {label} pricing found, not included")
                    continue
                cost = units * rate * self.hours_per_month
                total += cost
                parts.append(
                    f"provisioned {units:g} {label} × ${rate:.5f}/hour × {self.hours_per_month:g} hours = ${cost:.4f}"
                )
        else:
            reads = _usage_number(
                descriptor, ("read_requests_per_month", "read_requests"), 0, "read requests per month", notes
            )
            writes = _usage_number(
                descriptor, ("write_requests_per_month", "write_requests"), 0, "write requests per month", notes
            )
            for label, units, rate in (("reads", reads, rates.on_demand_read),
                                       ("writes", writes, rates.on_demand_write)):
                if rate is None:
                    parts.append(f"no on-demand {label} pricing found, not included")
                    continue
                cost = units * rate
                total += cost
                parts.append(f"on-demand {units:g} {label} × ${rate:.8f} = ${cost:.4f}")

        storage_gb = _usage_number(descriptor, ("storage_gb", "size_gb"), 0, "storage (GB)", notes)
        if rates.storage_gb_month is not None:
            storage_cost = storage_gb * rates.storage_gb_month
            total += storage_cost
            parts.append(f"storage {storage_gb:g} GB × ${rates.storage_gb_month:.4f}/GB-month = ${storage_cost:.4f}")
        else:
            parts.append("no storage pricing found, not included")

        return self._estimate(
            descriptor, total, 0.0, "month", _detail([f"DynamoDB {mode}"] + parts, notes)
        )

    def _price_eks(self, descriptor: ResourceDescriptor) -> CostEstimate:
        notes: List[str] = []
        support = descriptor.tag("support_type", "support").lower()
        extended = support == "extended"
        if not support:
            notes.append("support type not specified, defaulted to standard")
        tier = "extended" if extended else "standard"

        hourly, found = self.pricing.eks_cluster_price_per_hour(extended_support=extended)
        if not found:
            return self._not_found(descriptor, f"EKS cluster ({tier} support)", notes)

        return self._estimate(
            descriptor,
            hourly * self.hours_per_month,
            hourly,
            "hour",
            _detail(
                [f"EKS cluster control plane ({tier} support) at ${hourly:.4f}/hour × "
                 f"{self.hours_per_month:g} hours/month"],
                notes,
            ),
        )

    @staticmethod
    def _load_balancer_kind(service: str, descriptor: ResourceDescriptor) -> Optional[str]:
        if service in ("alb", "nlb"):
            return service
        return LB_KINDS.get((descriptor.sku or "").strip().lower())

    def _price_load_balancer(self, service: str, descriptor: ResourceDescriptor) -> CostEstimate:
        kind = self._load_balancer_kind(service, descriptor)
        if kind is None:
            raise UnsupportedResourceError(
                descriptor.resource_type,
                f"Load balancer type '{descriptor.sku}' is not supported (alb or nlb)",
            )

        notes: List[str] = []
        unit_label = "LCU" if kind == "alb" else "NLCU"
        capacity_units = _usage_number(
            descriptor, (LB_CAPACITY_TAGS[kind], "capacity_units"), 0, f"{unit_label} per hour", notes
        )

        rates, found = self.pricing.load_balancer_rates(kind)
        if not found:
            return self._not_found(descriptor, f"{kind.upper()} load balancer", notes)

        fixed_monthly = rates.fixed_hourly * self.hours_per_month
        capacity_monthly = rates.capacity_unit_hourly * capacity_units * self.hours_per_month
        return self._estimate(
            descriptor,
            fixed_monthly + capacity_monthly,
            rates.fixed_hourly,
            "hour",
            _detail(
                [f"{kind.upper()} fixed ${rates.fixed_hourly:.4f}/hour × {self.hours_per_month:g} hours "
                 f"= ${fixed_monthly:.4f}",
                 f"{capacity_units:g} {unit_label}/hour × ${rates.capacity_unit_hourly:.4f}/{unit_label}-hour × "
                 f"{self.hours_per_month:g} hours = ${capacity_monthly:.4f}"],
                notes,
            ),
        )
