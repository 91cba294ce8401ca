"""
AWS offer file ingestion and index builder.
Turns raw Price List bulk offer files into compact, read-only pricing indices.

Offer files are large (the EC2 offer of a single region holds on the order of
10^5 products), so each one is scanned exactly once: every product is turned
into a RawCatalogEntry, run through its service's filter, and the surviving
on-demand rates are stored under a normalized composite key.

Expected inputs (either layout works):
    pricing-cache/aws/
        AmazonEC2/us-east-1.json.gz
        AmazonRDS/us-east-1.json
        ...
    or a single combined file whose products carry a 'servicecode' attribute:
        aws_pricing_us-east-1.json.gz
"""
import gzip
import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from awscost.core.errors import PricingInitializationError
from awscost.pricing.aws_region_map import get_aws_pricing_location

logger = logging.getLogger(__name__)


SERVICE_EC2 = "AmazonEC2"
SERVICE_RDS = "AmazonRDS"
SERVICE_S3 = "AmazonS3"
SERVICE_LAMBDA = "AWSLambda"
SERVICE_EKS = "AmazonEKS"
SERVICE_DYNAMODB = "AmazonDynamoDB"
SERVICE_ELB = "AWSELB"

SUPPORTED_SERVICE_CODES: Tuple[str, ...] = (
    SERVICE_EC2,
    SERVICE_RDS,
    SERVICE_S3,
    SERVICE_LAMBDA,
    SERVICE_EKS,
    SERVICE_DYNAMODB,
    SERVICE_ELB,
)

# Canonical casing for the EC2 platforms kept in the compute index
EC2_PLATFORMS: Dict[str, str] = {
    "linux": "Linux",
    "windows": "Windows",
    "rhel": "RHEL",
    "suse": "SUSE",
}

LAMBDA_GROUPS: Dict[str, Tuple[str, str]] = {
    "aws-lambda-requests": ("x86_64", "requests"),
    "aws-lambda-duration": ("x86_64", "duration"),
    "aws-lambda-requests-arm": ("arm64", "requests"),
    "aws-lambda-duration-arm": ("arm64", "duration"),
}

DYNAMODB_STORAGE_VOLUME = "amazon dynamodb - indexed datastore"

LB_FAMILIES: Dict[str, str] = {
    "load balancer-application": "alb",
    "load balancer-network": "nlb",
}


@dataclass(frozen=True)
class RawCatalogEntry:
    """One vendor SKU with its (optional) on-demand price term."""
    sku: str
    service_code: str
    product_family: str
    attributes: Mapping[str, str]
    price_unit: str = ""
    price_per_unit: Optional[str] = None

    def attr(self, name: str) -> str:
        """Return an attribute value, or '' when absent."""
        return self.attributes.get(name, "") or ""


@dataclass
class ServiceBuildStats:
    """Diagnostics for one service's index build."""
    seen: int = 0
    kept: int = 0
    filtered: int = 0
    unpriced: int = 0
    malformed: int = 0

    def to_dict(self) -> Dict[str, int]:
        """Convert to dictionary for JSON serialization."""
        return {
            "seen": self.seen,
            "kept": self.kept,
            "filtered": self.filtered,
            "unpriced": self.unpriced,
            "malformed": self.malformed,
        }


@dataclass(frozen=True)
class DynamoDBRates:
    """DynamoDB prices uniform across a region (None when not published)."""
    on_demand_read: Optional[float] = None  # per read request unit
    on_demand_write: Optional[float] = None  # per write request unit
    storage_gb_month: Optional[float] = None
    provisioned_rcu_hour: Optional[float] = None
    provisioned_wcu_hour: Optional[float] = None


@dataclass(frozen=True)
class LoadBalancerRates:
    """Fixed hourly rate plus capacity-unit hourly rate for one LB class."""
    fixed_hourly: Optional[float] = None
    capacity_unit_hourly: Optional[float] = None


@dataclass(frozen=True)
class CatalogIndices:
    """All pricing indices for one region. Never mutated after build."""
    region: str
    ec2: Mapping[Tuple[str, str, str], float]
    ebs: Mapping[str, float]
    rds_instance: Mapping[Tuple[str, str, str], float]
    rds_storage: Mapping[Tuple[str, str], float]
    s3: Mapping[str, float]
    lambda_rates: Mapping[Tuple[str, str], float]
    eks: Mapping[str, float]
    dynamodb: DynamoDBRates
    load_balancers: Mapping[str, LoadBalancerRates]
    stats: Mapping[str, ServiceBuildStats] = field(default_factory=dict)
    publication_date: Optional[str] = None

    @property
    def total_rates(self) -> int:
        return sum(stat.kept for stat in self.stats.values())


def normalize_key(value: str) -> str:
    """Normalize an attribute value for case-insensitive exact matching."""
    return (value or "").strip().lower()


def parse_price(value: Any) -> Optional[float]:
    """
    Strictly parse a price-per-unit string.

    Args:
        value: Raw price string from the offer file (e.g. '0.0104000000')

    Returns:
        Non-negative finite price, or None if the value is not a valid price
    """
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        price = float(value)
    except ValueError:
        return None
    if not math.isfinite(price) or price < 0:
        return None
    return price


def _range_start(dimension: Mapping[str, Any]) -> float:
    begin = parse_price(dimension.get("beginRange"))
    return begin if begin is not None else 0.0


def select_on_demand_price(term_entries: Any) -> Optional[Tuple[str, str]]:
    """
    Pick one (unit, price string) pair from an SKU's on-demand terms.

    Dimensions are visited in a fixed order (term code, then beginRange, then
    dimension code). The first positive price wins so free-tier dimensions
    are skipped; a zero price is used only when nothing positive exists.

    Args:
        term_entries: terms['OnDemand'][sku] from the offer file

    Returns:
        (unit, price string), or None if the SKU has no price dimension
    """
    if not isinstance(term_entries, dict):
        return None

    dimensions: List[Tuple[str, float, str, Mapping[str, Any]]] = []
    for term_code, term_data in term_entries.items():
        if not isinstance(term_data, dict):
            continue
        price_dimensions = term_data.get("priceDimensions")
        if not isinstance(price_dimensions, dict):
            continue
        for dimension_code, dimension in price_dimensions.items():
            if isinstance(dimension, dict):
                dimensions.append((term_code, _range_start(dimension), dimension_code, dimension))

    if not dimensions:
        return None
    dimensions.sort(key=lambda item: (item[0], item[1], item[2]))

    zero_candidate = None
    first_raw = None
    for _term_code, _begin, _code, dimension in dimensions:
        unit = str(dimension.get("unit", ""))
        price_per_unit = dimension.get("pricePerUnit")
        raw_price = price_per_unit.get("USD") if isinstance(price_per_unit, dict) else None
        if first_raw is None:
            first_raw = (unit, raw_price if isinstance(raw_price, str) else "")
        price = parse_price(raw_price)
        if price is None:
            continue
        if price > 0:
            return unit, raw_price
        if zero_candidate is None:
            zero_candidate = (unit, raw_price)

    return zero_candidate or first_raw


def iter_catalog_entries(
    service_code: str,
    offer: Mapping[str, Any],
    stats: ServiceBuildStats
) -> Iterator[RawCatalogEntry]:
    """
    Yield RawCatalogEntry records for every well-formed product in an offer.

    Malformed products (non-object product, non-string attributes) are
    counted and skipped.

    Args:
        service_code: AWS service code the offer belongs to
        offer: Parsed offer file JSON
        stats: Build statistics (mutated)
    """
    products = offer.get("products")
    if not isinstance(products, dict):
        stats.malformed += 1
        logger.warning(f"Offer for {service_code} has no products collection")
        return

    terms = offer.get("terms", {})
    on_demand = terms.get("OnDemand", {}) if isinstance(terms, dict) else {}
    if not isinstance(on_demand, dict):
        on_demand = {}

    for sku, product in products.items():
        stats.seen += 1
        if not isinstance(product, dict):
            stats.malformed += 1
            continue
        attributes = product.get("attributes", {})
        if not isinstance(attributes, dict) or not all(
            isinstance(value, str) for value in attributes.values()
        ):
            stats.malformed += 1
            logger.debug(f"Skipping {service_code} SKU {sku}: malformed attributes")
            continue

        price_term = select_on_demand_price(on_demand.get(sku))
        unit, price_per_unit = price_term if price_term else ("", None)

        yield RawCatalogEntry(
            sku=str(sku),
            service_code=service_code,
            product_family=str(product.get("productFamily", "") or ""),
            attributes=MappingProxyType(dict(attributes)),
            price_unit=unit,
            price_per_unit=price_per_unit,
        )


# ---------------------------------------------------------------------------
# Per-service filters. Each returns the composite index key for entries it
# keeps, or None for entries it discards.
# ---------------------------------------------------------------------------

def _ec2_compute_key(entry: RawCatalogEntry) -> Optional[Tuple[str, str, str]]:
    if entry.product_family != "Compute Instance":
        return None
    if normalize_key(entry.attr("capacitystatus")) != "used":
        return None
    if entry.attr("preInstalledSw") not in ("NA", ""):
        return None
    if normalize_key(entry.attr("licenseModel")) == "bring your own license":
        return None

    platform = EC2_PLATFORMS.get(normalize_key(entry.attr("operatingSystem")))
    instance_type = entry.attr("instanceType")
    tenancy = entry.attr("tenancy")
    if not platform or not instance_type or not tenancy:
        return None
    return normalize_key(instance_type), normalize_key(platform), normalize_key(tenancy)


def _ebs_key(entry: RawCatalogEntry) -> Optional[str]:
    if entry.product_family != "Storage":
        return None
    volume_api_name = entry.attr("volumeApiName")
    if not volume_api_name:
        return None
    return normalize_key(volume_api_name)


def _rds_instance_key(entry: RawCatalogEntry) -> Optional[Tuple[str, str, str]]:
    if entry.product_family != "Database Instance":
        return None
    deployment = entry.attr("deploymentOption")
    if deployment != "Single-AZ":
        return None
    if normalize_key(entry.attr("licenseModel")) == "bring your own license":
        return None
    instance_type = entry.attr("instanceType")
    engine = entry.attr("databaseEngine")
    if not instance_type or not engine:
        return None
    return normalize_key(instance_type), normalize_key(engine), normalize_key(deployment)


def _rds_storage_key(entry: RawCatalogEntry) -> Optional[Tuple[str, str]]:
    if entry.product_family != "Database Storage":
        return None
    if entry.attr("deploymentOption") not in ("Single-AZ", ""):
        return None
    volume_type = entry.attr("volumeType")
    if not volume_type:
        return None
    engine = entry.attr("databaseEngine") or "Any"
    return normalize_key(engine), normalize_key(volume_type)


def _s3_key(entry: RawCatalogEntry) -> Optional[str]:
    if entry.product_family != "Storage":
        return None
    service_code = entry.attr("servicecode")
    if service_code and service_code != SERVICE_S3:
        return None
    volume_type = entry.attr("volumeType")
    if not volume_type:
        return None
    return normalize_key(volume_type)


def _lambda_key(entry: RawCatalogEntry) -> Optional[Tuple[str, str]]:
    if entry.product_family not in ("Serverless", "AWS Lambda"):
        return None
    return LAMBDA_GROUPS.get(normalize_key(entry.attr("group")))


def _eks_key(entry: RawCatalogEntry) -> Optional[str]:
    service_code = entry.attr("servicecode")
    if service_code and service_code != SERVICE_EKS:
        return None
    usage_type = normalize_key(entry.attr("usagetype"))
    if "amazoneks-hours" not in usage_type:
        return None
    if "extendedsupport" in usage_type:
        return "extended"
    if "percluster" in usage_type:
        return "standard"
    return None


def _dynamodb_key(entry: RawCatalogEntry) -> Optional[str]:
    usage_type = normalize_key(entry.attr("usagetype"))
    # Standard-IA table class is priced separately
    if "-ia-" in usage_type or usage_type.startswith("ia-"):
        return None
    group = normalize_key(entry.attr("group"))
    family = entry.product_family

    if family == "Amazon DynamoDB PayPerRequest Throughput":
        return {"ddb-readunits": "on_demand_read", "ddb-writeunits": "on_demand_write"}.get(group)
    if family == "Provisioned IOPS":
        return {"ddb-readunits": "provisioned_rcu", "ddb-writeunits": "provisioned_wcu"}.get(group)
    if family == "Database Storage" and normalize_key(entry.attr("volumeType")) == DYNAMODB_STORAGE_VOLUME:
        return "storage"
    return None


def _load_balancer_key(entry: RawCatalogEntry) -> Optional[Tuple[str, str]]:
    family = normalize_key(entry.product_family)
    kind = LB_FAMILIES.get(family)
    if kind is None and family == "load balancer":
        group = normalize_key(entry.attr("group"))
        if "application" in group:
            kind = "alb"
        elif "network" in group:
            kind = "nlb"
    if kind is None:
        return None

    usage_type = normalize_key(entry.attr("usagetype"))
    if "outposts" in usage_type or "reserved" in usage_type:
        return None
    unit = normalize_key(entry.price_unit)
    if "lcuusage" in usage_type or "lcu" in unit:
        return kind, "capacity"
    if "loadbalancerusage" in usage_type or unit in ("hrs", "hours"):
        return kind, "fixed"
    return None


# index name -> (service code, filter)
IndexFilter = Callable[[RawCatalogEntry], Optional[Any]]

INDEX_FILTERS: Dict[str, Tuple[str, IndexFilter]] = {
    "ec2": (SERVICE_EC2, _ec2_compute_key),
    "ebs": (SERVICE_EC2, _ebs_key),
    "rds_instance": (SERVICE_RDS, _rds_instance_key),
    "rds_storage": (SERVICE_RDS, _rds_storage_key),
    "s3": (SERVICE_S3, _s3_key),
    "lambda_rates": (SERVICE_LAMBDA, _lambda_key),
    "eks": (SERVICE_EKS, _eks_key),
    "dynamodb": (SERVICE_DYNAMODB, _dynamodb_key),
    "load_balancers": (SERVICE_ELB, _load_balancer_key),
}


def _index_service(
    service_code: str,
    offer: Mapping[str, Any],
    indices: Dict[str, Dict[Any, float]],
    stats: ServiceBuildStats,
    location: Optional[str] = None
) -> None:
    """Run one service's entries through its filters into the raw indices."""
    filters = [
        (name, key_fn)
        for name, (code, key_fn) in INDEX_FILTERS.items()
        if code == service_code
    ]
    for entry in iter_catalog_entries(service_code, offer, stats):
        # Local Zone / Wavelength SKUs share instance types with the parent region
        if entry.attr("locationType") not in ("", "AWS Region"):
            stats.filtered += 1
            continue
        # Combined offers may carry other regions' SKUs
        entry_location = entry.attr("location")
        if location and entry_location and entry_location != location:
            stats.filtered += 1
            continue

        matched = False
        for name, key_fn in filters:
            key = key_fn(entry)
            if key is None:
                continue
            matched = True

            if entry.price_per_unit is None:
                stats.unpriced += 1
                break
            price = parse_price(entry.price_per_unit)
            if price is None:
                stats.malformed += 1
                logger.debug(
                    f"Skipping {service_code} SKU {entry.sku}: unparseable price {entry.price_per_unit!r}"
                )
                break

            index = indices[name]
            # Keep the cheapest rate per key so the result is order-independent
            existing = index.get(key)
            if existing is None or price < existing:
                index[key] = price
            stats.kept += 1
            break

        if not matched:
            stats.filtered += 1


def build_indices(offers: Mapping[str, Mapping[str, Any]], region: str) -> CatalogIndices:
    """
    Build all pricing indices for one region.

    Args:
        offers: Mapping of AWS service code -> parsed offer file JSON
        region: AWS region code the offers were published for

    Returns:
        Immutable CatalogIndices

    Raises:
        PricingInitializationError: If no offer yields a single usable rate
    """
    if not offers:
        raise PricingInitializationError(
            f"No pricing offers available for region {region}",
            {"region": region},
        )

    raw: Dict[str, Dict[Any, float]] = {name: {} for name in INDEX_FILTERS}
    location = get_aws_pricing_location(region)
    stats: Dict[str, ServiceBuildStats] = {}
    publication_date = None

    for service_code in sorted(offers):
        offer = offers[service_code]
        service_stats = stats.setdefault(service_code, ServiceBuildStats())
        if not isinstance(offer, dict):
            service_stats.malformed += 1
            logger.warning(f"Ignoring offer for {service_code}: not a JSON object")
            continue
        if service_code not in SUPPORTED_SERVICE_CODES:
            logger.debug(f"Ignoring offer for unsupported service {service_code}")
            continue

        _index_service(service_code, offer, raw, service_stats, location)
        if publication_date is None:
            publication_date = offer.get("publicationDate")
        logger.info(
            f"Indexed {service_stats.kept} prices for {service_code}/{region} "
            f"(seen={service_stats.seen}, filtered={service_stats.filtered}, "
            f"unpriced={service_stats.unpriced}, malformed={service_stats.malformed})"
        )

    if sum(stat.kept for stat in stats.values()) == 0:
        raise PricingInitializationError(
            f"Pricing catalog for region {region} contains no usable on-demand prices",
            {"region": region, "services": ",".join(sorted(offers))},
        )

    dynamodb = raw["dynamodb"]
    load_balancers = {
        kind: LoadBalancerRates(
            fixed_hourly=raw["load_balancers"].get((kind, "fixed")),
            capacity_unit_hourly=raw["load_balancers"].get((kind, "capacity")),
        )
        for kind in ("alb", "nlb")
    }

    return CatalogIndices(
        region=region,
        ec2=MappingProxyType(raw["ec2"]),
        ebs=MappingProxyType(raw["ebs"]),
        rds_instance=MappingProxyType(raw["rds_instance"]),
        rds_storage=MappingProxyType(raw["rds_storage"]),
        s3=MappingProxyType(raw["s3"]),
        lambda_rates=MappingProxyType(raw["lambda_rates"]),
        eks=MappingProxyType(raw["eks"]),
        dynamodb=DynamoDBRates(
            on_demand_read=dynamodb.get("on_demand_read"),
            on_demand_write=dynamodb.get("on_demand_write"),
            storage_gb_month=dynamodb.get("storage"),
            provisioned_rcu_hour=dynamodb.get("provisioned_rcu"),
            provisioned_wcu_hour=dynamodb.get("provisioned_wcu"),
        ),
        load_balancers=MappingProxyType(load_balancers),
        stats=MappingProxyType(stats),
        publication_date=publication_date,
    )


# ---------------------------------------------------------------------------
# Offer file loading
# ---------------------------------------------------------------------------

def load_offer_file(path: Path) -> Optional[Dict[str, Any]]:
    """
    Load and parse one offer file (gzipped or plain JSON).

    Args:
        path: Path to the offer file

    Returns:
        Parsed offer file data, or None if unreadable
    """
    try:
        if path.suffix == ".gz":
            with gzip.open(path, "rt", encoding="utf-8") as f:
                return json.load(f)
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.error(f"Error loading offer file {path}: {e}")
        return None


def split_combined_offer(offer: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Split a combined multi-service offer into one offer per service code.

    Products are routed by their 'servicecode' attribute; on-demand terms
    follow their product's SKU.
    """
    products = offer.get("products") or {}
    on_demand = (offer.get("terms") or {}).get("OnDemand") or {}
    per_service: Dict[str, Dict[str, Any]] = {}

    for sku, product in products.items():
        attributes = product.get("attributes") if isinstance(product, dict) else None
        service_code = attributes.get("servicecode", "") if isinstance(attributes, dict) else ""
        if not service_code:
            continue
        service_offer = per_service.setdefault(service_code, {
            "offerCode": service_code,
            "publicationDate": offer.get("publicationDate"),
            "products": {},
            "terms": {"OnDemand": {}},
        })
        service_offer["products"][sku] = product
        if sku in on_demand:
            service_offer["terms"]["OnDemand"][sku] = on_demand[sku]

    return per_service


def load_catalog(
    region: str,
    cache_dir: Optional[str] = None,
    catalog_file: Optional[str] = None
) -> Dict[str, Dict[str, Any]]:
    """
    Load the raw offers for a region from disk.

    Args:
        region: AWS region code
        cache_dir: Directory laid out as <ServiceCode>/<region>.json[.gz]
        catalog_file: Combined offer file (takes precedence over cache_dir)

    Returns:
        Mapping of service code -> offer JSON

    Raises:
        PricingInitializationError: If nothing could be loaded
    """
    offers: Dict[str, Dict[str, Any]] = {}

    if catalog_file:
        combined = load_offer_file(Path(catalog_file))
        if isinstance(combined, dict):
            offers = split_combined_offer(combined)
    elif cache_dir:
        root = Path(cache_dir)
        for service_code in SUPPORTED_SERVICE_CODES:
            for candidate in (root / service_code / f"{region}.json.gz",
                              root / service_code / f"{region}.json"):
                if candidate.exists():
                    offer = load_offer_file(candidate)
                    if offer is not None:
                        offers[service_code] = offer
                    break
            else:
                logger.warning(f"Offer file not found for {service_code}/{region} in {root}")

    if not offers:
        raise PricingInitializationError(
            f"No readable pricing catalog for region {region}",
            {"region": region, "cache_dir": cache_dir or "", "catalog_file": catalog_file or ""},
        )
    return offers
