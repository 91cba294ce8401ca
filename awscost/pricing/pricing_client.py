"""
Indexed pricing client.
Owns one region's pricing indices and exposes typed (rate, found) getters.
"""
from enum import Enum
import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from awscost.core.config import config
from awscost.core.errors import PricingInitializationError
from awscost.pricing.catalog import (
    CatalogIndices,
    DynamoDBRates,
    LoadBalancerRates,
    build_indices,
    load_catalog,
    normalize_key,
)

logger = logging.getLogger(__name__)


# Offer loader: returns service code -> offer JSON
OfferLoader = Callable[[], Mapping[str, Mapping[str, Any]]]

NOT_FOUND: Tuple[float, bool] = (0.0, False)

# S3 API storage class -> offer file volumeType
S3_STORAGE_CLASSES: Dict[str, str] = {
    "standard": "Standard",
    "standard_ia": "Standard - Infrequent Access",
    "onezone_ia": "One Zone - Infrequent Access",
    "intelligent_tiering": "Intelligent-Tiering Frequent Access",
    "glacier_ir": "Glacier Instant Retrieval",
    "glacier": "Amazon Glacier",
    "deep_archive": "Glacier Deep Archive",
    "reduced_redundancy": "Reduced Redundancy",
}

# RDS engine identifiers -> offer file databaseEngine
RDS_ENGINES: Dict[str, str] = {
    "mysql": "MySQL",
    "mariadb": "MariaDB",
    "postgres": "PostgreSQL",
    "postgresql": "PostgreSQL",
    "aurora-mysql": "Aurora MySQL",
    "aurora-postgresql": "Aurora PostgreSQL",
    "oracle": "Oracle",
    "oracle-se2": "Oracle",
    "oracle-ee": "Oracle",
    "sqlserver": "SQL Server",
    "sqlserver-ex": "SQL Server",
    "sqlserver-se": "SQL Server",
    "sqlserver-ee": "SQL Server",
    "sqlserver-web": "SQL Server",
}

# RDS storage types -> offer file volumeType
RDS_STORAGE_TYPES: Dict[str, str] = {
    "gp2": "General Purpose",
    "gp3": "General Purpose-GP3",
    "io1": "Provisioned IOPS",
    "io2": "Provisioned IOPS-IO2",
    "standard": "Magnetic",
}


class BuildState(Enum):
    """Index build states."""
    UNBUILT = "unbuilt"
    BUILDING = "building"
    READY = "ready"
    FAILED = "failed"


def _found(value: Optional[float]) -> Tuple[float, bool]:
    if value is None:
        return NOT_FOUND
    return value, True


class PricingClient:
    """
    Read-only access to one region's on-demand pricing.

    State machine:
    - UNBUILT: nothing loaded yet
    - BUILDING: the first caller is loading offers and building indices
    - READY: indices are available to every caller, forever
    - FAILED: the build raised; every call re-raises the same error

    Transitions:
    - UNBUILT -> BUILDING: first call to initialize() or any getter
    - BUILDING -> READY / FAILED: when the build finishes

    Concurrent callers arriving during BUILDING wait on the condition and
    never enter the build themselves.
    """

    def __init__(self, region: str, loader: OfferLoader, currency: str = "USD"):
        """
        Initialize pricing client. Nothing is loaded until first use.

        Args:
            region: AWS region code the offers belong to
            loader: Callable returning service code -> offer JSON
            currency: Currency of every rate (always USD for public offers)
        """
        self._region = region
        self._loader = loader
        self._currency = currency

        self._condition = threading.Condition()
        self._state = BuildState.UNBUILT
        self._indices: Optional[CatalogIndices] = None
        self._error: Optional[PricingInitializationError] = None

    @classmethod
    def from_config(cls) -> "PricingClient":
        """Create a client reading offers from the configured location."""
        region = config.PRICING_REGION
        return cls(
            region,
            lambda: load_catalog(
                region,
                cache_dir=config.PRICING_CACHE_DIR,
                catalog_file=config.PRICING_CATALOG_FILE,
            ),
            currency=config.CURRENCY,
        )

    @property
    def state(self) -> BuildState:
        return self._state

    def initialize(self) -> None:
        """
        Build the indices now instead of on first lookup.

        Raises:
            PricingInitializationError: If the catalog cannot be built
        """
        self._get_indices()

    def _get_indices(self) -> CatalogIndices:
        # Fast path: READY is terminal and indices never change afterwards
        indices = self._indices
        if indices is not None:
            return indices

        with self._condition:
            while self._state == BuildState.BUILDING:
                self._condition.wait()
            if self._state == BuildState.READY:
                return self._indices
            if self._state == BuildState.FAILED:
                raise self._error
            self._state = BuildState.BUILDING

        built: Optional[CatalogIndices] = None
        error: Optional[PricingInitializationError] = None
        try:
            built = build_indices(self._loader(), self._region)
        except PricingInitializationError as e:
            error = e
        except Exception as e:
            error = PricingInitializationError(
                f"Failed to build pricing indices for {self._region}: {e}",
                {"region": self._region},
            )
            error.__cause__ = e
        finally:
            # Every exit, including BaseException, leaves BUILDING and wakes waiters
            with self._condition:
                if built is not None:
                    self._indices = built
                    self._state = BuildState.READY
                    logger.info(
                        f"Pricing indices ready for {self._region}: {built.total_rates} rates"
                    )
                else:
                    if error is None:
                        error = PricingInitializationError(
                            f"Pricing index build for {self._region} was interrupted",
                            {"region": self._region},
                        )
                    self._state = BuildState.FAILED
                    self._error = error
                    logger.error(f"Pricing initialization failed for {self._region}: {error}")
                self._condition.notify_all()

        if error is not None:
            raise error
        return built

    def region(self) -> str:
        return self._region

    def currency(self) -> str:
        return self._currency

    def build_stats(self) -> Dict[str, Dict[str, int]]:
        """Per-service build diagnostics."""
        return {
            service: stats.to_dict()
            for service, stats in self._get_indices().stats.items()
        }

    def publication_date(self) -> Optional[str]:
        return self._get_indices().publication_date

    # EC2 -----------------------------------------------------------------

    def ec2_on_demand_price_per_hour(
        self,
        instance_type: str,
        operating_system: str,
        tenancy: str
    ) -> Tuple[float, bool]:
        """
        Get on-demand hourly price for an EC2 instance.

        Args:
            instance_type: EC2 instance type (e.g., 't3.micro')
            operating_system: Linux, Windows, RHEL or SUSE
            tenancy: Shared, Dedicated or Host

        Returns:
            (hourly price in USD, found)
        """
        key = (normalize_key(instance_type), normalize_key(operating_system), normalize_key(tenancy))
        return _found(self._get_indices().ec2.get(key))

    def ebs_price_per_gb_month(self, volume_type: str) -> Tuple[float, bool]:
        """Get EBS price per GB-month for a volume type (gp2, gp3, io1, ...)."""
        return _found(self._get_indices().ebs.get(normalize_key(volume_type)))

    # RDS -----------------------------------------------------------------

    def rds_on_demand_price_per_hour(
        self,
        instance_type: str,
        engine: str,
        deployment: str = "Single-AZ"
    ) -> Tuple[float, bool]:
        """
        Get on-demand hourly price for an RDS instance.

        Args:
            instance_type: RDS instance class (e.g., 'db.t3.micro')
            engine: Engine identifier ('postgres') or offer name ('PostgreSQL')
            deployment: Deployment option; only Single-AZ is indexed

        Returns:
            (hourly price in USD, found)
        """
        engine_name = RDS_ENGINES.get(normalize_key(engine), engine)
        key = (normalize_key(instance_type), normalize_key(engine_name), normalize_key(deployment))
        return _found(self._get_indices().rds_instance.get(key))

    def rds_storage_price_per_gb_month(self, engine: str, storage_type: str) -> Tuple[float, bool]:
        """
        Get RDS storage price per GB-month.

        Falls back to engine-agnostic ('Any') storage rates when the catalog
        has no engine-specific entry.
        """
        engine_name = normalize_key(RDS_ENGINES.get(normalize_key(engine), engine))
        volume_type = normalize_key(RDS_STORAGE_TYPES.get(normalize_key(storage_type), storage_type))
        storage = self._get_indices().rds_storage
        price = storage.get((engine_name, volume_type))
        if price is None:
            price = storage.get(("any", volume_type))
        return _found(price)

    # S3 ------------------------------------------------------------------

    def s3_price_per_gb_month(self, storage_class: str) -> Tuple[float, bool]:
        """
        Get S3 storage price per GB-month (first pricing tier).

        Args:
            storage_class: API storage class ('STANDARD_IA') or offer volumeType

        Returns:
            (price per GB-month in USD, found)
        """
        volume_type = S3_STORAGE_CLASSES.get(normalize_key(storage_class), storage_class)
        return _found(self._get_indices().s3.get(normalize_key(volume_type)))

    # Lambda --------------------------------------------------------------

    def lambda_price_per_request(self, architecture: str = "x86_64") -> Tuple[float, bool]:
        """Get Lambda price per request for an architecture (x86_64 or arm64)."""
        return _found(self._get_indices().lambda_rates.get((_lambda_arch(architecture), "requests")))

    def lambda_price_per_gb_second(self, architecture: str = "x86_64") -> Tuple[float, bool]:
        """Get Lambda price per GB-second of duration for an architecture."""
        return _found(self._get_indices().lambda_rates.get((_lambda_arch(architecture), "duration")))

    # EKS -----------------------------------------------------------------

    def eks_cluster_price_per_hour(self, extended_support: bool = False) -> Tuple[float, bool]:
        """Get EKS control plane hourly price for standard or extended support."""
        tier = "extended" if extended_support else "standard"
        return _found(self._get_indices().eks.get(tier))

    # DynamoDB ------------------------------------------------------------

    def dynamodb_rates(self) -> Tuple[DynamoDBRates, bool]:
        """
        Get all DynamoDB rates for the region.

        Returns:
            (DynamoDBRates, found) where found means at least one rate exists
        """
        rates = self._get_indices().dynamodb
        found = any(
            value is not None
            for value in (
                rates.on_demand_read,
                rates.on_demand_write,
                rates.storage_gb_month,
                rates.provisioned_rcu_hour,
                rates.provisioned_wcu_hour,
            )
        )
        return rates, found

    def dynamodb_on_demand_read_price(self) -> Tuple[float, bool]:
        return _found(self._get_indices().dynamodb.on_demand_read)

    def dynamodb_on_demand_write_price(self) -> Tuple[float, bool]:
        return _found(self._get_indices().dynamodb.on_demand_write)

    def dynamodb_storage_price_per_gb_month(self) -> Tuple[float, bool]:
        return _found(self._get_indices().dynamodb.storage_gb_month)

    def dynamodb_provisioned_rcu_price(self) -> Tuple[float, bool]:
        return _found(self._get_indices().dynamodb.provisioned_rcu_hour)

    def dynamodb_provisioned_wcu_price(self) -> Tuple[float, bool]:
        return _found(self._get_indices().dynamodb.provisioned_wcu_hour)

    # Elastic Load Balancing ----------------------------------------------

    def load_balancer_rates(self, kind: str) -> Tuple[LoadBalancerRates, bool]:
        """
        Get the fixed and capacity-unit rates for a load balancer class.

        Args:
            kind: 'alb' or 'nlb'

        Returns:
            (LoadBalancerRates, found) where found requires both rates
        """
        rates = self._get_indices().load_balancers.get(normalize_key(kind))
        if rates is None:
            return LoadBalancerRates(), False
        found = rates.fixed_hourly is not None and rates.capacity_unit_hourly is not None
        return rates, found

    def alb_price_per_hour(self) -> Tuple[float, bool]:
        return _found(self.load_balancer_rates("alb")[0].fixed_hourly)

    def alb_price_per_lcu(self) -> Tuple[float, bool]:
        return _found(self.load_balancer_rates("alb")[0].capacity_unit_hourly)

    def nlb_price_per_hour(self) -> Tuple[float, bool]:
        return _found(self.load_balancer_rates("nlb")[0].fixed_hourly)

    def nlb_price_per_nlcu(self) -> Tuple[float, bool]:
        return _found(self.load_balancer_rates("nlb")[0].capacity_unit_hourly)


def _lambda_arch(architecture: str) -> str:
    arch = normalize_key(architecture)
    if arch in ("arm64", "arm", "graviton", "aarch64"):
        return "arm64"
    return "x86_64"
