"""
AWS ARN parsing.
Splits ARNs into their components and maps services to resource types.
"""
from dataclasses import dataclass
from typing import Dict

from awscost.core.errors import ARNParseError


SUPPORTED_PARTITIONS = {"aws", "aws-cn", "aws-us-gov"}
ISOLATED_PARTITIONS = {"aws-iso", "aws-iso-b"}

# ARN service -> resource type used for pricing
SERVICE_RESOURCE_TYPES: Dict[str, str] = {
    "ec2": "ec2",
    "rds": "rds",
    "s3": "s3",
    "lambda": "lambda",
    "dynamodb": "dynamodb",
    "eks": "eks",
    "elasticloadbalancing": "elb",
}

# Services whose ARNs carry no region
GLOBAL_SERVICES = {"s3", "iam", "cloudfront", "route53"}


@dataclass
class ARNComponents:
    """Parsed parts of arn:partition:service:region:account:resource."""
    partition: str = ""
    service: str = ""
    region: str = ""
    account_id: str = ""
    resource_type: str = ""
    resource_id: str = ""

    def to_resource_type(self) -> str:
        """
        Map the ARN to the resource type used for pricing.

        EBS volumes live under the ec2 service but are priced separately.
        Unknown services pass through unchanged.
        """
        if self.service == "ec2" and self.resource_type == "volume":
            return "ebs"
        return SERVICE_RESOURCE_TYPES.get(self.service, self.service)

    def is_global_service(self) -> bool:
        return self.service in GLOBAL_SERVICES


def parse_arn(arn: str) -> ARNComponents:
    """
    Parse an AWS ARN.

    The resource segment may be 'kind/id', 'kind:id' or a bare name
    (e.g. an S3 bucket), in which case it lands in resource_type.

    Args:
        arn: ARN string (e.g., 'arn:aws:ec2:us-east-1:123456789012:instance/i-abc')

    Returns:
        ARNComponents

    Raises:
        ARNParseError: If the ARN is malformed or from an isolated partition
    """
    if not arn or not arn.startswith("arn:"):
        raise ARNParseError(
            f"invalid ARN format: must start with 'arn:' (got {arn!r})",
            {"field": "arn", "expected": "arn:partition:service:region:account:resource"},
        )

    parts = arn.split(":", 5)
    if len(parts) < 6:
        raise ARNParseError(
            f"invalid ARN format: expected at least 6 colon-separated parts, got {len(parts)}",
            {"field": "arn", "expected": "arn:partition:service:region:account:resource"},
        )

    _, partition, service, region, account_id, resource = parts

    if partition in ISOLATED_PARTITIONS:
        raise ARNParseError(
            f"unsupported partition {partition!r}: isolated partitions (aws-iso, aws-iso-b) "
            "do not have public pricing data",
            {"field": "partition", "expected": ", ".join(sorted(SUPPORTED_PARTITIONS))},
        )
    if partition not in SUPPORTED_PARTITIONS:
        raise ARNParseError(
            f"invalid ARN partition {partition!r}",
            {"field": "partition", "expected": ", ".join(sorted(SUPPORTED_PARTITIONS))},
        )
    if not service:
        raise ARNParseError(
            "invalid ARN format: service is empty",
            {"field": "service", "expected": "non-empty service name"},
        )
    if not resource:
        raise ARNParseError(
            "invalid ARN format: resource is empty",
            {"field": "resource", "expected": "resource-type/resource-id"},
        )

    if "/" in resource:
        resource_type, resource_id = resource.split("/", 1)
    elif ":" in resource:
        resource_type, resource_id = resource.split(":", 1)
    else:
        resource_type, resource_id = resource, ""

    return ARNComponents(
        partition=partition,
        service=service,
        region=region,
        account_id=account_id,
        resource_type=resource_type,
        resource_id=resource_id,
    )
