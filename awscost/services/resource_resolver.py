"""
Resource identity resolver.
Normalizes the ways callers identify a resource into one ResourceDescriptor.
"""
from typing import Dict, Optional
import logging

from awscost.core.errors import IncompleteResourceError, MissingAttributeError
from awscost.domain.resource_models import (
    DESCRIPTOR_TAG_KEYS,
    ResourceDescriptor,
    ResourceRequest,
)
from awscost.services.arn_parser import parse_arn


logger = logging.getLogger(__name__)


# Tag keys that may carry the SKU next to an ARN, in priority order
SKU_TAG_KEYS = ("sku", "instanceType", "instance_class", "type", "volumeType", "volume_type")


def extract_sku(tags: Dict[str, str]) -> str:
    """
    Extract the SKU (instance type, volume type, ...) from tags.

    Args:
        tags: Free-form resource tags

    Returns:
        First non-empty SKU tag value, or '' if none
    """
    for key in SKU_TAG_KEYS:
        value = tags.get(key)
        if value:
            return value
    return ""


class ResourceResolver:
    """Resolves caller input into a canonical ResourceDescriptor."""

    def __init__(self, default_region: str):
        """
        Initialize resolver.

        Args:
            default_region: Region assigned to ARNs without one (global services)
        """
        self.default_region = default_region

    def resolve(self, request: ResourceRequest) -> ResourceDescriptor:
        """
        Resolve a resource request. First match wins:

        1. explicit descriptor
        2. ARN + SKU from tags
        3. JSON descriptor in resource_id
        4. provider/resource_type/sku/region tags

        Args:
            request: Caller-supplied identification

        Returns:
            ResourceDescriptor with provider, resource_type, sku and region set

        Raises:
            ARNParseError: If the ARN is malformed
            MissingAttributeError: If an ARN is given without a SKU tag
            IncompleteResourceError: If no input shape identifies the resource
        """
        if request.descriptor is not None:
            descriptor = request.descriptor
            if not descriptor.is_complete():
                missing = [
                    name for name in DESCRIPTOR_TAG_KEYS
                    if not getattr(descriptor, name)
                ]
                raise IncompleteResourceError(
                    f"resource descriptor incomplete: missing {', '.join(missing)}",
                    {"field": ",".join(missing), "expected": "non-empty value"},
                )
            return descriptor

        if request.arn:
            return self._from_arn(request.arn, request.tags)

        if request.resource_id:
            descriptor = ResourceDescriptor.from_json(request.resource_id)
            if descriptor is not None and descriptor.is_complete():
                return descriptor
            # Not a JSON descriptor: treat as an opaque id and use tags

        descriptor = self._from_tags(request.tags)
        if descriptor is None:
            raise IncompleteResourceError(
                "resource information incomplete: need provider, resource_type, sku, region "
                "in a descriptor, ARN + tags, ResourceId JSON or tags",
                {"expected": ",".join(DESCRIPTOR_TAG_KEYS)},
            )
        return descriptor

    def _from_arn(self, arn: str, tags: Dict[str, str]) -> ResourceDescriptor:
        components = parse_arn(arn)

        # ARNs never carry the instance/volume type
        sku = extract_sku(tags or {})
        if not sku:
            raise MissingAttributeError(
                "ARN provided but tags missing 'sku' (instance type, volume type, etc.)",
                field="sku",
                expected="tag 'sku' or one of: " + ", ".join(SKU_TAG_KEYS[1:]),
            )

        region = components.region
        if not region:
            logger.debug(
                f"Assigned default region {self.default_region} to "
                f"{components.service} ARN without region"
            )
            region = self.default_region

        remaining = {k: v for k, v in (tags or {}).items() if k not in SKU_TAG_KEYS}
        return ResourceDescriptor(
            provider="aws",
            resource_type=components.to_resource_type(),
            sku=sku,
            region=region,
            tags=remaining,
        )

    @staticmethod
    def _from_tags(tags: Optional[Dict[str, str]]) -> Optional[ResourceDescriptor]:
        if not tags:
            return None
        descriptor = ResourceDescriptor(
            provider=tags.get("provider", ""),
            resource_type=tags.get("resource_type", ""),
            sku=tags.get("sku", ""),
            region=tags.get("region", ""),
            tags={k: v for k, v in tags.items() if k not in DESCRIPTOR_TAG_KEYS},
        )
        if not descriptor.is_complete():
            return None
        return descriptor
