"""
Domain models for resource identification.
Defines the canonical resource descriptor and the raw caller input shapes.
"""
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
import json


# Tag keys that carry descriptor fields in a flat tag map
DESCRIPTOR_TAG_KEYS = ("provider", "resource_type", "sku", "region")


@dataclass
class ResourceDescriptor:
    """Canonical description of one resource to price."""
    provider: str
    resource_type: str
    sku: str
    region: str
    tags: Dict[str, str] = field(default_factory=dict)

    def is_complete(self) -> bool:
        """True when all identifying fields are non-empty."""
        return all((self.provider, self.resource_type, self.sku, self.region))

    def tag(self, *names: str, default: str = "") -> str:
        """
        Return the first non-empty tag among names.

        Args:
            names: Tag keys in priority order
            default: Value when none of the keys is present

        Returns:
            Tag value (stripped) or default
        """
        for name in names:
            value = self.tags.get(name)
            if value is not None and str(value).strip():
                return str(value).strip()
        return default

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "provider": self.provider,
            "resource_type": self.resource_type,
            "sku": self.sku,
            "region": self.region,
            "tags": dict(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceDescriptor":
        """
        Build a descriptor from a JSON-style mapping.

        Accepts both snake_case and camelCase resource type keys. Missing
        fields become empty strings; tag values are stringified.
        """
        tags = data.get("tags") or {}
        if not isinstance(tags, dict):
            tags = {}
        return cls(
            provider=str(data.get("provider") or ""),
            resource_type=str(data.get("resource_type") or data.get("resourceType") or ""),
            sku=str(data.get("sku") or ""),
            region=str(data.get("region") or ""),
            tags={str(k): str(v) for k, v in tags.items() if v is not None},
        )

    @classmethod
    def from_json(cls, raw: str) -> Optional["ResourceDescriptor"]:
        """Parse a JSON-encoded descriptor; None if raw is not a JSON object."""
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        return cls.from_dict(data)


@dataclass
class ResourceRequest:
    """
    Everything a caller may supply to identify a resource.

    Resolution order: descriptor, arn (+ tags), resource_id as JSON, tags.
    """
    descriptor: Optional[ResourceDescriptor] = None
    arn: str = ""
    resource_id: str = ""
    tags: Dict[str, str] = field(default_factory=dict)
