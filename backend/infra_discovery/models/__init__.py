# backend/infra_discovery/models/__init__.py
"""
Pydantic models shared by every extractor.

- Resource / Infrastructure: the normalized inventory
- ParseOptions: extractor knobs
- ParseResult: the envelope returned by every parse
"""

from infra_discovery.models.infra_models import (
    Category,
    CloudProvider,
    DiscoveryIssue,
    Format,
    Infrastructure,
    ParseOptions,
    ParseResult,
    ParseStats,
    Resource,
    ResourceKind,
)

__all__ = [
    "Category",
    "CloudProvider",
    "DiscoveryIssue",
    "Format",
    "Infrastructure",
    "ParseOptions",
    "ParseResult",
    "ParseStats",
    "Resource",
    "ResourceKind",
]
