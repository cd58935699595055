"""
Infrastructure Discovery Data Models

Provider-neutral models produced by every extractor:
- Resource: one normalized cloud resource
- Infrastructure: the id-keyed resource map plus discovery metadata
- ParseOptions: knobs shared by every extractor
- ParseResult: the envelope returned by every parse (warnings, errors, stats)

All models use Pydantic for validation and serialization.
"""

import datetime as _dt
import enum as _enum
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, JsonValue


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class CloudProvider(str, Enum):
    """Supported cloud providers."""
    AZURE = "azure"
    AWS = "aws"
    GCP = "gcp"


class Format(str, Enum):
    """Input formats an extractor can declare."""
    ARM = "arm"  # ARM deployment template JSON
    BICEP = "bicep"
    TFSTATE = "tfstate"  # Terraform state snapshot
    TERRAFORM = "terraform"  # Terraform HCL configuration
    API = "api"  # Live management API


class Category(str, Enum):
    """Resource categories grouping canonical kinds."""
    COMPUTE = "compute"
    CONTAINER = "container"
    SERVERLESS = "serverless"
    KUBERNETES = "kubernetes"
    OBJECT_STORAGE = "object_storage"
    BLOCK_STORAGE = "block_storage"
    FILE_STORAGE = "file_storage"
    SQL_DATABASE = "sql_database"
    NOSQL_DATABASE = "nosql_database"
    CACHE = "cache"
    QUEUE = "queue"
    PUBSUB = "pubsub"
    STREAM = "stream"
    LOAD_BALANCER = "load_balancer"
    CDN = "cdn"
    DNS = "dns"
    API_GATEWAY = "api_gateway"
    VPC = "vpc"
    AUTH = "auth"
    SECRETS = "secrets"
    IAM = "iam"
    FIREWALL = "firewall"
    CERTIFICATE = "certificate"
    MONITORING = "monitoring"
    LOGGING = "logging"
    TRACING = "tracing"
    UNKNOWN = "unknown"


class ResourceKind(str, Enum):
    """Canonical Azure resource kinds (Terraform azurerm vocabulary)."""
    # Compute
    LINUX_VIRTUAL_MACHINE = "azurerm_linux_virtual_machine"
    WINDOWS_VIRTUAL_MACHINE = "azurerm_windows_virtual_machine"
    FUNCTION_APP = "azurerm_function_app"
    CONTAINER_GROUP = "azurerm_container_group"
    KUBERNETES_CLUSTER = "azurerm_kubernetes_cluster"
    APP_SERVICE = "azurerm_app_service"

    # Storage
    STORAGE_ACCOUNT = "azurerm_storage_account"
    STORAGE_CONTAINER = "azurerm_storage_container"
    MANAGED_DISK = "azurerm_managed_disk"
    STORAGE_SHARE = "azurerm_storage_share"

    # Database
    MSSQL_DATABASE = "azurerm_mssql_database"
    POSTGRESQL_FLEXIBLE_SERVER = "azurerm_postgresql_flexible_server"
    MYSQL_FLEXIBLE_SERVER = "azurerm_mysql_flexible_server"
    COSMOSDB_ACCOUNT = "azurerm_cosmosdb_account"
    REDIS_CACHE = "azurerm_redis_cache"

    # Networking
    LOAD_BALANCER = "azurerm_lb"
    APPLICATION_GATEWAY = "azurerm_application_gateway"
    DNS_ZONE = "azurerm_dns_zone"
    CDN_PROFILE = "azurerm_cdn_profile"
    FRONT_DOOR = "azurerm_frontdoor"
    VIRTUAL_NETWORK = "azurerm_virtual_network"

    # Security
    AADB2C_DIRECTORY = "azurerm_aadb2c_directory"
    KEY_VAULT = "azurerm_key_vault"
    FIREWALL = "azurerm_firewall"

    # Messaging
    SERVICEBUS_NAMESPACE = "azurerm_servicebus_namespace"
    SERVICEBUS_QUEUE = "azurerm_servicebus_queue"
    EVENTHUB = "azurerm_eventhub"
    EVENTGRID_TOPIC = "azurerm_eventgrid_topic"
    LOGIC_APP_WORKFLOW = "azurerm_logic_app_workflow"


# -----------------------------------------------------------------------------
# Config values
# -----------------------------------------------------------------------------

# Tagged union carried by Resource.config:
# None | bool | int | float | str | list[ConfigValue] | dict[str, ConfigValue]
ConfigValue = JsonValue

# Metadata values stay scalar
MetadataValue = Union[str, int, float, bool, None]


def normalize_config_value(value: Any) -> ConfigValue:
    """
    Coerce an arbitrary value into a ConfigValue.

    SDK models are converted through ``as_dict()``, enums collapse to their
    values, datetimes to ISO-8601 strings and any other iterable to a list.
    Unknown objects fall back to ``str()``.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, _enum.Enum):
        return normalize_config_value(value.value)
    if isinstance(value, (_dt.datetime, _dt.date, _dt.time)):
        return value.isoformat()
    if isinstance(value, _dt.timedelta):
        return value.total_seconds()
    if isinstance(value, dict):
        return {str(k): normalize_config_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
        return [normalize_config_value(v) for v in items]
    if hasattr(value, "as_dict"):
        return normalize_config_value(value.as_dict())
    return str(value)


# -----------------------------------------------------------------------------
# Core Models
# -----------------------------------------------------------------------------

class Resource(BaseModel):
    """
    A single normalized cloud resource.

    ``kind`` is a canonical ResourceKind value when the native kind is known
    and the raw native kind string otherwise. ``category`` is always derived
    from ``kind``; use ``new_resource`` from the type mapping module to build
    one from a native kind.
    """
    id: str = Field(..., description="Identifier, unique within one Infrastructure")
    name: str = Field("", description="Display name")
    kind: str = Field(..., description="Canonical kind, or the native kind when unmapped")
    category: Category = Field(Category.UNKNOWN.value, description="Category derived from kind")
    region: str = Field("", description="Region/location, empty when unknown")
    native_id: Optional[str] = Field(None, description="Provider-native identifier (ARM id)")

    config: Dict[str, ConfigValue] = Field(default_factory=dict, description="Source attribute bag")
    tags: Dict[str, str] = Field(default_factory=dict, description="Resource tags")
    dependencies: List[str] = Field(default_factory=list, description="Ids this resource depends on")

    class Config:
        use_enum_values = True

    def add_dependency(self, dependency_id: str) -> None:
        """Append a dependency id, keeping first-seen order and skipping repeats."""
        if dependency_id and dependency_id not in self.dependencies:
            self.dependencies.append(dependency_id)

    def add_tag(self, key: str, value: str) -> None:
        self.tags[key] = value

    def set_config(self, key: str, value: Any) -> None:
        self.config[key] = normalize_config_value(value)


class Infrastructure(BaseModel):
    """
    The normalized output of one discovery run.

    Resources are keyed by id. Adding a resource whose id is already present
    replaces the earlier one, which is how directory merges resolve
    collisions (last writer wins, files visited in sorted order).
    """
    provider: CloudProvider = Field(..., description="Provider of every resource in the map")
    resources: Dict[str, Resource] = Field(default_factory=dict, description="Resources keyed by id")
    metadata: Dict[str, MetadataValue] = Field(default_factory=dict, description="Discovery metadata")

    class Config:
        use_enum_values = True

    def add_resource(self, resource: Resource) -> bool:
        """Insert or replace a resource. Returns True when an entry was replaced."""
        replaced = resource.id in self.resources
        self.resources[resource.id] = resource
        return replaced

    def get_resource(self, resource_id: str) -> Optional[Resource]:
        return self.resources.get(resource_id)

    def merge(self, other: "Infrastructure") -> List[str]:
        """Merge another Infrastructure into this one; returns the replaced ids."""
        replaced = [rid for rid in other.resources if rid in self.resources]
        self.resources.update(other.resources)
        self.metadata.update(other.metadata)
        return replaced

    def count_by_kind(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for res in self.resources.values():
            counts[res.kind] = counts.get(res.kind, 0) + 1
        return counts

    def count_by_category(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for res in self.resources.values():
            counts[res.category] = counts.get(res.category, 0) + 1
        return counts


# -----------------------------------------------------------------------------
# Options
# -----------------------------------------------------------------------------

class ParseOptions(BaseModel):
    """
    Options accepted by every extractor.

    ``filter_kinds`` and ``filter_categories`` are allow-lists; when
    ``filter_kinds`` is non-empty it alone decides inclusion.
    """
    include_sensitive: bool = Field(False, description="Keep values marked secret/sensitive")
    follow_nested_templates: bool = Field(True, description="Expand nested templates and local modules")
    max_depth: int = Field(10, ge=0, description="Nesting limit, 0 means unlimited")
    ignore_errors: bool = Field(False, description="Record per-unit failures instead of aborting")
    filter_kinds: List[str] = Field(default_factory=list, description="Kind allow-list")
    filter_categories: List[Category] = Field(default_factory=list, description="Category allow-list")
    credentials: Dict[str, str] = Field(default_factory=dict, description="Live API credential overrides")
    regions: List[str] = Field(default_factory=list, description="Live API region allow-list")
    include_patterns: List[str] = Field(default_factory=list, description="Glob patterns files must match")
    exclude_patterns: List[str] = Field(default_factory=list, description="Glob patterns that skip files")

    class Config:
        use_enum_values = True

    def with_filter_kinds(self, *kinds: str) -> "ParseOptions":
        return self.model_copy(update={"filter_kinds": [str(getattr(k, "value", k)) for k in kinds]})

    def with_filter_categories(self, *categories: Union[Category, str]) -> "ParseOptions":
        return self.model_copy(update={"filter_categories": [Category(c).value for c in categories]})

    def with_regions(self, *regions: str) -> "ParseOptions":
        return self.model_copy(update={"regions": list(regions)})

    def with_ignore_errors(self, ignore: bool = True) -> "ParseOptions":
        return self.model_copy(update={"ignore_errors": ignore})

    def with_credentials(self, **credentials: str) -> "ParseOptions":
        merged = dict(self.credentials)
        merged.update(credentials)
        return self.model_copy(update={"credentials": merged})

    def depth_allows(self, depth: int) -> bool:
        """True when nesting level ``depth`` (top level is 0) may be expanded."""
        if not self.follow_nested_templates:
            return False
        return self.max_depth == 0 or depth <= self.max_depth


# -----------------------------------------------------------------------------
# Parse Result
# -----------------------------------------------------------------------------

class DiscoveryIssue(BaseModel):
    """A warning or a tolerated failure attached to one unit of work."""
    unit: str = Field(..., description="File path, resource address or scan kind")
    message: str = Field(..., description="Human readable description")
    error_type: Optional[str] = Field(None, description="Exception class name for failures")
    line: Optional[int] = Field(None, description="Line number when known")


class ParseStats(BaseModel):
    """Counters collected during one parse."""
    files_scanned: int = Field(0)
    resources_found: int = Field(0)
    resources_by_kind: Dict[str, int] = Field(default_factory=dict)
    resources_by_category: Dict[str, int] = Field(default_factory=dict)
    modules_followed: int = Field(0)
    error_count: int = Field(0)


class ParseResult(BaseModel):
    """
    Envelope returned by every parse.

    The Infrastructure is complete for the units that succeeded. Tolerated
    failures (``ignore_errors``) land in ``errors``; non-fatal findings such
    as unresolved attributes or id collisions land in ``warnings``.
    """
    infrastructure: Infrastructure
    warnings: List[DiscoveryIssue] = Field(default_factory=list)
    errors: List[DiscoveryIssue] = Field(default_factory=list)
    stats: ParseStats = Field(default_factory=ParseStats)

    @classmethod
    def empty(cls, provider: CloudProvider) -> "ParseResult":
        return cls(infrastructure=Infrastructure(provider=provider))

    @property
    def degraded(self) -> bool:
        return bool(self.warnings or self.errors)

    def warn(self, unit: str, message: str, line: Optional[int] = None) -> None:
        self.warnings.append(DiscoveryIssue(unit=unit, message=message, line=line))

    def record_error(self, unit: str, error: BaseException) -> None:
        self.errors.append(DiscoveryIssue(
            unit=unit,
            message=str(error),
            error_type=type(error).__name__,
            line=getattr(error, "line", None),
        ))

    def absorb(self, other: "ParseResult") -> List[str]:
        """Merge another result (resources, diagnostics, counters) into this one."""
        replaced = self.infrastructure.merge(other.infrastructure)
        self.warnings.extend(other.warnings)
        self.errors.extend(other.errors)
        self.stats.files_scanned += other.stats.files_scanned
        self.stats.modules_followed += other.stats.modules_followed
        return replaced

    def finalize(self) -> "ParseResult":
        """Recompute the resource counters from the current Infrastructure."""
        infra = self.infrastructure
        self.stats.resources_found = len(infra.resources)
        self.stats.resources_by_kind = infra.count_by_kind()
        self.stats.resources_by_category = infra.count_by_category()
        self.stats.error_count = len(self.errors)
        return self

    def summary(self) -> Tuple[int, int, int]:
        """(resources, warnings, errors)"""
        return len(self.infrastructure.resources), len(self.warnings), len(self.errors)
