"""
Resource Type Mapping Tables

Normalize native Azure resource kinds into the canonical ResourceKind
vocabulary and derive each kind's Category:
- ARM_TYPE_MAP: ARM/Bicep resource types (Microsoft.Provider/resourceType)
- TERRAFORM_TYPE_MAP: Terraform azurerm_* resource types
- KIND_CATEGORIES: canonical kind to category

Lookups are case-insensitive. ARM types resolve by exact match first, then by
substring containment (so versioned or child types still resolve), and fall
back to the raw native string when nothing matches.
"""

import logging
from typing import Any, Dict, Optional

from infra_discovery.models.infra_models import Category, Resource, ResourceKind

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# ARM / Bicep resource types
# -----------------------------------------------------------------------------

ARM_TYPE_MAP: Dict[str, ResourceKind] = {
    # Compute
    "microsoft.compute/virtualmachines": ResourceKind.LINUX_VIRTUAL_MACHINE,
    "microsoft.web/sites": ResourceKind.APP_SERVICE,
    "microsoft.web/serverfarms": ResourceKind.APP_SERVICE,
    "microsoft.containerinstance/containergroups": ResourceKind.CONTAINER_GROUP,
    "microsoft.containerservice/managedclusters": ResourceKind.KUBERNETES_CLUSTER,

    # Storage
    "microsoft.storage/storageaccounts": ResourceKind.STORAGE_ACCOUNT,
    "microsoft.storage/storageaccounts/blobservices/containers": ResourceKind.STORAGE_CONTAINER,
    "microsoft.storage/storageaccounts/fileservices/shares": ResourceKind.STORAGE_SHARE,
    "microsoft.compute/disks": ResourceKind.MANAGED_DISK,

    # Database
    "microsoft.sql/servers/databases": ResourceKind.MSSQL_DATABASE,
    "microsoft.sql/servers": ResourceKind.MSSQL_DATABASE,
    "microsoft.dbforpostgresql/flexibleservers": ResourceKind.POSTGRESQL_FLEXIBLE_SERVER,
    "microsoft.dbformysql/flexibleservers": ResourceKind.MYSQL_FLEXIBLE_SERVER,
    "microsoft.documentdb/databaseaccounts": ResourceKind.COSMOSDB_ACCOUNT,
    "microsoft.cache/redis": ResourceKind.REDIS_CACHE,

    # Networking
    "microsoft.network/loadbalancers": ResourceKind.LOAD_BALANCER,
    "microsoft.network/applicationgateways": ResourceKind.APPLICATION_GATEWAY,
    "microsoft.network/dnszones": ResourceKind.DNS_ZONE,
    "microsoft.cdn/profiles": ResourceKind.CDN_PROFILE,
    "microsoft.network/frontdoors": ResourceKind.FRONT_DOOR,
    "microsoft.network/virtualnetworks": ResourceKind.VIRTUAL_NETWORK,

    # Security
    "microsoft.keyvault/vaults": ResourceKind.KEY_VAULT,
    "microsoft.network/firewallpolicies": ResourceKind.FIREWALL,
    "microsoft.network/azurefirewalls": ResourceKind.FIREWALL,
    "microsoft.azureactivedirectory/b2cdirectories": ResourceKind.AADB2C_DIRECTORY,

    # Messaging
    "microsoft.servicebus/namespaces": ResourceKind.SERVICEBUS_NAMESPACE,
    "microsoft.servicebus/namespaces/queues": ResourceKind.SERVICEBUS_QUEUE,
    "microsoft.eventhub/namespaces": ResourceKind.EVENTHUB,
    "microsoft.eventgrid/topics": ResourceKind.EVENTGRID_TOPIC,
    "microsoft.logic/workflows": ResourceKind.LOGIC_APP_WORKFLOW,
}

# Longest keys first so the most specific containment match wins
_ARM_KEYS_BY_LENGTH = sorted(ARM_TYPE_MAP, key=len, reverse=True)


# -----------------------------------------------------------------------------
# Terraform resource types
# -----------------------------------------------------------------------------

TERRAFORM_TYPE_MAP: Dict[str, ResourceKind] = {
    # Compute
    "azurerm_linux_virtual_machine": ResourceKind.LINUX_VIRTUAL_MACHINE,
    "azurerm_windows_virtual_machine": ResourceKind.WINDOWS_VIRTUAL_MACHINE,
    "azurerm_virtual_machine": ResourceKind.LINUX_VIRTUAL_MACHINE,
    "azurerm_function_app": ResourceKind.FUNCTION_APP,
    "azurerm_linux_function_app": ResourceKind.FUNCTION_APP,
    "azurerm_windows_function_app": ResourceKind.FUNCTION_APP,
    "azurerm_container_group": ResourceKind.CONTAINER_GROUP,
    "azurerm_kubernetes_cluster": ResourceKind.KUBERNETES_CLUSTER,
    "azurerm_app_service": ResourceKind.APP_SERVICE,
    "azurerm_linux_web_app": ResourceKind.APP_SERVICE,
    "azurerm_windows_web_app": ResourceKind.APP_SERVICE,

    # Storage
    "azurerm_storage_account": ResourceKind.STORAGE_ACCOUNT,
    "azurerm_storage_container": ResourceKind.STORAGE_CONTAINER,
    "azurerm_managed_disk": ResourceKind.MANAGED_DISK,
    "azurerm_storage_share": ResourceKind.STORAGE_SHARE,

    # Database
    "azurerm_mssql_database": ResourceKind.MSSQL_DATABASE,
    "azurerm_sql_database": ResourceKind.MSSQL_DATABASE,
    "azurerm_postgresql_flexible_server": ResourceKind.POSTGRESQL_FLEXIBLE_SERVER,
    "azurerm_mysql_flexible_server": ResourceKind.MYSQL_FLEXIBLE_SERVER,
    "azurerm_cosmosdb_account": ResourceKind.COSMOSDB_ACCOUNT,
    "azurerm_redis_cache": ResourceKind.REDIS_CACHE,

    # Networking
    "azurerm_lb": ResourceKind.LOAD_BALANCER,
    "azurerm_application_gateway": ResourceKind.APPLICATION_GATEWAY,
    "azurerm_dns_zone": ResourceKind.DNS_ZONE,
    "azurerm_cdn_profile": ResourceKind.CDN_PROFILE,
    "azurerm_frontdoor": ResourceKind.FRONT_DOOR,
    "azurerm_virtual_network": ResourceKind.VIRTUAL_NETWORK,

    # Security
    "azurerm_key_vault": ResourceKind.KEY_VAULT,
    "azurerm_aadb2c_directory": ResourceKind.AADB2C_DIRECTORY,
    "azurerm_firewall": ResourceKind.FIREWALL,

    # Messaging
    "azurerm_servicebus_namespace": ResourceKind.SERVICEBUS_NAMESPACE,
    "azurerm_servicebus_queue": ResourceKind.SERVICEBUS_QUEUE,
    "azurerm_eventhub": ResourceKind.EVENTHUB,
    "azurerm_eventhub_namespace": ResourceKind.EVENTHUB,
    "azurerm_eventgrid_topic": ResourceKind.EVENTGRID_TOPIC,
    "azurerm_logic_app_workflow": ResourceKind.LOGIC_APP_WORKFLOW,
}


# -----------------------------------------------------------------------------
# Categories
# -----------------------------------------------------------------------------

KIND_CATEGORIES: Dict[str, Category] = {
    ResourceKind.LINUX_VIRTUAL_MACHINE.value: Category.COMPUTE,
    ResourceKind.WINDOWS_VIRTUAL_MACHINE.value: Category.COMPUTE,
    ResourceKind.APP_SERVICE.value: Category.COMPUTE,
    ResourceKind.FUNCTION_APP.value: Category.SERVERLESS,
    ResourceKind.LOGIC_APP_WORKFLOW.value: Category.SERVERLESS,
    ResourceKind.CONTAINER_GROUP.value: Category.CONTAINER,
    ResourceKind.KUBERNETES_CLUSTER.value: Category.KUBERNETES,

    ResourceKind.STORAGE_ACCOUNT.value: Category.OBJECT_STORAGE,
    ResourceKind.STORAGE_CONTAINER.value: Category.OBJECT_STORAGE,
    ResourceKind.MANAGED_DISK.value: Category.BLOCK_STORAGE,
    ResourceKind.STORAGE_SHARE.value: Category.FILE_STORAGE,

    ResourceKind.MSSQL_DATABASE.value: Category.SQL_DATABASE,
    ResourceKind.POSTGRESQL_FLEXIBLE_SERVER.value: Category.SQL_DATABASE,
    ResourceKind.MYSQL_FLEXIBLE_SERVER.value: Category.SQL_DATABASE,
    ResourceKind.COSMOSDB_ACCOUNT.value: Category.NOSQL_DATABASE,
    ResourceKind.REDIS_CACHE.value: Category.CACHE,

    ResourceKind.LOAD_BALANCER.value: Category.LOAD_BALANCER,
    ResourceKind.APPLICATION_GATEWAY.value: Category.LOAD_BALANCER,
    ResourceKind.DNS_ZONE.value: Category.DNS,
    ResourceKind.CDN_PROFILE.value: Category.CDN,
    ResourceKind.FRONT_DOOR.value: Category.CDN,
    ResourceKind.VIRTUAL_NETWORK.value: Category.VPC,

    ResourceKind.AADB2C_DIRECTORY.value: Category.AUTH,
    ResourceKind.KEY_VAULT.value: Category.SECRETS,
    ResourceKind.FIREWALL.value: Category.FIREWALL,

    ResourceKind.SERVICEBUS_NAMESPACE.value: Category.QUEUE,
    ResourceKind.SERVICEBUS_QUEUE.value: Category.QUEUE,
    ResourceKind.EVENTHUB.value: Category.STREAM,
    ResourceKind.EVENTGRID_TOPIC.value: Category.PUBSUB,
}


# -----------------------------------------------------------------------------
# Lookups
# -----------------------------------------------------------------------------

def map_arm_type(native_type: str) -> Optional[ResourceKind]:
    """
    Resolve an ARM/Bicep resource type to a canonical kind.

    Strips any ``@apiVersion`` suffix, then tries an exact lower-cased lookup
    and finally substring containment against the table keys.

    Returns:
        The canonical kind, or None when the type is unknown
    """
    normalized = native_type.split("@", 1)[0].strip().lower()
    if not normalized:
        return None

    mapping = ARM_TYPE_MAP.get(normalized)
    if mapping:
        return mapping

    # Versioned and child types, e.g. microsoft.sql/servers/databases/auditingsettings
    for key in _ARM_KEYS_BY_LENGTH:
        if key in normalized:
            return ARM_TYPE_MAP[key]
    return None


def map_terraform_type(native_type: str) -> Optional[ResourceKind]:
    """Resolve a Terraform azurerm_* type; exact lower-cased lookup only."""
    return TERRAFORM_TYPE_MAP.get(native_type.strip().lower())


def resolve_kind(native_type: str, terraform: bool = False) -> str:
    """Canonical kind value for a native type, or the native type unchanged."""
    mapped = map_terraform_type(native_type) if terraform else map_arm_type(native_type)
    if mapped is None:
        logger.debug(f"No canonical kind for {native_type}, passing through")
        return native_type
    return mapped.value


def category_for(kind: str) -> Category:
    return KIND_CATEGORIES.get(kind.lower(), Category.UNKNOWN)


def new_resource(
    resource_id: str,
    name: str,
    native_type: str,
    terraform: bool = False,
) -> Resource:
    """Build a Resource whose kind and category come from the type tables."""
    kind = resolve_kind(native_type, terraform=terraform)
    return Resource(id=resource_id, name=name, kind=kind, category=category_for(kind))


def is_windows_vm(properties: Dict[str, Any]) -> bool:
    """True when an ARM/Bicep VM properties bag describes a Windows guest."""
    os_profile = properties.get("osProfile") or {}
    if isinstance(os_profile, dict) and "windowsConfiguration" in os_profile:
        return True
    storage_profile = properties.get("storageProfile") or {}
    os_disk = storage_profile.get("osDisk") if isinstance(storage_profile, dict) else None
    return isinstance(os_disk, dict) and str(os_disk.get("osType", "")).lower() == "windows"
