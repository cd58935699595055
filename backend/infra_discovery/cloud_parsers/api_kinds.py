"""
Live API Scan Kinds

One KindScan per resource kind the live scanner discovers. A scan lists its
kind through the azure-mgmt clients handed out by AzureClientManager and
yields Resources carrying a curated projection of the SDK model:
- id: the resource name, or ``<parent>/<child>`` for nested sub-resources
- native_id: the ARM resource id
- config: the fields named in the kind's projection table
- tags: the native tags (container metadata for blob containers)

Scans only yield; region/kind filtering and accumulation happen in the
scanner. SCANS lists them in discovery order.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from infra_discovery.core.context import DiscoveryContext
from infra_discovery.models.infra_models import Resource, ResourceKind
from infra_discovery.cloud_parsers.type_mapping import category_for

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Paging and SDK model helpers
# -----------------------------------------------------------------------------

def iter_pages(listing: Any, ctx: DiscoveryContext) -> Iterator[List[Any]]:
    """
    Drain a list call page by page, checking for cancellation before each page.

    azure-core ``ItemPaged`` results are walked through ``by_page()``; any
    other iterable is treated as a single page.
    """
    if hasattr(listing, "by_page"):
        pages = iter(listing.by_page())
        while True:
            ctx.check()
            try:
                page = next(pages)
            except StopIteration:
                return
            items = list(page)
            logger.debug(f"Fetched page of {len(items)} items")
            yield items
    else:
        ctx.check()
        yield list(listing or [])


def to_dict(item: Any) -> Dict[str, Any]:
    """SDK model -> plain dict (snake_case attribute keys)."""
    if isinstance(item, dict):
        return item
    if hasattr(item, "as_dict"):
        return item.as_dict()
    return dict(vars(item))


def dig(data: Any, path: str, default: Any = None) -> Any:
    """Follow a dotted path through nested dicts."""
    current = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current if current is not None else default


def segment_after(arm_id: str, segment: str) -> str:
    """The path element following ``segment`` in an ARM id (case-insensitive)."""
    parts = (arm_id or "").split("/")
    for i, part in enumerate(parts[:-1]):
        if part.lower() == segment.lower():
            return parts[i + 1]
    return ""


def resource_group_of(arm_id: str) -> str:
    return segment_after(arm_id, "resourceGroups")


def names_of(items: Any) -> List[str]:
    """Names of a list of sub-resources (dicts with ``name`` or bare ARM ids)."""
    names = []
    for item in items or []:
        if isinstance(item, dict) and item.get("name"):
            names.append(item["name"])
        elif isinstance(item, dict) and item.get("id"):
            names.append(str(item["id"]).rsplit("/", 1)[-1])
        elif isinstance(item, str):
            names.append(item.rsplit("/", 1)[-1])
    return names


def build_resource(
    data: Dict[str, Any],
    kind: ResourceKind,
    fields: Optional[Dict[str, str]] = None,
    resource_id: Optional[str] = None,
    name: Optional[str] = None,
    region: Optional[str] = None,
) -> Resource:
    """
    Create a Resource from an SDK dict and project ``fields`` (config key ->
    dotted path) into its config. Missing fields are left out.
    """
    name = name or data.get("name") or ""
    resource = Resource(
        id=resource_id or name,
        name=name,
        kind=kind.value,
        category=category_for(kind.value),
        region=region if region is not None else (data.get("location") or ""),
        native_id=data.get("id"),
    )
    resource_group = resource_group_of(data.get("id", ""))
    if resource_group:
        resource.set_config("resource_group", resource_group)
    for key, path in (fields or {}).items():
        value = dig(data, path)
        if value is not None:
            resource.set_config(key, value)
    for key, value in (data.get("tags") or {}).items():
        if value is not None:
            resource.add_tag(key, str(value))
    return resource


# -----------------------------------------------------------------------------
# Scan session
# -----------------------------------------------------------------------------

@dataclass
class ScanSession:
    """What a scan needs: the client manager and the cancellation context."""

    clients: Any
    ctx: DiscoveryContext

    def client(self, service: str) -> Any:
        return self.clients.get(service)

    def items(self, listing: Any) -> Iterator[Dict[str, Any]]:
        for page in iter_pages(listing, self.ctx):
            for item in page:
                yield to_dict(item)


@dataclass(frozen=True)
class KindScan:
    """One live discovery step."""

    label: str
    kinds: Tuple[ResourceKind, ...]
    collect: Callable[[ScanSession], Iterable[Resource]]

    @property
    def kind_values(self) -> List[str]:
        return [k.value for k in self.kinds]


# -----------------------------------------------------------------------------
# Compute
# -----------------------------------------------------------------------------

VM_FIELDS = {
    "vm_size": "hardware_profile.vm_size",
    "os_disk_size_gb": "storage_profile.os_disk.disk_size_gb",
    "os_disk_type": "storage_profile.os_disk.managed_disk.storage_account_type",
    "image_publisher": "storage_profile.image_reference.publisher",
    "image_offer": "storage_profile.image_reference.offer",
    "image_sku": "storage_profile.image_reference.sku",
    "admin_username": "os_profile.admin_username",
    "provisioning_state": "provisioning_state",
    "zones": "zones",
}


def scan_virtual_machines(session: ScanSession) -> Iterator[Resource]:
    compute = session.client("compute")
    for vm in session.items(compute.virtual_machines.list_all()):
        windows = (
            dig(vm, "os_profile.windows_configuration") is not None
            or str(dig(vm, "storage_profile.os_disk.os_type", "")).lower() == "windows"
        )
        kind = ResourceKind.WINDOWS_VIRTUAL_MACHINE if windows else ResourceKind.LINUX_VIRTUAL_MACHINE
        resource = build_resource(vm, kind, VM_FIELDS)
        resource.set_config("data_disks", [
            {"name": d.get("name"), "size_gb": d.get("disk_size_gb"), "lun": d.get("lun")}
            for d in dig(vm, "storage_profile.data_disks", [])
        ])
        resource.set_config("network_interfaces", names_of(dig(vm, "network_profile.network_interfaces", [])))
        yield resource


WEB_APP_FIELDS = {
    "kind": "kind",
    "state": "state",
    "enabled": "enabled",
    "default_host_name": "default_host_name",
    "https_only": "https_only",
    "client_cert_enabled": "client_cert_enabled",
    "availability_state": "availability_state",
    "usage_state": "usage_state",
    "host_names": "host_names",
    "outbound_ip_addresses": "outbound_ip_addresses",
    "server_farm_id": "server_farm_id",
    "identity_type": "identity.type",
}


def _is_function_app(site: Dict[str, Any]) -> bool:
    return "functionapp" in str(site.get("kind") or "").lower()


def scan_function_apps(session: ScanSession) -> Iterator[Resource]:
    web = session.client("web")
    for site in session.items(web.web_apps.list()):
        if _is_function_app(site):
            yield build_resource(site, ResourceKind.FUNCTION_APP, WEB_APP_FIELDS)


def scan_app_services(session: ScanSession) -> Iterator[Resource]:
    web = session.client("web")
    for site in session.items(web.web_apps.list()):
        if not _is_function_app(site):
            yield build_resource(site, ResourceKind.APP_SERVICE, WEB_APP_FIELDS)


AKS_FIELDS = {
    "kubernetes_version": "kubernetes_version",
    "dns_prefix": "dns_prefix",
    "fqdn": "fqdn",
    "node_resource_group": "node_resource_group",
    "enable_rbac": "enable_rbac",
    "network_plugin": "network_profile.network_plugin",
    "network_policy": "network_profile.network_policy",
    "sku_tier": "sku.tier",
    "provisioning_state": "provisioning_state",
}


def scan_kubernetes_clusters(session: ScanSession) -> Iterator[Resource]:
    aks = session.client("containerservice")
    for cluster in session.items(aks.managed_clusters.list()):
        resource = build_resource(cluster, ResourceKind.KUBERNETES_CLUSTER, AKS_FIELDS)
        resource.set_config("agent_pools", [
            {
                "name": pool.get("name"),
                "count": pool.get("count"),
                "vm_size": pool.get("vm_size"),
                "os_type": pool.get("os_type"),
                "mode": pool.get("mode"),
            }
            for pool in cluster.get("agent_pool_profiles") or []
        ])
        yield resource


CONTAINER_GROUP_FIELDS = {
    "os_type": "os_type",
    "restart_policy": "restart_policy",
    "ip_address": "ip_address.ip",
    "ip_address_type": "ip_address.type",
    "fqdn": "ip_address.fqdn",
    "sku": "sku",
    "provisioning_state": "provisioning_state",
}


def scan_container_groups(session: ScanSession) -> Iterator[Resource]:
    aci = session.client("containerinstance")
    for group in session.items(aci.container_groups.list()):
        resource = build_resource(group, ResourceKind.CONTAINER_GROUP, CONTAINER_GROUP_FIELDS)
        resource.set_config("containers", [
            {
                "name": c.get("name"),
                "image": c.get("image"),
                "cpu": dig(c, "resources.requests.cpu"),
                "memory_in_gb": dig(c, "resources.requests.memory_in_gb"),
                "ports": [p.get("port") for p in c.get("ports") or []],
            }
            for c in group.get("containers") or []
        ])
        yield resource


# -----------------------------------------------------------------------------
# Storage
# -----------------------------------------------------------------------------

STORAGE_ACCOUNT_FIELDS = {
    "sku_name": "sku.name",
    "sku_tier": "sku.tier",
    "kind": "kind",
    "access_tier": "access_tier",
    "https_only": "enable_https_traffic_only",
    "minimum_tls_version": "minimum_tls_version",
    "blob_encryption_enabled": "encryption.services.blob.enabled",
    "file_encryption_enabled": "encryption.services.file.enabled",
    "blob_endpoint": "primary_endpoints.blob",
    "file_endpoint": "primary_endpoints.file",
}


def scan_storage_accounts(session: ScanSession) -> Iterator[Resource]:
    storage = session.client("storage")
    for account in session.items(storage.storage_accounts.list()):
        yield build_resource(account, ResourceKind.STORAGE_ACCOUNT, STORAGE_ACCOUNT_FIELDS)


BLOB_CONTAINER_FIELDS = {
    "public_access": "public_access",
    "lease_status": "lease_status",
    "lease_state": "lease_state",
    "last_modified_time": "last_modified_time",
    "has_immutability_policy": "has_immutability_policy",
    "has_legal_hold": "has_legal_hold",
    "default_encryption_scope": "default_encryption_scope",
    "immutable_storage_enabled": "immutable_storage_with_versioning.enabled",
}


def scan_blob_containers(session: ScanSession) -> Iterator[Resource]:
    storage = session.client("storage")
    for account in session.items(storage.storage_accounts.list()):
        account_name = account.get("name", "")
        group = resource_group_of(account.get("id", ""))
        for container in session.items(storage.blob_containers.list(group, account_name)):
            container_name = container.get("name", "")
            resource = build_resource(
                container,
                ResourceKind.STORAGE_CONTAINER,
                BLOB_CONTAINER_FIELDS,
                resource_id=f"{account_name}/{container_name}",
                region=account.get("location") or "",
            )
            resource.set_config("storage_account", account_name)
            resource.set_config("container_name", container_name)
            for key, value in (container.get("metadata") or {}).items():
                resource.add_tag(key, str(value))
            yield resource


FILE_SHARE_FIELDS = {
    "share_quota": "share_quota",
    "access_tier": "access_tier",
    "enabled_protocols": "enabled_protocols",
    "root_squash": "root_squash",
    "last_modified_time": "last_modified_time",
    "share_usage_bytes": "share_usage_bytes",
    "lease_state": "lease_state",
    "deleted": "deleted",
}


def scan_file_shares(session: ScanSession) -> Iterator[Resource]:
    storage = session.client("storage")
    for account in session.items(storage.storage_accounts.list()):
        account_name = account.get("name", "")
        group = resource_group_of(account.get("id", ""))
        for share in session.items(storage.file_shares.list(group, account_name)):
            share_name = share.get("name", "")
            resource = build_resource(
                share,
                ResourceKind.STORAGE_SHARE,
                FILE_SHARE_FIELDS,
                resource_id=f"{account_name}/{share_name}",
                region=account.get("location") or "",
            )
            resource.set_config("storage_account", account_name)
            resource.set_config("share_name", share_name)
            yield resource


MANAGED_DISK_FIELDS = {
    "disk_size_gb": "disk_size_gb",
    "sku_name": "sku.name",
    "disk_state": "disk_state",
    "os_type": "os_type",
    "managed_by": "managed_by",
    "create_option": "creation_data.create_option",
    "encryption_type": "encryption.type",
    "disk_iops_read_write": "disk_iops_read_write",
    "disk_mbps_read_write": "disk_m_bps_read_write",
    "zones": "zones",
}


def scan_managed_disks(session: ScanSession) -> Iterator[Resource]:
    compute = session.client("compute")
    for disk in session.items(compute.disks.list()):
        yield build_resource(disk, ResourceKind.MANAGED_DISK, MANAGED_DISK_FIELDS)


# -----------------------------------------------------------------------------
# Databases
# -----------------------------------------------------------------------------

SQL_DATABASE_FIELDS = {
    "status": "status",
    "max_size_bytes": "max_size_bytes",
    "collation": "collation",
    "sku_name": "sku.name",
    "sku_tier": "sku.tier",
    "sku_capacity": "sku.capacity",
    "zone_redundant": "zone_redundant",
}


def scan_sql_databases(session: ScanSession) -> Iterator[Resource]:
    sql = session.client("sql")
    for server in session.items(sql.servers.list()):
        server_name = server.get("name", "")
        group = resource_group_of(server.get("id", ""))
        for database in session.items(sql.databases.list_by_server(group, server_name)):
            database_name = database.get("name", "")
            if database_name == "master":
                continue
            resource = build_resource(
                database,
                ResourceKind.MSSQL_DATABASE,
                SQL_DATABASE_FIELDS,
                resource_id=f"{server_name}/{database_name}",
                name=f"{server_name}/{database_name}",
                region=server.get("location") or "",
            )
            resource.set_config("server_name", server_name)
            resource.set_config("database_name", database_name)
            for key, path in (("version", "version"), ("fqdn", "fully_qualified_domain_name")):
                if server.get(path) is not None:
                    resource.set_config(key, server[path])
            yield resource


FLEXIBLE_SERVER_FIELDS = {
    "version": "version",
    "sku_name": "sku.name",
    "sku_tier": "sku.tier",
    "storage_size_gb": "storage.storage_size_gb",
    "fqdn": "fully_qualified_domain_name",
    "state": "state",
    "administrator_login": "administrator_login",
    "backup_retention_days": "backup.backup_retention_days",
    "geo_redundant_backup": "backup.geo_redundant_backup",
    "high_availability_mode": "high_availability.mode",
    "availability_zone": "availability_zone",
}


def scan_postgresql_servers(session: ScanSession) -> Iterator[Resource]:
    postgres = session.client("postgresql")
    for server in session.items(postgres.servers.list()):
        yield build_resource(server, ResourceKind.POSTGRESQL_FLEXIBLE_SERVER, FLEXIBLE_SERVER_FIELDS)


def scan_mysql_servers(session: ScanSession) -> Iterator[Resource]:
    mysql = session.client("mysql")
    for server in session.items(mysql.servers.list()):
        yield build_resource(server, ResourceKind.MYSQL_FLEXIBLE_SERVER, FLEXIBLE_SERVER_FIELDS)


COSMOSDB_FIELDS = {
    "kind": "kind",
    "offer_type": "database_account_offer_type",
    "consistency_level": "consistency_policy.default_consistency_level",
    "enable_automatic_failover": "enable_automatic_failover",
    "enable_multiple_write_locations": "enable_multiple_write_locations",
    "document_endpoint": "document_endpoint",
    "public_network_access": "public_network_access",
}


def scan_cosmosdb_accounts(session: ScanSession) -> Iterator[Resource]:
    cosmos = session.client("cosmosdb")
    for account in session.items(cosmos.database_accounts.list()):
        resource = build_resource(account, ResourceKind.COSMOSDB_ACCOUNT, COSMOSDB_FIELDS)
        resource.set_config("locations", [loc.get("location_name") for loc in account.get("locations") or []])
        resource.set_config("capabilities", names_of(account.get("capabilities")))
        yield resource


REDIS_FIELDS = {
    "sku_name": "sku.name",
    "sku_family": "sku.family",
    "sku_capacity": "sku.capacity",
    "redis_version": "redis_version",
    "enable_non_ssl_port": "enable_non_ssl_port",
    "minimum_tls_version": "minimum_tls_version",
    "host_name": "host_name",
    "port": "port",
    "ssl_port": "ssl_port",
    "shard_count": "shard_count",
}


def scan_redis_caches(session: ScanSession) -> Iterator[Resource]:
    redis = session.client("redis")
    for cache in session.items(redis.redis.list_by_subscription()):
        yield build_resource(cache, ResourceKind.REDIS_CACHE, REDIS_FIELDS)


# -----------------------------------------------------------------------------
# Networking
# -----------------------------------------------------------------------------

DNS_ZONE_FIELDS = {
    "zone_type": "zone_type",
    "number_of_record_sets": "number_of_record_sets",
    "name_servers": "name_servers",
}


def scan_dns_zones(session: ScanSession) -> Iterator[Resource]:
    dns = session.client("dns")
    for zone in session.items(dns.zones.list()):
        yield build_resource(zone, ResourceKind.DNS_ZONE, DNS_ZONE_FIELDS)


CDN_PROFILE_FIELDS = {
    "sku_name": "sku.name",
    "resource_state": "resource_state",
    "provisioning_state": "provisioning_state",
    "front_door_id": "front_door_id",
}


def scan_cdn_profiles(session: ScanSession) -> Iterator[Resource]:
    cdn = session.client("cdn")
    for profile in session.items(cdn.profiles.list()):
        yield build_resource(profile, ResourceKind.CDN_PROFILE, CDN_PROFILE_FIELDS)


FRONT_DOOR_FIELDS = {
    "enabled_state": "enabled_state",
    "cname": "cname",
    "friendly_name": "friendly_name",
    "resource_state": "resource_state",
}


def scan_front_doors(session: ScanSession) -> Iterator[Resource]:
    frontdoor = session.client("frontdoor")
    for door in session.items(frontdoor.front_doors.list()):
        resource = build_resource(door, ResourceKind.FRONT_DOOR, FRONT_DOOR_FIELDS)
        resource.set_config("frontend_endpoints", [
            {"name": e.get("name"), "host_name": e.get("host_name")}
            for e in door.get("frontend_endpoints") or []
        ])
        resource.set_config("backend_pools", names_of(door.get("backend_pools")))
        resource.set_config("routing_rules", names_of(door.get("routing_rules")))
        yield resource


APP_GATEWAY_FIELDS = {
    "sku_name": "sku.name",
    "sku_tier": "sku.tier",
    "sku_capacity": "sku.capacity",
    "operational_state": "operational_state",
    "enable_http2": "enable_http2",
    "waf_enabled": "web_application_firewall_configuration.enabled",
    "waf_mode": "web_application_firewall_configuration.firewall_mode",
    "firewall_policy_id": "firewall_policy.id",
}


def scan_application_gateways(session: ScanSession) -> Iterator[Resource]:
    network = session.client("network")
    for gateway in session.items(network.application_gateways.list_all()):
        resource = build_resource(gateway, ResourceKind.APPLICATION_GATEWAY, APP_GATEWAY_FIELDS)
        resource.set_config("frontend_ports", [p.get("port") for p in gateway.get("frontend_ports") or []])
        resource.set_config("backend_address_pools", names_of(gateway.get("backend_address_pools")))
        resource.set_config("http_listeners", names_of(gateway.get("http_listeners")))
        resource.set_config("request_routing_rules", names_of(gateway.get("request_routing_rules")))
        yield resource


LOAD_BALANCER_FIELDS = {
    "sku_name": "sku.name",
    "sku_tier": "sku.tier",
    "provisioning_state": "provisioning_state",
}


def scan_load_balancers(session: ScanSession) -> Iterator[Resource]:
    network = session.client("network")
    for balancer in session.items(network.load_balancers.list_all()):
        resource = build_resource(balancer, ResourceKind.LOAD_BALANCER, LOAD_BALANCER_FIELDS)
        resource.set_config("frontend_ip_configurations", names_of(balancer.get("frontend_ip_configurations")))
        resource.set_config("backend_address_pools", names_of(balancer.get("backend_address_pools")))
        resource.set_config("load_balancing_rules", [
            {
                "name": rule.get("name"),
                "protocol": rule.get("protocol"),
                "frontend_port": rule.get("frontend_port"),
                "backend_port": rule.get("backend_port"),
            }
            for rule in balancer.get("load_balancing_rules") or []
        ])
        resource.set_config("probes", names_of(balancer.get("probes")))
        yield resource


VIRTUAL_NETWORK_FIELDS = {
    "address_space": "address_space.address_prefixes",
    "dns_servers": "dhcp_options.dns_servers",
    "enable_ddos_protection": "enable_ddos_protection",
    "provisioning_state": "provisioning_state",
}


def scan_virtual_networks(session: ScanSession) -> Iterator[Resource]:
    network = session.client("network")
    for vnet in session.items(network.virtual_networks.list_all()):
        resource = build_resource(vnet, ResourceKind.VIRTUAL_NETWORK, VIRTUAL_NETWORK_FIELDS)
        resource.set_config("subnets", [
            {"name": s.get("name"), "address_prefix": s.get("address_prefix")}
            for s in vnet.get("subnets") or []
        ])
        resource.set_config("peerings", names_of(vnet.get("virtual_network_peerings")))
        yield resource


# -----------------------------------------------------------------------------
# Security
# -----------------------------------------------------------------------------

KEY_VAULT_FIELDS = {
    "sku_name": "properties.sku.name",
    "tenant_id": "properties.tenant_id",
    "vault_uri": "properties.vault_uri",
    "enable_soft_delete": "properties.enable_soft_delete",
    "soft_delete_retention_in_days": "properties.soft_delete_retention_in_days",
    "enable_purge_protection": "properties.enable_purge_protection",
    "enable_rbac_authorization": "properties.enable_rbac_authorization",
    "public_network_access": "properties.public_network_access",
}


def scan_key_vaults(session: ScanSession) -> Iterator[Resource]:
    keyvault = session.client("keyvault")
    for vault in session.items(keyvault.vaults.list_by_subscription()):
        yield build_resource(vault, ResourceKind.KEY_VAULT, KEY_VAULT_FIELDS)


FIREWALL_FIELDS = {
    "sku_name": "sku.name",
    "sku_tier": "sku.tier",
    "threat_intel_mode": "threat_intel_mode",
    "firewall_policy_id": "firewall_policy.id",
    "provisioning_state": "provisioning_state",
    "zones": "zones",
}


def scan_firewalls(session: ScanSession) -> Iterator[Resource]:
    network = session.client("network")
    for firewall in session.items(network.azure_firewalls.list_all()):
        resource = build_resource(firewall, ResourceKind.FIREWALL, FIREWALL_FIELDS)
        resource.set_config("ip_configurations", [
            {"name": c.get("name"), "private_ip_address": c.get("private_ip_address")}
            for c in firewall.get("ip_configurations") or []
        ])
        yield resource


B2C_RESOURCE_FILTER = "resourceType eq 'Microsoft.AzureActiveDirectory/b2cDirectories'"

B2C_FIELDS = {
    "sku_name": "sku.name",
    "sku_tier": "sku.tier",
    "tenant_id": "properties.tenantId",
    "billing_type": "properties.billingConfig.billingType",
    "effective_start_date": "properties.billingConfig.effectiveStartDateUtc",
    "country_code": "properties.countryCode",
    "is_production_tenant": "properties.isProductionTenant",
}


def scan_b2c_directories(session: ScanSession) -> Iterator[Resource]:
    resources = session.client("resource")
    listing = resources.resources.list(filter=B2C_RESOURCE_FILTER, expand="properties")
    for directory in session.items(listing):
        resource = build_resource(directory, ResourceKind.AADB2C_DIRECTORY, B2C_FIELDS)
        resource.set_config("tenant_name", resource.name)
        resource.set_config("domain_name", resource.name)
        resource.set_config("location", resource.region)
        yield resource


# -----------------------------------------------------------------------------
# Messaging and integration
# -----------------------------------------------------------------------------

NAMESPACE_FIELDS = {
    "sku_name": "sku.name",
    "sku_tier": "sku.tier",
    "sku_capacity": "sku.capacity",
    "service_bus_endpoint": "service_bus_endpoint",
    "status": "status",
    "zone_redundant": "zone_redundant",
    "minimum_tls_version": "minimum_tls_version",
}


def scan_servicebus_namespaces(session: ScanSession) -> Iterator[Resource]:
    servicebus = session.client("servicebus")
    for namespace in session.items(servicebus.namespaces.list()):
        yield build_resource(namespace, ResourceKind.SERVICEBUS_NAMESPACE, NAMESPACE_FIELDS)


QUEUE_FIELDS = {
    "max_size_in_megabytes": "max_size_in_megabytes",
    "lock_duration": "lock_duration",
    "max_delivery_count": "max_delivery_count",
    "requires_duplicate_detection": "requires_duplicate_detection",
    "requires_session": "requires_session",
    "dead_lettering_on_message_expiration": "dead_lettering_on_message_expiration",
    "enable_partitioning": "enable_partitioning",
    "default_message_ttl": "default_message_time_to_live",
    "status": "status",
}


def scan_servicebus_queues(session: ScanSession) -> Iterator[Resource]:
    servicebus = session.client("servicebus")
    for namespace in session.items(servicebus.namespaces.list()):
        namespace_name = namespace.get("name", "")
        group = resource_group_of(namespace.get("id", ""))
        for queue in session.items(servicebus.queues.list_by_namespace(group, namespace_name)):
            queue_name = queue.get("name", "")
            resource = build_resource(
                queue,
                ResourceKind.SERVICEBUS_QUEUE,
                QUEUE_FIELDS,
                resource_id=f"{namespace_name}/{queue_name}",
                region=namespace.get("location") or "",
            )
            resource.set_config("namespace_name", namespace_name)
            resource.set_config("queue_name", queue_name)
            yield resource


EVENT_HUB_FIELDS = {
    "partition_count": "partition_count",
    "message_retention_in_days": "message_retention_in_days",
    "partition_ids": "partition_ids",
    "status": "status",
    "capture_enabled": "capture_description.enabled",
    "capture_encoding": "capture_description.encoding",
    "capture_interval_in_seconds": "capture_description.interval_in_seconds",
    "capture_destination": "capture_description.destination.name",
}


def scan_event_hubs(session: ScanSession) -> Iterator[Resource]:
    eventhub = session.client("eventhub")
    for namespace in session.items(eventhub.namespaces.list()):
        namespace_name = namespace.get("name", "")
        group = resource_group_of(namespace.get("id", ""))
        for hub in session.items(eventhub.event_hubs.list_by_namespace(group, namespace_name)):
            hub_name = hub.get("name", "")
            resource = build_resource(
                hub,
                ResourceKind.EVENTHUB,
                EVENT_HUB_FIELDS,
                resource_id=f"{namespace_name}/{hub_name}",
                region=namespace.get("location") or "",
            )
            resource.set_config("namespace_name", namespace_name)
            resource.set_config("event_hub_name", hub_name)
            yield resource


EVENTGRID_TOPIC_FIELDS = {
    "endpoint": "endpoint",
    "input_schema": "input_schema",
    "public_network_access": "public_network_access",
    "provisioning_state": "provisioning_state",
}


def scan_eventgrid_topics(session: ScanSession) -> Iterator[Resource]:
    eventgrid = session.client("eventgrid")
    for topic in session.items(eventgrid.topics.list_by_subscription()):
        yield build_resource(topic, ResourceKind.EVENTGRID_TOPIC, EVENTGRID_TOPIC_FIELDS)


LOGIC_APP_FIELDS = {
    "state": "state",
    "version": "version",
    "access_endpoint": "access_endpoint",
    "sku_name": "sku.name",
    "integration_account_id": "integration_account.id",
}


def scan_logic_app_workflows(session: ScanSession) -> Iterator[Resource]:
    logic = session.client("logic")
    for workflow in session.items(logic.workflows.list_by_subscription()):
        resource = build_resource(workflow, ResourceKind.LOGIC_APP_WORKFLOW, LOGIC_APP_FIELDS)
        triggers = dig(workflow, "definition.triggers", {})
        actions = dig(workflow, "definition.actions", {})
        if isinstance(triggers, dict):
            resource.set_config("triggers", sorted(triggers))
        if isinstance(actions, dict):
            resource.set_config("actions", sorted(actions))
        yield resource


# -----------------------------------------------------------------------------
# Discovery order
# -----------------------------------------------------------------------------

def _scan(label: str, kind: ResourceKind, collect: Callable[[ScanSession], Iterable[Resource]]) -> KindScan:
    return KindScan(label=label, kinds=(kind,), collect=collect)


SCANS: Tuple[KindScan, ...] = (
    KindScan(
        label="virtual_machines",
        kinds=(ResourceKind.LINUX_VIRTUAL_MACHINE, ResourceKind.WINDOWS_VIRTUAL_MACHINE),
        collect=scan_virtual_machines,
    ),
    _scan("storage_accounts", ResourceKind.STORAGE_ACCOUNT, scan_storage_accounts),
    _scan("blob_containers", ResourceKind.STORAGE_CONTAINER, scan_blob_containers),
    _scan("managed_disks", ResourceKind.MANAGED_DISK, scan_managed_disks),
    _scan("file_shares", ResourceKind.STORAGE_SHARE, scan_file_shares),
    _scan("sql_databases", ResourceKind.MSSQL_DATABASE, scan_sql_databases),
    _scan("postgresql_servers", ResourceKind.POSTGRESQL_FLEXIBLE_SERVER, scan_postgresql_servers),
    _scan("mysql_servers", ResourceKind.MYSQL_FLEXIBLE_SERVER, scan_mysql_servers),
    _scan("cosmosdb_accounts", ResourceKind.COSMOSDB_ACCOUNT, scan_cosmosdb_accounts),
    _scan("redis_caches", ResourceKind.REDIS_CACHE, scan_redis_caches),
    _scan("dns_zones", ResourceKind.DNS_ZONE, scan_dns_zones),
    _scan("kubernetes_clusters", ResourceKind.KUBERNETES_CLUSTER, scan_kubernetes_clusters),
    _scan("container_groups", ResourceKind.CONTAINER_GROUP, scan_container_groups),
    _scan("cdn_profiles", ResourceKind.CDN_PROFILE, scan_cdn_profiles),
    _scan("front_doors", ResourceKind.FRONT_DOOR, scan_front_doors),
    _scan("application_gateways", ResourceKind.APPLICATION_GATEWAY, scan_application_gateways),
    _scan("servicebus_namespaces", ResourceKind.SERVICEBUS_NAMESPACE, scan_servicebus_namespaces),
    _scan("servicebus_queues", ResourceKind.SERVICEBUS_QUEUE, scan_servicebus_queues),
    _scan("event_hubs", ResourceKind.EVENTHUB, scan_event_hubs),
    _scan("eventgrid_topics", ResourceKind.EVENTGRID_TOPIC, scan_eventgrid_topics),
    _scan("logic_app_workflows", ResourceKind.LOGIC_APP_WORKFLOW, scan_logic_app_workflows),
    _scan("key_vaults", ResourceKind.KEY_VAULT, scan_key_vaults),
    _scan("firewalls", ResourceKind.FIREWALL, scan_firewalls),
    _scan("function_apps", ResourceKind.FUNCTION_APP, scan_function_apps),
    _scan("app_services", ResourceKind.APP_SERVICE, scan_app_services),
    _scan("load_balancers", ResourceKind.LOAD_BALANCER, scan_load_balancers),
    _scan("virtual_networks", ResourceKind.VIRTUAL_NETWORK, scan_virtual_networks),
    _scan("b2c_directories", ResourceKind.AADB2C_DIRECTORY, scan_b2c_directories),
)
