from unittest.mock import MagicMock

import pytest

from infra_discovery.core.context import DiscoveryContext
from infra_discovery.core.credentials import AzureCredentialProvider, CredentialSource
from infra_discovery.core.errors import DiscoveryCancelledError, NoCredentialsError, ParseFailureError
from infra_discovery.models.infra_models import Format, ParseOptions, Resource, ResourceKind
from infra_discovery.cloud_parsers.api_kinds import (
    SCANS,
    KindScan,
    ScanSession,
    build_resource,
    iter_pages,
    resource_group_of,
    scan_sql_databases,
)
from infra_discovery.cloud_parsers.api_scanner import LiveAPIScanner
from infra_discovery.cloud_parsers.type_mapping import category_for

SUBSCRIPTION = "00000000-0000-0000-0000-000000000001"


def arm_id(group, provider_type, name):
    return f"/subscriptions/{SUBSCRIPTION}/resourceGroups/{group}/providers/{provider_type}/{name}"


LINUX_VM = {
    "id": arm_id("rg-app", "Microsoft.Compute/virtualMachines", "vm-web"),
    "name": "vm-web",
    "location": "eastus",
    "tags": {"env": "prod"},
    "hardware_profile": {"vm_size": "Standard_B2s"},
    "storage_profile": {
        "os_disk": {"os_type": "Linux", "disk_size_gb": 30},
        "data_disks": [{"name": "vm-web-data0", "disk_size_gb": 64, "lun": 0}],
    },
    "network_profile": {"network_interfaces": [{"id": arm_id("rg-app", "Microsoft.Network/networkInterfaces", "nic-web")}]},
}

WINDOWS_VM = {
    "id": arm_id("rg-app", "Microsoft.Compute/virtualMachines", "vm-win"),
    "name": "vm-win",
    "location": "westeurope",
    "os_profile": {"windows_configuration": {"provision_vm_agent": True}},
}


class FakeProvider:
    def __init__(self, source=CredentialSource.SERVICE_PRINCIPAL, error=None):
        self.source = source
        self.error = error
        self.credential = object()

    def get_credential(self, ctx=None):
        if self.error:
            raise self.error
        return self.credential

    def get_subscription_id(self):
        return SUBSCRIPTION


class FakePaged:
    """Stands in for azure-core ItemPaged."""

    def __init__(self, pages):
        self.pages = pages
        self.pages_served = 0

    def by_page(self):
        for page in self.pages:
            self.pages_served += 1
            yield iter(page)


def resource_scan(label, kind, names, region="eastus", fail_after=None):
    def collect(session):
        for i, name in enumerate(names):
            if fail_after is not None and i == fail_after:
                raise RuntimeError("throttled")
            yield Resource(id=name, name=name, kind=kind.value, category=category_for(kind.value), region=region)
        if fail_after is not None and fail_after >= len(names):
            raise RuntimeError("throttled")

    return KindScan(label=label, kinds=(kind,), collect=collect)


@pytest.fixture
def clients():
    return MagicMock()


def make_scanner(clients, scans=None, provider=None):
    return LiveAPIScanner(
        credential_provider=provider or FakeProvider(),
        client_factory=lambda credential, subscription_id: clients,
        scans=scans,
    )


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def test_iter_pages_checks_cancellation_per_page():
    ctx = DiscoveryContext.background()
    listing = FakePaged([[1, 2], [3]])
    pages = iter_pages(listing, ctx)

    assert next(pages) == [1, 2]
    ctx.cancel()
    with pytest.raises(DiscoveryCancelledError):
        next(pages)
    assert listing.pages_served == 1


def test_iter_pages_treats_plain_iterables_as_one_page():
    assert list(iter_pages([{"name": "a"}], DiscoveryContext.background())) == [[{"name": "a"}]]


def test_build_resource_projects_fields():
    resource = build_resource(LINUX_VM, ResourceKind.LINUX_VIRTUAL_MACHINE, {"vm_size": "hardware_profile.vm_size", "missing": "a.b"})

    assert resource.id == "vm-web"
    assert resource.native_id == LINUX_VM["id"]
    assert resource.region == "eastus"
    assert resource.config == {"resource_group": "rg-app", "vm_size": "Standard_B2s"}
    assert resource.tags == {"env": "prod"}
    assert resource_group_of(LINUX_VM["id"]) == "rg-app"


def test_sql_databases_are_named_by_server_and_skip_master(clients):
    sql = clients.get.return_value
    sql.servers.list.return_value = [{
        "id": arm_id("rg-data", "Microsoft.Sql/servers", "sql-main"),
        "name": "sql-main",
        "location": "northeurope",
        "fully_qualified_domain_name": "sql-main.database.windows.net",
    }]
    sql.databases.list_by_server.return_value = [
        {"name": "master", "id": "m"},
        {"name": "orders", "id": "o", "sku": {"name": "S0", "tier": "Standard"}},
    ]

    resources = list(scan_sql_databases(ScanSession(clients=clients, ctx=DiscoveryContext.background())))

    sql.databases.list_by_server.assert_called_once_with("rg-data", "sql-main")
    assert [r.id for r in resources] == ["sql-main/orders"]
    assert resources[0].region == "northeurope"
    assert resources[0].config["sku_tier"] == "Standard"
    assert resources[0].config["fqdn"] == "sql-main.database.windows.net"


def test_scan_table_covers_every_kind():
    kinds = {kind for scan in SCANS for kind in scan.kinds}

    assert kinds == set(ResourceKind)
    assert len({scan.label for scan in SCANS}) == len(SCANS)


# -----------------------------------------------------------------------------
# Scanner
# -----------------------------------------------------------------------------

def test_kind_filter_only_calls_matching_services(clients):
    clients.get.return_value.virtual_machines.list_all.return_value = [LINUX_VM, WINDOWS_VM]
    options = ParseOptions().with_filter_kinds(ResourceKind.LINUX_VIRTUAL_MACHINE)

    result = make_scanner(clients).parse("", options)

    assert {c.args[0] for c in clients.get.call_args_list} == {"compute"}
    assert list(result.infrastructure.resources) == ["vm-web"]
    vm = result.infrastructure.resources["vm-web"]
    assert vm.kind == ResourceKind.LINUX_VIRTUAL_MACHINE.value
    assert vm.config["data_disks"] == [{"name": "vm-web-data0", "size_gb": 64, "lun": 0}]
    assert vm.config["network_interfaces"] == ["nic-web"]
    assert result.infrastructure.metadata["kinds_scanned"] == 1
    clients.close.assert_called_once()


def test_windows_vms_are_classified(clients):
    clients.get.return_value.virtual_machines.list_all.return_value = FakePaged([[LINUX_VM], [WINDOWS_VM]])
    options = ParseOptions().with_filter_kinds(ResourceKind.WINDOWS_VIRTUAL_MACHINE)

    result = make_scanner(clients).parse("", options)

    assert list(result.infrastructure.resources) == ["vm-win"]
    assert result.infrastructure.resources["vm-win"].kind == ResourceKind.WINDOWS_VIRTUAL_MACHINE.value


def test_metadata(clients):
    result = make_scanner(clients, scans=[]).parse("")

    assert result.infrastructure.metadata == {
        "format": Format.API.value,
        "subscription_id": SUBSCRIPTION,
        "credential_source": "service_principal",
        "kinds_scanned": 0,
    }


def test_failing_kind_aborts_by_default(clients):
    scans = [
        resource_scan("virtual_networks", ResourceKind.VIRTUAL_NETWORK, ["vnet-a"]),
        resource_scan("redis_caches", ResourceKind.REDIS_CACHE, ["cache-a"], fail_after=1),
        resource_scan("dns_zones", ResourceKind.DNS_ZONE, ["contoso.com"]),
    ]

    with pytest.raises(ParseFailureError, match="redis_caches"):
        make_scanner(clients, scans).parse("")
    clients.close.assert_called_once()


def test_failing_kind_is_recorded_with_ignore_errors(clients):
    scans = [
        resource_scan("virtual_networks", ResourceKind.VIRTUAL_NETWORK, ["vnet-a"]),
        resource_scan("redis_caches", ResourceKind.REDIS_CACHE, ["cache-a"], fail_after=1),
        resource_scan("dns_zones", ResourceKind.DNS_ZONE, ["contoso.com"]),
    ]

    result = make_scanner(clients, scans).parse("", ParseOptions(ignore_errors=True))

    # A kind that fails part way contributes nothing
    assert set(result.infrastructure.resources) == {"vnet-a", "contoso.com"}
    assert [(e.unit, e.error_type) for e in result.errors] == [("redis_caches", "ParseFailureError")]
    assert result.stats.error_count == 1
    assert result.infrastructure.metadata["kinds_scanned"] == 3


def test_region_filter(clients):
    scans = [
        resource_scan("east", ResourceKind.DNS_ZONE, ["a.com"], region="eastus"),
        resource_scan("west", ResourceKind.REDIS_CACHE, ["cache-w"], region="WestEurope"),
    ]

    result = make_scanner(clients, scans).parse("", ParseOptions().with_regions("westeurope"))

    assert list(result.infrastructure.resources) == ["cache-w"]


def test_cancellation_propagates_even_when_ignoring_errors(clients):
    ctx = DiscoveryContext.background()

    def collect(session):
        for item in session.items(FakePaged([[{"name": "a.com"}], [{"name": "b.com"}]])):
            session.ctx.cancel()
            yield build_resource(item, ResourceKind.DNS_ZONE)

    scans = [KindScan(label="dns_zones", kinds=(ResourceKind.DNS_ZONE,), collect=collect)]

    with pytest.raises(DiscoveryCancelledError):
        make_scanner(clients, scans).parse("", ParseOptions(ignore_errors=True), ctx)
    clients.close.assert_called_once()


def test_duplicate_ids_across_kinds_warn(clients):
    scans = [
        resource_scan("first", ResourceKind.DNS_ZONE, ["shared"]),
        resource_scan("second", ResourceKind.REDIS_CACHE, ["shared"]),
    ]

    result = make_scanner(clients, scans).parse("")

    assert result.infrastructure.resources["shared"].kind == ResourceKind.REDIS_CACHE.value
    assert len(result.warnings) == 1


def test_credential_failure_stops_before_any_scan(clients):
    provider = FakeProvider(error=NoCredentialsError("nothing configured"))

    with pytest.raises(NoCredentialsError):
        make_scanner(clients, provider=provider).parse("")
    clients.get.assert_not_called()


def test_options_credentials_override_provider(clients):
    scanner = make_scanner(clients)
    options = ParseOptions().with_credentials(
        subscription_id="sub", tenant_id="t", client_id="c", client_secret="s"
    )

    provider = scanner._provider(options)

    assert isinstance(provider, AzureCredentialProvider)
    assert provider.source == CredentialSource.SERVICE_PRINCIPAL
    assert scanner._provider() is scanner.credential_provider


# -----------------------------------------------------------------------------
# Detection
# -----------------------------------------------------------------------------

def test_auto_detect_explicit_source():
    scanner = LiveAPIScanner(credential_provider=FakeProvider(CredentialSource.MANAGED_IDENTITY))

    assert scanner.auto_detect("") == (True, 0.7)


def test_auto_detect_default_chain():
    scanner = LiveAPIScanner(credential_provider=FakeProvider(CredentialSource.DEFAULT))

    assert scanner.auto_detect("") == (True, 0.6)


def test_auto_detect_without_credentials():
    provider = FakeProvider(CredentialSource.DEFAULT, error=NoCredentialsError("none"))

    assert LiveAPIScanner(credential_provider=provider).auto_detect("") == (False, 0.0)


def test_validate_raises_on_missing_credentials():
    provider = FakeProvider(CredentialSource.DEFAULT, error=NoCredentialsError("none"))

    with pytest.raises(NoCredentialsError):
        LiveAPIScanner(credential_provider=provider).validate("")


def test_auto_detect_explicit_source_needs_subscription():
    provider = FakeProvider(CredentialSource.SERVICE_PRINCIPAL)
    provider.get_subscription_id = MagicMock(side_effect=NoCredentialsError("no subscription id configured"))

    assert LiveAPIScanner(credential_provider=provider).auto_detect("") == (False, 0.0)
    provider.get_subscription_id.assert_called_once()
