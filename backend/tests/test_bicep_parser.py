from infra_discovery.models.infra_models import ParseOptions, ResourceKind
from infra_discovery.cloud_parsers.base import REDACTED
from infra_discovery.cloud_parsers.bicep import BicepParser, block_body, read_object

MAIN_BICEP = """\
param location string = resourceGroup().location
@secure()
param adminPassword string = 'P@ssw0rd'

var prefix = 'app'

resource st 'Microsoft.Storage/storageAccounts@2023-01-01' = {
  name: 'stapp'
  location: location
  sku: {
    name: 'Standard_LRS'
  }
  kind: 'StorageV2'
  tags: {
    env: 'prod'
  }
}

resource plan 'Microsoft.Web/serverfarms@2022-09-01' = {
  name: 'plan'
  location: 'eastus'
}

resource site 'Microsoft.Web/sites@2022-09-01' = {
  name: 'web'
  location: 'eastus'
  properties: {
    serverFarmId: plan.id
    siteConfig: {
      appSettings: [
        {
          name: 'STORAGE'
          value: st.name
        }
      ]
    }
  }
  dependsOn: [
    st
  ]
}

output siteName string = site.name
"""

NETWORK_BICEP = """\
resource vnet 'Microsoft.Network/virtualNetworks@2023-04-01' = {
  name: 'vnet-main'
  location: 'westeurope'
}
"""


def test_block_body_counts_braces():
    content = "x = { a: { b: 1 } } tail"

    assert block_body(content, content.index("{")) == " a: { b: 1 } "


def test_read_object_keeps_nested_blocks():
    body = "\n  name: 'web'\n  sku: {\n    name: 'S1'\n    tier: 'Standard'\n  }\n  zones: [\n    '1'\n    '2'\n  ]\n"

    assert read_object(body) == {
        "name": "web",
        "sku": {"name": "S1", "tier": "Standard"},
        "zones": ["1", "2"],
    }


def test_parses_resources_and_nested_properties(write_file):
    path = write_file("main.bicep", MAIN_BICEP)

    result = BicepParser().parse(path)
    resources = result.infrastructure.resources

    assert set(resources) == {"st", "plan", "site"}
    storage = resources["st"]
    assert storage.name == "stapp"
    assert storage.kind == ResourceKind.STORAGE_ACCOUNT.value
    assert storage.config["sku"] == {"name": "Standard_LRS"}
    assert storage.config["api_version"] == "2023-01-01"
    assert storage.tags == {"env": "prod"}

    site = resources["site"]
    assert site.kind == ResourceKind.APP_SERVICE.value
    assert site.region == "eastus"
    assert site.config["properties"]["serverFarmId"] == "plan.id"
    assert site.config["properties"]["siteConfig"]["appSettings"] == [{"name": "STORAGE", "value": "st.name"}]
    assert site.dependencies == ["plan", "st"]


def test_records_params_vars_and_outputs(write_file):
    path = write_file("main.bicep", MAIN_BICEP)

    metadata = BicepParser().parse(path).infrastructure.metadata

    assert metadata["format"] == "bicep"
    assert metadata["param.location"] == "type=string, default=resourceGroup().location"
    assert metadata["param.adminPassword"] == f"type=string, default={REDACTED}"
    assert metadata["var.prefix"] == "'app'"
    assert metadata["output.siteName"] == "type=string, value=site.name"


def test_secure_params_revealed_on_request(write_file):
    path = write_file("main.bicep", MAIN_BICEP)

    metadata = BicepParser().parse(path, ParseOptions(include_sensitive=True)).infrastructure.metadata

    assert metadata["param.adminPassword"] == "type=string, default='P@ssw0rd'"


def test_brace_inside_string_shifts_block_boundary(write_file):
    path = write_file("quirk.bicep", """\
resource st 'Microsoft.Storage/storageAccounts@2023-01-01' = {
  name: 'a{b'
  location: 'eastus'
}

resource vnet 'Microsoft.Network/virtualNetworks@2023-04-01' = {
  name: 'net'
  location: 'westus'
}
""")

    resources = BicepParser().parse(path).infrastructure.resources

    # The unbalanced brace swallows everything after the name line
    assert len(resources) == 2
    assert resources["st"].name == "a{b"
    assert resources["st"].region == ""
    assert resources["vnet"].region == "westus"


def test_follows_local_modules(write_file):
    write_file("modules/network.bicep", NETWORK_BICEP)
    main = write_file("main.bicep", MAIN_BICEP + "\nmodule net './modules/network.bicep' = {\n  name: 'net'\n}\n")

    result = BicepParser().parse(main)

    assert "vnet" in result.infrastructure.resources
    assert result.infrastructure.metadata["module.net"] == "./modules/network.bicep"
    assert result.stats.modules_followed == 1


def test_module_cycle_is_reported(write_file):
    a = write_file("a.bicep", "module b './b.bicep' = {\n  name: 'b'\n}\n" + NETWORK_BICEP)
    write_file("b.bicep", "module a './a.bicep' = {\n  name: 'a'\n}\n")

    result = BicepParser().parse(a)

    assert "vnet" in result.infrastructure.resources
    assert any("cycle" in w.message for w in result.warnings)


def test_registry_modules_are_not_followed(write_file):
    path = write_file("main.bicep", "module kv 'br:contoso.azurecr.io/bicep/kv:v1' = {\n  name: 'kv'\n}\n")

    result = BicepParser().parse(path)

    assert result.infrastructure.metadata["module.kv"] == "br:contoso.azurecr.io/bicep/kv:v1"
    assert result.stats.modules_followed == 0
    assert not result.warnings


def test_directory_parse_visits_module_files_once(write_file, tmp_path):
    write_file("modules/network.bicep", NETWORK_BICEP)
    write_file("main.bicep", MAIN_BICEP + "\nmodule net './modules/network.bicep' = {\n  name: 'net'\n}\n")

    result = BicepParser().parse(tmp_path)

    assert set(result.infrastructure.resources) == {"st", "plan", "site", "vnet"}
    assert result.stats.files_scanned == 2
    assert not result.warnings


def test_auto_detect(write_file):
    parser = BicepParser()

    assert parser.auto_detect(write_file("main.bicep", MAIN_BICEP)) == (True, 0.95)
    assert parser.auto_detect(write_file("empty.bicep", "param x string\n")) == (True, 0.6)
    assert parser.auto_detect(write_file("main.tf", "")) == (False, 0.0)


def test_directory_of_module_only_files_is_claimed(write_file, tmp_path):
    write_file("main.bicep", "module net './modules/network.bicep' = {\n  name: 'net'\n}\n")

    assert BicepParser().auto_detect(tmp_path) == (True, 0.6)
