import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from infra_discovery.api.endpoints.discovery import status_for
from infra_discovery.core.config import settings
from infra_discovery.core.credentials import CredentialSource
from infra_discovery.core.errors import (
    DiscoveryCancelledError,
    InvalidCredentialsError,
    NoParserFoundError,
    ParseFailureError,
)
from infra_discovery.cloud_parsers.registry import ParserRegistry, build_default_registry
from infra_discovery.main import create_app

ARM_TEMPLATE = {
    "$schema": "https://schema.management.azure.com/schemas/2019-04-01/deploymentTemplate.json#",
    "contentVersion": "1.0.0.0",
    "resources": [
        {"type": "Microsoft.Network/virtualNetworks", "name": "vnet", "location": "eastus"},
        {"type": "Microsoft.KeyVault/vaults", "name": "kv", "location": "eastus", "dependsOn": ["vnet"]},
    ],
}


class StaticProvider:
    source = CredentialSource.MANAGED_IDENTITY

    def get_credential(self, ctx=None):
        return object()

    def get_subscription_id(self):
        return "sub-api"


@pytest.fixture
def azure_clients():
    clients = MagicMock()
    clients.get.return_value.zones.list.return_value = [{
        "id": "/subscriptions/sub-api/resourceGroups/rg-dns/providers/Microsoft.Network/dnszones/contoso.com",
        "name": "contoso.com",
        "location": "global",
    }]
    return clients


@pytest.fixture
def client(tmp_path, monkeypatch, azure_clients):
    monkeypatch.setattr(settings, "DISCOVERY_ROOT", str(tmp_path))
    registry = build_default_registry(
        credential_provider=StaticProvider(),
        client_factory=lambda credential, subscription_id: azure_clients,
    )
    return TestClient(create_app(registry))


def test_health(client):
    response = client.get("/api/discovery/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_list_parsers(client):
    body = client.get("/api/discovery/parsers").json()

    assert body["providers"] == ["azure"]
    assert [p["name"] for p in body["parsers"]] == [
        "ARMTemplateParser",
        "BicepParser",
        "TerraformParser",
        "LiveAPIScanner",
    ]
    assert body["parsers"][2]["formats"] == ["terraform", "tfstate"]


def test_detect(client, write_file):
    write_file("templates/main.json", ARM_TEMPLATE)

    response = client.post("/api/discovery/detect", json={"path": "templates/main.json"})

    assert response.status_code == 200
    assert response.json()["candidates"] == [
        {"parser": "ARMTemplateParser", "formats": ["arm"], "confidence": 0.9},
    ]


def test_parse_file(client, write_file):
    write_file("templates/main.json", ARM_TEMPLATE)

    response = client.post("/api/discovery/parse", json={"path": "templates/main.json"})

    assert response.status_code == 200
    body = response.json()
    assert body["infrastructure"]["provider"] == "azure"
    assert set(body["infrastructure"]["resources"]) == {"vnet", "kv"}
    assert body["infrastructure"]["resources"]["kv"]["dependencies"] == ["vnet"]
    assert body["infrastructure"]["resources"]["kv"]["category"] == "secrets"
    assert body["stats"]["resources_found"] == 2


def test_parse_with_filter_options(client, write_file):
    write_file("templates/main.json", ARM_TEMPLATE)

    response = client.post("/api/discovery/parse", json={
        "path": "templates",
        "options": {"filter_categories": ["vpc"]},
    })

    assert response.status_code == 200
    assert list(response.json()["infrastructure"]["resources"]) == ["vnet"]


def test_parse_live_api(client, azure_clients):
    response = client.post("/api/discovery/parse", json={
        "path": "",
        "options": {"filter_kinds": ["azurerm_dns_zone"]},
    })

    assert response.status_code == 200
    body = response.json()
    assert list(body["infrastructure"]["resources"]) == ["contoso.com"]
    assert body["infrastructure"]["metadata"]["credential_source"] == "managed_identity"
    azure_clients.close.assert_called_once()


def test_parse_forced_format(client, write_file):
    write_file("state/terraform.tfstate", {
        "version": 4,
        "resources": [{
            "mode": "managed",
            "type": "azurerm_dns_zone",
            "name": "public",
            "instances": [{"attributes": {"name": "contoso.com", "location": "global"}}],
        }],
    })

    response = client.post("/api/discovery/parse", json={"path": "state", "format": "tfstate"})

    assert response.status_code == 200
    assert list(response.json()["infrastructure"]["resources"]) == ["azurerm_dns_zone.public"]


def test_path_outside_root_is_rejected(client):
    response = client.post("/api/discovery/parse", json={"path": "../../etc"})

    assert response.status_code == 400
    assert "outside the discovery root" in response.json()["detail"]


def test_parse_failure_maps_to_422(client, write_file):
    write_file("legacy.tfstate", {"version": 2, "resources": []})

    response = client.post("/api/discovery/parse", json={"path": "legacy.tfstate"})

    assert response.status_code == 422
    assert "unsupported state version" in response.json()["detail"]


def test_parse_failure_tolerated_with_ignore_errors(client, write_file):
    write_file("legacy.tfstate", {"version": 2, "resources": []})

    response = client.post("/api/discovery/parse", json={
        "path": "legacy.tfstate",
        "options": {"ignore_errors": True},
    })

    assert response.status_code == 200
    assert response.json()["errors"][0]["error_type"] == "ParseFailureError"


def test_forced_file_format_requires_a_path(client, tmp_path, monkeypatch):
    outside = tmp_path.parent / f"{tmp_path.name}-outside"
    outside.mkdir()
    (outside / "secret.json").write_text(json.dumps(ARM_TEMPLATE), encoding="utf-8")
    monkeypatch.chdir(outside)

    response = client.post("/api/discovery/parse", json={"path": "", "format": "arm"})

    assert response.status_code == 400
    assert "path is required" in response.json()["detail"]


def test_empty_registry_is_kept():
    client = TestClient(create_app(ParserRegistry()))

    assert client.get("/api/discovery/parsers").json()["parsers"] == []


def test_invalid_timeout_is_rejected(client):
    response = client.post("/api/discovery/parse", json={"path": "", "timeout_seconds": 0})

    assert response.status_code == 422


def test_status_for():
    assert status_for(InvalidCredentialsError("rejected")) == 401
    assert status_for(ParseFailureError("main.json", "bad")) == 422
    assert status_for(DiscoveryCancelledError("deadline exceeded")) == 504
    assert status_for(NoParserFoundError("nothing")) == 400
