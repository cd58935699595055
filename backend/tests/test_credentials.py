import threading
from unittest.mock import MagicMock

import pytest
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import CredentialUnavailableError

from infra_discovery.core.azure_client import SERVICE_CLIENTS, AzureClientManager
from infra_discovery.core.context import DiscoveryContext
from infra_discovery.core.credentials import (
    AzureCredentialProvider,
    CredentialSource,
    detect_credential_source,
    run_with_timeout,
)
from infra_discovery.core.errors import DiscoveryCancelledError, InvalidCredentialsError, NoCredentialsError


def test_detect_credential_source():
    assert detect_credential_source({
        "AZURE_CLIENT_ID": "c",
        "AZURE_CLIENT_SECRET": "s",
        "AZURE_TENANT_ID": "t",
    }) == CredentialSource.SERVICE_PRINCIPAL
    assert detect_credential_source({"AZURE_CLIENT_ID": "c"}) == CredentialSource.MANAGED_IDENTITY
    assert detect_credential_source({"AZURE_CLIENT_SECRET": "s"}) == CredentialSource.DEFAULT
    assert detect_credential_source({}) == CredentialSource.DEFAULT


def test_from_options_infers_or_honours_source():
    inferred = AzureCredentialProvider.from_options({
        "subscription_id": "sub",
        "tenant_id": "t",
        "client_id": "c",
        "client_secret": "s",
    })
    explicit = AzureCredentialProvider.from_options({"subscription_id": "sub", "source": "cli"})

    assert inferred.source == CredentialSource.SERVICE_PRINCIPAL
    assert inferred.get_subscription_id() == "sub"
    assert explicit.source == CredentialSource.CLI


def test_from_environment_uses_given_mapping(clean_azure_env):
    provider = AzureCredentialProvider.from_environment({
        "AZURE_CLIENT_ID": "mi-client",
        "AZURE_SUBSCRIPTION_ID": "sub-env",
    })

    assert provider.source == CredentialSource.MANAGED_IDENTITY
    assert provider.client_id == "mi-client"
    assert provider.get_subscription_id() == "sub-env"


def test_subscription_falls_back_to_environment(clean_azure_env, monkeypatch):
    provider = AzureCredentialProvider()

    with pytest.raises(NoCredentialsError):
        provider.get_subscription_id()

    monkeypatch.setenv("AZURE_SUBSCRIPTION_ID", "sub-from-env")
    assert provider.get_subscription_id() == "sub-from-env"


def test_service_principal_requires_all_fields():
    provider = AzureCredentialProvider(client_id="c", source=CredentialSource.SERVICE_PRINCIPAL)

    with pytest.raises(NoCredentialsError):
        provider.build_credential()


@pytest.mark.parametrize(
    "failure, expected",
    [
        (CredentialUnavailableError("no identity endpoint"), NoCredentialsError),
        (ClientAuthenticationError("AADSTS7000215: invalid client secret"), InvalidCredentialsError),
    ],
)
def test_get_credential_maps_identity_errors(monkeypatch, failure, expected):
    credential = MagicMock()
    credential.get_token.side_effect = failure
    provider = AzureCredentialProvider(subscription_id="sub")
    monkeypatch.setattr(provider, "build_credential", lambda: credential)

    with pytest.raises(expected):
        provider.get_credential()


def test_get_credential_probes_management_scope(monkeypatch):
    credential = MagicMock()
    provider = AzureCredentialProvider(subscription_id="sub")
    monkeypatch.setattr(provider, "build_credential", lambda: credential)

    assert provider.get_credential() is credential
    credential.get_token.assert_called_once_with("https://management.azure.com/.default")


def test_get_credential_honours_cancellation():
    ctx = DiscoveryContext.background()
    ctx.cancel()

    with pytest.raises(DiscoveryCancelledError):
        AzureCredentialProvider(subscription_id="sub").get_credential(ctx)


def test_run_with_timeout():
    release = threading.Event()

    assert run_with_timeout(lambda: 42, timeout=1) == 42
    with pytest.raises(NoCredentialsError, match="timed out"):
        run_with_timeout(lambda: release.wait(5), timeout=0.05)
    release.set()


# -----------------------------------------------------------------------------
# Client manager
# -----------------------------------------------------------------------------

def test_client_manager_caches_and_closes(monkeypatch):
    compute_client = MagicMock()
    module = MagicMock()
    module.ComputeManagementClient.return_value = compute_client
    imported = []

    def fake_import(name):
        imported.append(name)
        return module

    monkeypatch.setattr("infra_discovery.core.azure_client.importlib.import_module", fake_import)
    credential = object()

    with AzureClientManager(credential, "sub") as manager:
        assert manager.get("compute") is compute_client
        assert manager.get("compute") is compute_client

    assert imported == [SERVICE_CLIENTS["compute"][0]]
    module.ComputeManagementClient.assert_called_once_with(credential, "sub")
    compute_client.close.assert_called_once()


def test_client_manager_rejects_unknown_service():
    with pytest.raises(ValueError, match="Unknown Azure management service"):
        AzureClientManager(object(), "sub").get("mainframe")
