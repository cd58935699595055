"""
Azure credential resolution for the live API scanner.

Sources, in the order they are detected from the environment:
- service principal: AZURE_CLIENT_ID + AZURE_CLIENT_SECRET + AZURE_TENANT_ID
- managed identity: AZURE_CLIENT_ID alone
- default: the azure-identity DefaultAzureCredential chain

The Azure CLI source is only used when asked for explicitly.
"""

import concurrent.futures
import logging
import os
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Protocol, TypeVar

from azure.core.credentials import TokenCredential
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import (
    AzureCliCredential,
    ClientSecretCredential,
    CredentialUnavailableError,
    DefaultAzureCredential,
    ManagedIdentityCredential,
)

from infra_discovery.core.config import settings
from infra_discovery.core.context import DiscoveryContext, ensure_context
from infra_discovery.core.errors import InvalidCredentialsError, NoCredentialsError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENV_KEYS = ("AZURE_SUBSCRIPTION_ID", "AZURE_TENANT_ID", "AZURE_CLIENT_ID", "AZURE_CLIENT_SECRET")


class CredentialSource(str, Enum):
    """Where the live scanner's Azure identity comes from."""
    DEFAULT = "default"
    SERVICE_PRINCIPAL = "service_principal"
    MANAGED_IDENTITY = "managed_identity"
    CLI = "cli"


class CredentialProvider(Protocol):
    """Collaborator the live scanner asks for a credential and subscription."""

    source: CredentialSource

    def get_credential(self, ctx: Optional[DiscoveryContext] = None) -> TokenCredential:
        ...

    def get_subscription_id(self) -> str:
        ...


def detect_credential_source(env: Optional[Mapping[str, Optional[str]]] = None) -> CredentialSource:
    """Classify the identity variables present in ``env`` (``os.environ`` by default)."""
    env = os.environ if env is None else env
    client_id = env.get("AZURE_CLIENT_ID")
    if client_id and env.get("AZURE_CLIENT_SECRET") and env.get("AZURE_TENANT_ID"):
        return CredentialSource.SERVICE_PRINCIPAL
    if client_id:
        return CredentialSource.MANAGED_IDENTITY
    return CredentialSource.DEFAULT


def run_with_timeout(func: Callable[[], T], timeout: float, what: str = "credential probe") -> T:
    """
    Run ``func`` on a worker thread and give up after ``timeout`` seconds.

    Raises:
        NoCredentialsError: When the call does not finish in time
    """
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="credential-probe")
    future = executor.submit(func)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError as e:
        raise NoCredentialsError(f"{what} timed out after {timeout:g}s") from e
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


class AzureCredentialProvider:
    """
    Default credential collaborator built on azure-identity.

    Args:
        subscription_id: Subscription to scan; falls back to AZURE_SUBSCRIPTION_ID
        tenant_id: Directory (tenant) id
        client_id: Service principal or user-assigned managed identity client id
        client_secret: Service principal secret
        source: Explicit source; inferred from the other arguments when omitted
    """

    def __init__(
        self,
        subscription_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        source: Optional[CredentialSource] = None,
    ):
        self.subscription_id = subscription_id or None
        self.tenant_id = tenant_id or None
        self.client_id = client_id or None
        self.client_secret = client_secret or None
        if source is None:
            if self.client_id and self.client_secret and self.tenant_id:
                source = CredentialSource.SERVICE_PRINCIPAL
            else:
                source = CredentialSource.DEFAULT
        self.source = CredentialSource(source)

    @classmethod
    def from_options(cls, credentials: Optional[Dict[str, str]]) -> "AzureCredentialProvider":
        """Build from ParseOptions.credentials (subscription_id, tenant_id, client_id, client_secret, source)."""
        credentials = credentials or {}
        source = credentials.get("source")
        return cls(
            subscription_id=credentials.get("subscription_id"),
            tenant_id=credentials.get("tenant_id"),
            client_id=credentials.get("client_id"),
            client_secret=credentials.get("client_secret"),
            source=CredentialSource(source) if source else None,
        )

    @classmethod
    def from_environment(cls, env: Optional[Mapping[str, str]] = None) -> "AzureCredentialProvider":
        """Build from process environment variables, then from settings (.env)."""
        env = os.environ if env is None else env
        values = {key: env.get(key) or getattr(settings, key, None) for key in ENV_KEYS}
        return cls(
            subscription_id=values["AZURE_SUBSCRIPTION_ID"],
            tenant_id=values["AZURE_TENANT_ID"],
            client_id=values["AZURE_CLIENT_ID"],
            client_secret=values["AZURE_CLIENT_SECRET"],
            source=detect_credential_source(values),
        )

    def build_credential(self) -> TokenCredential:
        """Construct the azure-identity credential for this source without contacting Azure."""
        if self.source == CredentialSource.SERVICE_PRINCIPAL:
            if not (self.tenant_id and self.client_id and self.client_secret):
                raise NoCredentialsError("service principal requires tenant_id, client_id and client_secret")
            return ClientSecretCredential(
                tenant_id=self.tenant_id,
                client_id=self.client_id,
                client_secret=self.client_secret,
            )
        if self.source == CredentialSource.MANAGED_IDENTITY:
            if self.client_id:
                return ManagedIdentityCredential(client_id=self.client_id)
            return ManagedIdentityCredential()
        if self.source == CredentialSource.CLI:
            if self.tenant_id:
                return AzureCliCredential(tenant_id=self.tenant_id)
            return AzureCliCredential()
        return DefaultAzureCredential()

    def get_credential(self, ctx: Optional[DiscoveryContext] = None) -> TokenCredential:
        """
        Build the credential and prove it can obtain a management token.

        Raises:
            NoCredentialsError: No identity could be resolved for this source
            InvalidCredentialsError: An identity resolved but was rejected
        """
        ensure_context(ctx).check()
        credential = self.build_credential()
        try:
            credential.get_token(settings.AZURE_MANAGEMENT_SCOPE)
        except CredentialUnavailableError as e:
            raise NoCredentialsError(f"no Azure credentials available ({self.source.value}): {e}") from e
        except ClientAuthenticationError as e:
            raise InvalidCredentialsError(f"Azure rejected {self.source.value} credentials: {e}") from e
        logger.debug(f"Resolved Azure credentials from {self.source.value}")
        return credential

    def get_subscription_id(self) -> str:
        subscription_id = (
            self.subscription_id
            or os.environ.get("AZURE_SUBSCRIPTION_ID")
            or settings.AZURE_SUBSCRIPTION_ID
        )
        if not subscription_id:
            raise NoCredentialsError("no subscription id configured (set AZURE_SUBSCRIPTION_ID)")
        return subscription_id

    def __repr__(self) -> str:
        return f"<AzureCredentialProvider source={self.source.value} subscription={self.subscription_id or '-'}>"
