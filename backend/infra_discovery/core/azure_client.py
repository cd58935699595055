"""Azure management client manager for the live API scanner."""

import importlib
import logging
from typing import Any, Dict, Tuple

from azure.core.credentials import TokenCredential

logger = logging.getLogger(__name__)


# service name -> (module, client class)
SERVICE_CLIENTS: Dict[str, Tuple[str, str]] = {
    "compute": ("azure.mgmt.compute", "ComputeManagementClient"),
    "storage": ("azure.mgmt.storage", "StorageManagementClient"),
    "sql": ("azure.mgmt.sql", "SqlManagementClient"),
    "postgresql": ("azure.mgmt.rdbms.postgresql_flexibleservers", "PostgreSQLManagementClient"),
    "mysql": ("azure.mgmt.rdbms.mysql_flexibleservers", "MySQLManagementClient"),
    "cosmosdb": ("azure.mgmt.cosmosdb", "CosmosDBManagementClient"),
    "redis": ("azure.mgmt.redis", "RedisManagementClient"),
    "dns": ("azure.mgmt.dns", "DnsManagementClient"),
    "containerservice": ("azure.mgmt.containerservice", "ContainerServiceClient"),
    "containerinstance": ("azure.mgmt.containerinstance", "ContainerInstanceManagementClient"),
    "cdn": ("azure.mgmt.cdn", "CdnManagementClient"),
    "frontdoor": ("azure.mgmt.frontdoor", "FrontDoorManagementClient"),
    "network": ("azure.mgmt.network", "NetworkManagementClient"),
    "servicebus": ("azure.mgmt.servicebus", "ServiceBusManagementClient"),
    "eventhub": ("azure.mgmt.eventhub", "EventHubManagementClient"),
    "eventgrid": ("azure.mgmt.eventgrid", "EventGridManagementClient"),
    "logic": ("azure.mgmt.logic", "LogicManagementClient"),
    "keyvault": ("azure.mgmt.keyvault", "KeyVaultManagementClient"),
    "web": ("azure.mgmt.web", "WebSiteManagementClient"),
    "resource": ("azure.mgmt.resource", "ResourceManagementClient"),
}


class AzureClientManager:
    """Builds azure-mgmt clients on first use and closes them together."""

    def __init__(self, credential: TokenCredential, subscription_id: str) -> None:
        self.credential = credential
        self.subscription_id = subscription_id
        self._clients: Dict[str, Any] = {}

    def get(self, service: str) -> Any:
        """Return the management client for ``service``, creating it on first use."""
        client = self._clients.get(service)
        if client is not None:
            return client
        try:
            module_name, class_name = SERVICE_CLIENTS[service]
        except KeyError:
            raise ValueError(f"Unknown Azure management service: {service}") from None

        # SDK packages are only imported for the kinds actually scanned
        module = importlib.import_module(module_name)
        client = getattr(module, class_name)(self.credential, self.subscription_id)
        self._clients[service] = client
        logger.debug(f"Created {class_name} for subscription {self.subscription_id}")
        return client

    def close(self) -> None:
        """Close every client created so far."""
        for service, client in self._clients.items():
            try:
                client.close()
            except Exception as e:
                logger.warning(f"Failed to close {service} client: {e}")
        self._clients.clear()

    def __enter__(self) -> "AzureClientManager":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
