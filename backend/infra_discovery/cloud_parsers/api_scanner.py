"""
Live API Scanner

Discovers resources straight from the Azure management plane. The path
argument is ignored; the subscription comes from the credential provider.

Each KindScan runs in order:
- skipped without any client call when the kind filter excludes every kind
  it can emit
- drained page by page into a per-kind accumulator
- merged into the result only when the whole kind succeeded

A failing kind aborts the parse unless ignore_errors is set, in which case
the failure is recorded on the result and the next kind runs.
"""

import logging
from typing import Any, Callable, Iterable, List, Optional, Tuple

from infra_discovery.core.azure_client import AzureClientManager
from infra_discovery.core.config import settings
from infra_discovery.core.context import DiscoveryContext, ensure_context
from infra_discovery.core.credentials import (
    AzureCredentialProvider,
    CredentialProvider,
    CredentialSource,
    run_with_timeout,
)
from infra_discovery.core.errors import DiscoveryCancelledError, ParseFailureError
from infra_discovery.models.infra_models import Format, ParseOptions, ParseResult, Resource
from infra_discovery.cloud_parsers.api_kinds import SCANS, KindScan, ScanSession
from infra_discovery.cloud_parsers.base import InfraParser, PathLike
from infra_discovery.cloud_parsers.filtering import region_allowed, should_include_resource, should_scan_kinds
from infra_discovery.cloud_parsers.type_mapping import category_for

logger = logging.getLogger(__name__)

SOURCE_CONFIDENCE = 0.7  # explicit, non-default credential source configured
DEFAULT_CHAIN_CONFIDENCE = 0.6  # default chain resolved within the probe timeout


class LiveAPIScanner(InfraParser):
    """
    Extractor for live Azure subscriptions.

    Args:
        credential_provider: Credential collaborator; built from the
            environment when omitted
        client_factory: ``(credential, subscription_id) -> client manager``
        scans: Kind scans to run, in order
    """

    FORMATS = (Format.API,)

    def __init__(
        self,
        credential_provider: Optional[CredentialProvider] = None,
        client_factory: Optional[Callable[[Any, str], Any]] = None,
        scans: Optional[Iterable[KindScan]] = None,
    ):
        self.credential_provider = credential_provider
        self.client_factory = client_factory or AzureClientManager
        self.scans: Tuple[KindScan, ...] = tuple(scans) if scans is not None else SCANS

    def _provider(self, options: Optional[ParseOptions] = None) -> CredentialProvider:
        if options is not None and options.credentials:
            return AzureCredentialProvider.from_options(options.credentials)
        if self.credential_provider is None:
            self.credential_provider = AzureCredentialProvider.from_environment()
        return self.credential_provider

    # -- contract -------------------------------------------------------------

    def validate(self, path: PathLike) -> None:
        """Bounded credential probe; raises NoCredentialsError or InvalidCredentialsError."""
        provider = self._provider()
        provider.get_subscription_id()
        run_with_timeout(
            provider.get_credential,
            settings.CREDENTIAL_VALIDATE_TIMEOUT_SECONDS,
            what="credential validation",
        )

    def auto_detect(self, path: PathLike) -> Tuple[bool, float]:
        try:
            provider = self._provider()
            source = getattr(provider, "source", CredentialSource.DEFAULT)
            # A configured source without a subscription still cannot scan
            provider.get_subscription_id()
            if source != CredentialSource.DEFAULT:
                return True, SOURCE_CONFIDENCE
            run_with_timeout(provider.get_credential, settings.CREDENTIAL_PROBE_TIMEOUT_SECONDS)
            return True, DEFAULT_CHAIN_CONFIDENCE
        except Exception as e:
            logger.debug(f"Live API auto-detect: no usable credentials ({e})")
            return False, 0.0

    def parse(
        self,
        path: PathLike,
        options: Optional[ParseOptions] = None,
        ctx: Optional[DiscoveryContext] = None,
    ) -> ParseResult:
        options = options or ParseOptions()
        ctx = ensure_context(ctx)
        provider = self._provider(options)

        subscription_id = provider.get_subscription_id()
        credential = provider.get_credential(ctx)

        result = ParseResult.empty(self.PROVIDER)
        metadata = result.infrastructure.metadata
        metadata["format"] = Format.API.value
        metadata["subscription_id"] = subscription_id
        metadata["credential_source"] = str(getattr(getattr(provider, "source", None), "value", "custom"))

        logger.info(f"Scanning Azure subscription {subscription_id}")
        clients = self.client_factory(credential, subscription_id)
        scanned = 0
        try:
            for scan in self.scans:
                ctx.check()
                categories = [category_for(kind) for kind in scan.kind_values]
                if not should_scan_kinds(scan.kind_values, categories, options):
                    logger.debug(f"Skipping {scan.label}: excluded by filter")
                    continue
                self._run_scan(scan, ScanSession(clients=clients, ctx=ctx), result, options)
                scanned += 1
        finally:
            clients.close()

        metadata["kinds_scanned"] = scanned
        result.finalize()
        logger.info(
            f"Live scan of {subscription_id}: {result.stats.resources_found} resources "
            f"from {scanned} kinds ({len(result.errors)} failed)"
        )
        return result

    # -- per kind -------------------------------------------------------------

    def _run_scan(
        self,
        scan: KindScan,
        session: ScanSession,
        result: ParseResult,
        options: ParseOptions,
    ) -> None:
        accumulator: List[Resource] = []
        try:
            for resource in scan.collect(session):
                if not region_allowed(resource.region, options):
                    continue
                if not should_include_resource(resource, options):
                    continue
                accumulator.append(resource)
        except DiscoveryCancelledError:
            raise
        except Exception as e:
            error = ParseFailureError(scan.label, f"failed to list {scan.label}: {e}")
            if not options.ignore_errors:
                raise error from e
            logger.warning(f"Skipping {scan.label}: {e}")
            result.record_error(scan.label, error)
            return

        for resource in accumulator:
            if result.infrastructure.add_resource(resource):
                result.warn(scan.label, f"duplicate resource id {resource.id}; later definition wins")
        logger.debug(f"{scan.label}: {len(accumulator)} resources")
