"""
Parser Registry

Explicit collection of extractors per provider. The composition root
(``build_default_registry``, called from ``main.create_app``) registers the
extractors once and freezes the registry; it is then passed by reference to
whatever runs discovery. There is no module-level registry.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from infra_discovery.core.context import DiscoveryContext, ensure_context
from infra_discovery.core.credentials import CredentialProvider
from infra_discovery.core.errors import DiscoveryCancelledError, DiscoveryError, NoParserFoundError
from infra_discovery.models.infra_models import CloudProvider, Format, ParseOptions, ParseResult
from infra_discovery.cloud_parsers.api_scanner import LiveAPIScanner
from infra_discovery.cloud_parsers.arm import ARMTemplateParser
from infra_discovery.cloud_parsers.base import InfraParser, PathLike
from infra_discovery.cloud_parsers.bicep import BicepParser
from infra_discovery.cloud_parsers.detector import DetectionCandidate, FormatDetector
from infra_discovery.cloud_parsers.terraform import TerraformParser

logger = logging.getLogger(__name__)


class RegistryFrozenError(RuntimeError):
    """Raised when registering into a frozen registry."""


class ParserRegistry:
    """Extractors grouped by provider, in registration order."""

    def __init__(self) -> None:
        self._parsers: Dict[CloudProvider, List[InfraParser]] = {}
        self._frozen = False

    # -- assembly -------------------------------------------------------------

    def register(self, parser: InfraParser) -> "ParserRegistry":
        if self._frozen:
            raise RegistryFrozenError(f"cannot register {parser.name}: registry is frozen")
        self._parsers.setdefault(CloudProvider(parser.provider()), []).append(parser)
        logger.debug(f"Registered {parser!r}")
        return self

    def freeze(self) -> "ParserRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # -- lookup ---------------------------------------------------------------

    def get(self, provider: CloudProvider) -> List[InfraParser]:
        return list(self._parsers.get(CloudProvider(provider), []))

    def get_by_format(self, provider: CloudProvider, fmt: Format) -> Optional[InfraParser]:
        """First extractor for ``provider`` that declares ``fmt``."""
        fmt = Format(fmt)
        for parser in self.get(provider):
            if fmt in parser.supported_formats():
                return parser
        return None

    def all(self) -> List[InfraParser]:
        return [parser for parsers in self._parsers.values() for parser in parsers]

    def providers(self) -> List[CloudProvider]:
        return list(self._parsers)

    # -- discovery ------------------------------------------------------------

    def detect(
        self,
        path: PathLike,
        provider: Optional[CloudProvider] = None,
        include_live: Optional[bool] = None,
    ) -> List[DetectionCandidate]:
        parsers = self.get(provider) if provider is not None else self.all()
        return FormatDetector(parsers).rank(path, include_live)

    def parse(
        self,
        path: PathLike,
        options: Optional[ParseOptions] = None,
        ctx: Optional[DiscoveryContext] = None,
        provider: Optional[CloudProvider] = None,
        include_live: Optional[bool] = None,
    ) -> ParseResult:
        """
        Parse ``path`` with the most confident extractor.

        Raises:
            NoParserFoundError: When no registered extractor claims the path
        """
        candidates = self.detect(path, provider, include_live)
        if not candidates:
            raise NoParserFoundError(f"no registered parser can handle {path}")
        best = candidates[0]
        logger.info(f"Parsing {path} with {best.parser.name} (confidence {best.confidence})")
        return best.parser.parse(path, options, ctx)

    def parse_with_provider(
        self,
        provider: CloudProvider,
        fmt: Format,
        path: PathLike,
        options: Optional[ParseOptions] = None,
        ctx: Optional[DiscoveryContext] = None,
    ) -> ParseResult:
        """Parse with the extractor registered for an explicit provider and format."""
        parser = self.get_by_format(provider, fmt)
        if parser is None:
            raise NoParserFoundError(f"no {CloudProvider(provider).value} parser for format {Format(fmt).value}")
        return parser.parse(path, options, ctx)

    def parse_multi(
        self,
        paths: Iterable[PathLike],
        options: Optional[ParseOptions] = None,
        ctx: Optional[DiscoveryContext] = None,
        provider: CloudProvider = CloudProvider.AZURE,
    ) -> ParseResult:
        """
        Parse several paths and merge them into one result, in the given order.

        Later paths win id collisions. Under ``ignore_errors`` a path that
        fails (including one nothing claims) is recorded and skipped.
        """
        options = options or ParseOptions()
        ctx = ensure_context(ctx)
        combined = ParseResult.empty(CloudProvider(provider))

        for path in paths:
            ctx.check()
            try:
                result = self.parse(path, options, ctx, provider=provider)
            except DiscoveryCancelledError:
                raise
            except DiscoveryError as e:
                if not options.ignore_errors:
                    raise
                logger.warning(f"Skipping {path}: {e}")
                combined.record_error(str(path), e)
                continue
            for replaced in combined.absorb(result):
                combined.warn(str(path), f"duplicate resource id {replaced}; later definition wins")

        return combined.finalize()

    def __len__(self) -> int:
        return len(self.all())


def build_default_registry(
    credential_provider: Optional[CredentialProvider] = None,
    client_factory: Optional[Callable[[Any, str], Any]] = None,
    include_live: bool = True,
) -> ParserRegistry:
    """Register the Azure extractors in detection-tie order and freeze the registry."""
    registry = ParserRegistry()
    registry.register(ARMTemplateParser())
    registry.register(BicepParser())
    registry.register(TerraformParser())
    if include_live:
        registry.register(LiveAPIScanner(credential_provider=credential_provider, client_factory=client_factory))
    return registry.freeze()
