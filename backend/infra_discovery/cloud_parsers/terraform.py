"""
Terraform Parser

One extractor for a whole Terraform working directory: state snapshots are
authoritative (they carry real ids and resolved values) and ``.tf``
configuration only fills in resources the state does not know yet.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

from infra_discovery.core.context import DiscoveryContext, ensure_context
from infra_discovery.core.errors import NoFilesFoundError, UnsupportedFormatError
from infra_discovery.models.infra_models import Format, ParseOptions, ParseResult
from infra_discovery.cloud_parsers.base import InfraParser, Marker, PathLike, directory_confidence, existing_path
from infra_discovery.cloud_parsers.hcl import TerraformHCLParser
from infra_discovery.cloud_parsers.tfstate import TerraformStateParser

logger = logging.getLogger(__name__)


class TerraformParser(InfraParser):
    """Combined extractor for ``.tf`` files and ``.tfstate`` snapshots."""

    FORMATS = (Format.TERRAFORM, Format.TFSTATE)

    def __init__(
        self,
        state_parser: Optional[TerraformStateParser] = None,
        config_parser: Optional[TerraformHCLParser] = None,
    ):
        self.state_parser = state_parser or TerraformStateParser()
        self.config_parser = config_parser or TerraformHCLParser()

    def _delegate(self, path: Path):
        if self.state_parser.has_extension(path):
            return self.state_parser
        if self.config_parser.has_extension(path):
            return self.config_parser
        return None

    def validate(self, path: PathLike) -> None:
        p = existing_path(path)
        if p.is_file():
            delegate = self._delegate(p)
            if delegate is None:
                raise UnsupportedFormatError(f"{path} is neither a .tf nor a .tfstate file")
            delegate.validate(p)
            return

        states = self.state_parser.candidate_files(p)
        configs = self.config_parser.candidate_files(p)
        if not states and not configs:
            raise NoFilesFoundError(f"no .tf or .tfstate files under {path}")

    def auto_detect(self, path: PathLike) -> Tuple[bool, float]:
        try:
            p = Path(path)
            if not str(path) or not p.exists():
                return False, 0.0
            if p.is_file():
                delegate = self._delegate(p)
                return delegate.auto_detect(p) if delegate else (False, 0.0)

            markers = [
                parser.inspect(f)
                for parser in (self.state_parser, self.config_parser)
                for f in parser.candidate_files(p)
            ]
            return directory_confidence(markers, self.config_parser.FORMAT_ONLY_CONFIDENCE)
        except Exception as e:
            logger.debug(f"TerraformParser auto-detect failed for {path}: {e}")
            return False, 0.0

    def parse(
        self,
        path: PathLike,
        options: Optional[ParseOptions] = None,
        ctx: Optional[DiscoveryContext] = None,
    ) -> ParseResult:
        options = options or ParseOptions()
        ctx = ensure_context(ctx)
        p = existing_path(path)

        if p.is_file():
            delegate = self._delegate(p)
            if delegate is None:
                raise UnsupportedFormatError(f"{path} is neither a .tf nor a .tfstate file")
            return delegate.parse(p, options, ctx)

        has_state = any(self.state_parser.inspect(f) != Marker.NONE for f in self.state_parser.candidate_files(p, options))
        has_config = any(self.config_parser.inspect(f) != Marker.NONE for f in self.config_parser.candidate_files(p, options))
        if not has_state and not has_config:
            raise NoFilesFoundError(f"no .tf or .tfstate files under {path}")

        result = ParseResult.empty(self.PROVIDER)

        if has_state:
            result.absorb(self.state_parser.parse(p, options, ctx))

        if has_config:
            config = self.config_parser.parse(p, options, ctx)
            added = 0
            for resource_id, resource in config.infrastructure.resources.items():
                if resource_id not in result.infrastructure.resources:
                    result.infrastructure.add_resource(resource)
                    added += 1
            result.warnings.extend(config.warnings)
            result.errors.extend(config.errors)
            result.stats.files_scanned += config.stats.files_scanned
            result.stats.modules_followed += config.stats.modules_followed
            for key, value in config.infrastructure.metadata.items():
                result.infrastructure.metadata.setdefault(key, value)
            logger.info(f"TerraformParser: {added} resources found only in configuration")

        result.infrastructure.metadata["format"] = Format.TERRAFORM.value
        return result.finalize()
