"""
Extractor Contract

Every extractor implements InfraParser:
- provider(): the provider every emitted resource belongs to
- supported_formats(): formats the extractor declares
- validate(path): cheap plausibility check, raises on failure
- auto_detect(path): (can_handle, confidence), never raises
- parse(path, options, ctx): full extraction returning a ParseResult

FileParser implements the file-walking half shared by every on-disk format:
sorted directory walks, include/exclude globs, confidence scoring, the
per-file failure policy and the directory merge policy.
"""

import fnmatch
import json
import logging
import os
from abc import ABC, abstractmethod
from enum import IntEnum
from pathlib import Path
from typing import FrozenSet, List, Optional, Sequence, Tuple, Union

from infra_discovery.core.config import settings
from infra_discovery.core.context import DiscoveryContext, ensure_context
from infra_discovery.core.errors import (
    DiscoveryCancelledError,
    DiscoveryError,
    InvalidPathError,
    NoFilesFoundError,
    ParseFailureError,
    UnsupportedFormatError,
)
from infra_discovery.models.infra_models import CloudProvider, Format, ParseOptions, ParseResult, Resource
from infra_discovery.cloud_parsers.filtering import should_include_resource

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

REDACTED = "<redacted>"


class Marker(IntEnum):
    """How strongly a file's content identifies the format."""
    NONE = 0  # not this format at all
    FORMAT = 1  # right format, no provider marker
    PROVIDER = 2  # right format and provider-specific content


# -----------------------------------------------------------------------------
# Contract
# -----------------------------------------------------------------------------

class InfraParser(ABC):
    """Base class for every extractor."""

    PROVIDER: CloudProvider = CloudProvider.AZURE
    FORMATS: Tuple[Format, ...] = ()

    def provider(self) -> CloudProvider:
        return self.PROVIDER

    def supported_formats(self) -> FrozenSet[Format]:
        return frozenset(self.FORMATS)

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def validate(self, path: PathLike) -> None:
        """Raise InvalidPathError, NoFilesFoundError or UnsupportedFormatError."""

    @abstractmethod
    def auto_detect(self, path: PathLike) -> Tuple[bool, float]:
        """Return (can_handle, confidence in [0, 1]); never raises."""

    @abstractmethod
    def parse(
        self,
        path: PathLike,
        options: Optional[ParseOptions] = None,
        ctx: Optional[DiscoveryContext] = None,
    ) -> ParseResult:
        """Extract resources from ``path``."""

    def __repr__(self) -> str:
        formats = ",".join(sorted(f.value for f in self.FORMATS))
        return f"<{self.name} provider={self.PROVIDER.value} formats={formats}>"


# -----------------------------------------------------------------------------
# File walking helpers
# -----------------------------------------------------------------------------

def _matches_any(relative: str, patterns: Sequence[str]) -> bool:
    name = relative.rsplit("/", 1)[-1]
    return any(fnmatch.fnmatch(relative, p) or fnmatch.fnmatch(name, p) for p in patterns)


def walk_files(root: Path, options: Optional[ParseOptions] = None) -> List[Path]:
    """
    List every file under ``root`` in sorted relative-path order.

    Skips the directory names in ``settings.DISCOVERY_SKIP_DIRS`` and applies
    the include/exclude glob patterns from ``options``.
    """
    skip = set(settings.DISCOVERY_SKIP_DIRS)
    found: List[Tuple[str, Path]] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in skip]
        for filename in filenames:
            full = Path(dirpath) / filename
            found.append((full.relative_to(root).as_posix(), full))

    found.sort(key=lambda item: item[0])

    files = []
    for relative, full in found:
        if options is not None:
            if options.include_patterns and not _matches_any(relative, options.include_patterns):
                continue
            if options.exclude_patterns and _matches_any(relative, options.exclude_patterns):
                continue
        files.append(full)
    return files


def load_json(path: Path):
    """Decode a JSON file, converting decoder errors into ParseFailureError."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ParseFailureError(str(path), f"invalid JSON: {e.msg}", line=e.lineno) from e


def existing_path(path: PathLike) -> Path:
    """Resolve a file-based input, rejecting empty and missing paths."""
    # Path("") is the working directory, never a caller's intent
    if not str(path):
        raise InvalidPathError("path is empty")
    p = Path(path)
    if not p.exists():
        raise InvalidPathError(f"path does not exist: {path}")
    return p


def directory_confidence(markers: Sequence[Marker], format_only_cap: float = 0.6) -> Tuple[bool, float]:
    """
    Score a directory from the markers of its candidate files.

    Recognised files (any marker but NONE) over candidates, times 0.9, with a
    full match bumped to 0.95. When no file carries the provider marker the
    score is capped at ``format_only_cap``, the single-file score for the same
    content. No recognised file at all means the directory is not claimed.
    """
    matching = sum(1 for m in markers if m != Marker.NONE)
    if not markers or matching == 0:
        return False, 0.0
    ratio = matching / len(markers)
    confidence = 0.95 if ratio >= 1.0 else round(ratio * 0.9, 4)
    if Marker.PROVIDER not in markers:
        confidence = min(confidence, format_only_cap)
    return True, confidence


# -----------------------------------------------------------------------------
# File-based extractor
# -----------------------------------------------------------------------------

class FileParser(InfraParser):
    """
    Shared implementation for extractors reading files from disk.

    Subclasses declare EXTENSIONS and implement ``inspect`` (content marker
    check) and ``parse_file`` (emit resources into a per-file ParseResult).
    """

    EXTENSIONS: Tuple[str, ...] = ()
    FORMAT_ONLY_CONFIDENCE = 0.6
    PROVIDER_MARKER_CONFIDENCE = 0.9

    # -- hooks ----------------------------------------------------------------

    @abstractmethod
    def inspect(self, path: Path) -> Marker:
        """Classify one file with a matching extension. Must not raise."""

    @abstractmethod
    def parse_file(
        self,
        path: Path,
        result: ParseResult,
        options: ParseOptions,
        ctx: DiscoveryContext,
        ancestors: Tuple[Path, ...] = (),
        follow_modules: bool = True,
    ) -> None:
        """
        Decode one file and add its resources to ``result``.

        ``ancestors`` lists the files whose module references led here; its
        length is the nesting depth. ``follow_modules`` is False during
        directory walks, which visit local module files on their own.
        """

    def file_confidence(self, path: Path, marker: Marker) -> float:
        if marker == Marker.PROVIDER:
            return self.PROVIDER_MARKER_CONFIDENCE
        return self.FORMAT_ONLY_CONFIDENCE

    def base_metadata(self) -> dict:
        return {"format": self.FORMATS[0].value} if self.FORMATS else {}

    # -- helpers --------------------------------------------------------------

    def has_extension(self, path: Path) -> bool:
        return path.suffix.lower() in self.EXTENSIONS

    def candidate_files(self, root: Path, options: Optional[ParseOptions] = None) -> List[Path]:
        return [f for f in walk_files(root, options) if self.has_extension(f)]

    def emit(self, result: ParseResult, resource: Resource, options: ParseOptions, unit: str) -> bool:
        """Add a resource that passes the filters. Returns True when added."""
        if not should_include_resource(resource, options):
            return False
        if result.infrastructure.add_resource(resource):
            result.warn(unit, f"duplicate resource id {resource.id}; later definition wins")
        return True

    # -- contract -------------------------------------------------------------

    def validate(self, path: PathLike) -> None:
        p = existing_path(path)

        if p.is_dir():
            candidates = self.candidate_files(p)
            if not candidates:
                raise NoFilesFoundError(f"no {'/'.join(self.EXTENSIONS)} files under {path}")
            if not any(self.inspect(f) != Marker.NONE for f in candidates):
                raise UnsupportedFormatError(f"no {self.FORMATS[0].value} files under {path}")
            return

        if not self.has_extension(p) or self.inspect(p) == Marker.NONE:
            raise UnsupportedFormatError(f"{path} is not a {self.FORMATS[0].value} file")

    def auto_detect(self, path: PathLike) -> Tuple[bool, float]:
        try:
            p = Path(path)
            if not str(path) or not p.exists():
                return False, 0.0

            if p.is_dir():
                markers = [self.inspect(f) for f in self.candidate_files(p)]
                return directory_confidence(markers, self.FORMAT_ONLY_CONFIDENCE)

            if not self.has_extension(p):
                return False, 0.0
            marker = self.inspect(p)
            if marker == Marker.NONE:
                return False, 0.0
            return True, self.file_confidence(p, marker)
        except Exception as e:
            logger.debug(f"{self.name} auto-detect failed for {path}: {e}")
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

        result = ParseResult.empty(self.PROVIDER)
        result.infrastructure.metadata.update(self.base_metadata())

        if p.is_dir():
            files = [f for f in self.candidate_files(p, options) if self.inspect(f) != Marker.NONE]
            if not files:
                raise NoFilesFoundError(f"no {self.FORMATS[0].value} files under {path}")
            logger.info(f"{self.name}: parsing {len(files)} files under {path}")
            for file_path in files:
                self.parse_unit(file_path, result, options, ctx, follow_modules=False)
        else:
            self.parse_unit(p, result, options, ctx)

        result.finalize()
        logger.info(
            f"{self.name}: {result.stats.resources_found} resources from "
            f"{result.stats.files_scanned} files ({len(result.errors)} errors)"
        )
        return result

    def parse_unit(
        self,
        file_path: Path,
        result: ParseResult,
        options: ParseOptions,
        ctx: DiscoveryContext,
        ancestors: Tuple[Path, ...] = (),
        follow_modules: bool = True,
    ) -> bool:
        """
        Parse one file into its own accumulator and merge it on success.

        A failing file contributes nothing. Under ``ignore_errors`` the failure
        is recorded on ``result``; otherwise it propagates.

        Returns:
            True when the file was merged
        """
        ctx.check()
        logger.debug(f"{self.name}: parsing {file_path}")
        unit = ParseResult.empty(self.PROVIDER)
        try:
            self.parse_file(file_path, unit, options, ctx, ancestors, follow_modules)
        except DiscoveryCancelledError:
            raise
        except DiscoveryError as e:
            error = e if isinstance(e, ParseFailureError) else ParseFailureError(str(file_path), str(e))
            self._handle_failure(str(file_path), error, e, result, options)
            return False
        except (OSError, ValueError) as e:
            self._handle_failure(str(file_path), ParseFailureError(str(file_path), str(e)), e, result, options)
            return False

        unit.stats.files_scanned += 1
        for replaced in result.absorb(unit):
            result.warn(str(file_path), f"duplicate resource id {replaced}; later definition wins")
        return True

    def _handle_failure(
        self,
        unit: str,
        error: ParseFailureError,
        cause: BaseException,
        result: ParseResult,
        options: ParseOptions,
    ) -> None:
        if not options.ignore_errors:
            if error is cause:
                raise error
            raise error from cause
        logger.warning(f"{self.name}: skipping {unit}: {error}")
        result.record_error(unit, error)
