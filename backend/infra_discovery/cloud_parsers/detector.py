"""Rank registered extractors by how confidently they claim a path."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from infra_discovery.models.infra_models import Format
from infra_discovery.cloud_parsers.base import InfraParser, PathLike

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionCandidate:
    """An extractor that claimed a path, with its confidence."""

    parser: InfraParser
    confidence: float

    @property
    def formats(self) -> List[str]:
        return sorted(f.value for f in self.parser.supported_formats())


def is_live_parser(parser: InfraParser) -> bool:
    return Format.API in parser.supported_formats()


def path_exists(path: PathLike) -> bool:
    return bool(str(path)) and Path(path).exists()


class FormatDetector:
    """
    Runs ``auto_detect`` on every extractor and orders the claims.

    Live API extractors ignore the path, so by default they are only asked
    when the path is not something on disk.
    """

    def __init__(self, parsers: Iterable[InfraParser]):
        self.parsers = list(parsers)

    def rank(self, path: PathLike, include_live: Optional[bool] = None) -> List[DetectionCandidate]:
        """
        Candidates sorted by descending confidence; ties keep registration order.

        Args:
            path: File or directory to classify
            include_live: Consult live API extractors; None means only when
                ``path`` does not exist
        """
        if include_live is None:
            include_live = not path_exists(path)

        candidates = []
        for parser in self.parsers:
            if is_live_parser(parser) and not include_live:
                continue
            can_handle, confidence = parser.auto_detect(path)
            logger.debug(f"{parser.name} auto-detect on {path}: {can_handle} ({confidence})")
            if can_handle and confidence > 0:
                candidates.append(DetectionCandidate(parser=parser, confidence=confidence))

        # sorted() is stable, so equal confidences keep registration order
        return sorted(candidates, key=lambda c: -c.confidence)

    def best(self, path: PathLike, include_live: Optional[bool] = None) -> Optional[DetectionCandidate]:
        ranked = self.rank(path, include_live)
        return ranked[0] if ranked else None
