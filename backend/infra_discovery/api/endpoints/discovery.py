"""
Infrastructure Discovery API Endpoints

Endpoints:
- GET  /api/discovery/health - Health check
- GET  /api/discovery/parsers - Registered parsers and their formats
- POST /api/discovery/detect - Rank parsers for a path
- POST /api/discovery/parse - Run discovery and return the result envelope
"""

import logging
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from infra_discovery.cloud_parsers.registry import ParserRegistry
from infra_discovery.core.config import settings
from infra_discovery.core.context import DiscoveryContext
from infra_discovery.core.errors import (
    DiscoveryCancelledError,
    DiscoveryError,
    InvalidCredentialsError,
    NoCredentialsError,
    ParseFailureError,
)
from infra_discovery.models.infra_models import CloudProvider, Format, ParseOptions, ParseResult

logger = logging.getLogger(__name__)

router = APIRouter()


# -----------------------------------------------------------------------------
# Request/Response Models
# -----------------------------------------------------------------------------

class ParserInfo(BaseModel):
    """One registered parser."""
    name: str
    provider: str
    formats: List[str]


class ParsersResponse(BaseModel):
    """Registered parsers in registration order."""
    providers: List[str]
    parsers: List[ParserInfo]


class DetectRequest(BaseModel):
    """Request to rank parsers for a path."""
    path: str = Field("", description="Path relative to the discovery root; empty for live discovery")
    provider: Optional[CloudProvider] = Field(None, description="Restrict to one provider")
    include_live: Optional[bool] = Field(None, description="Consult live API parsers (default: only for empty paths)")


class CandidateResponse(BaseModel):
    """A parser that claimed the path."""
    parser: str
    formats: List[str]
    confidence: float


class DetectResponse(BaseModel):
    """Ranked detection candidates."""
    path: str
    candidates: List[CandidateResponse]


class ParseRequest(BaseModel):
    """Request to run discovery."""
    path: str = Field("", description="Path relative to the discovery root; empty for live discovery")
    provider: CloudProvider = Field(CloudProvider.AZURE, description="Cloud provider")
    format: Optional[Format] = Field(None, description="Force a format instead of auto-detecting")
    include_live: Optional[bool] = Field(None, description="Consult live API parsers during detection")
    timeout_seconds: Optional[float] = Field(None, gt=0, description="Cancel discovery after this many seconds")
    options: ParseOptions = Field(default_factory=ParseOptions, description="Parse options")


# -----------------------------------------------------------------------------
# Helper Functions
# -----------------------------------------------------------------------------

def get_registry(request: Request) -> ParserRegistry:
    return request.app.state.registry


def resolve_request_path(raw: str, format: Optional[Format] = None) -> str:
    """
    Resolve ``raw`` against DISCOVERY_ROOT, rejecting anything outside it.

    An empty path is passed through for live discovery, so it is rejected
    when a file format is forced.
    """
    if not raw:
        if format is not None and format != Format.API:
            raise HTTPException(status_code=400, detail=f"A path is required for format {format.value}")
        return ""
    root = Path(settings.DISCOVERY_ROOT).resolve()
    candidate = (root / raw).resolve()
    if candidate != root and root not in candidate.parents:
        raise HTTPException(status_code=400, detail=f"Path is outside the discovery root: {raw}")
    return str(candidate)


def status_for(error: DiscoveryError) -> int:
    """HTTP status for a discovery failure."""
    if isinstance(error, (NoCredentialsError, InvalidCredentialsError)):
        return 401
    if isinstance(error, ParseFailureError):
        return 422
    if isinstance(error, DiscoveryCancelledError):
        return 504
    return 400


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------

@router.get("/discovery/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "infra-discovery"}


@router.get("/discovery/parsers", response_model=ParsersResponse)
async def list_parsers(request: Request):
    """List the registered parsers."""
    registry = get_registry(request)
    return ParsersResponse(
        providers=[p.value for p in registry.providers()],
        parsers=[
            ParserInfo(
                name=parser.name,
                provider=parser.provider().value,
                formats=sorted(f.value for f in parser.supported_formats()),
            )
            for parser in registry.all()
        ],
    )


@router.post("/discovery/detect", response_model=DetectResponse)
async def detect_format(request: Request, body: DetectRequest):
    """
    Rank registered parsers by how confidently they claim a path.

    Live API parsers are consulted for empty paths, or when include_live is set.
    """
    try:
        path = resolve_request_path(body.path)
        registry = get_registry(request)
        candidates = await run_in_threadpool(registry.detect, path, body.provider, body.include_live)
        logger.info(f"Detection for '{body.path}': {len(candidates)} candidates")
        return DetectResponse(
            path=body.path,
            candidates=[
                CandidateResponse(parser=c.parser.name, formats=c.formats, confidence=c.confidence)
                for c in candidates
            ],
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error detecting format: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Detection failed: {str(e)}")


@router.post("/discovery/parse", response_model=ParseResult)
async def parse_infrastructure(request: Request, body: ParseRequest):
    """
    Discover infrastructure and return the result envelope.

    Auto-detects the parser unless a format is given. With
    ``options.ignore_errors`` failing files or scan kinds are reported in
    ``errors`` instead of failing the request.
    """
    try:
        path = resolve_request_path(body.path, body.format)
        registry = get_registry(request)
        ctx = DiscoveryContext.background()
        if body.timeout_seconds:
            ctx = ctx.with_timeout(body.timeout_seconds)

        if body.format is not None:
            result = await run_in_threadpool(
                registry.parse_with_provider, body.provider, body.format, path, body.options, ctx
            )
        else:
            result = await run_in_threadpool(
                registry.parse, path, body.options, ctx, body.provider, body.include_live
            )

        resources, warnings, errors = result.summary()
        logger.info(
            f"Discovery of '{body.path or 'live API'}' complete: "
            f"{resources} resources, {warnings} warnings, {errors} errors"
        )
        return result

    except HTTPException:
        raise
    except DiscoveryError as e:
        logger.warning(f"Discovery failed for '{body.path}': {e}")
        raise HTTPException(status_code=status_for(e), detail=str(e))
    except Exception as e:
        logger.error(f"Error in discovery: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Discovery failed: {str(e)}")
