"""API routes for the infrastructure discovery service."""

from fastapi import APIRouter

from infra_discovery.api.endpoints import discovery

api_router = APIRouter()

api_router.include_router(discovery.router, prefix="", tags=["discovery"])
