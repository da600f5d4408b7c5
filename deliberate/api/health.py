"""Liveness and service metrics."""

from fastapi import APIRouter

from deliberate.api.deps import CharityDep, CompletionsDep
from deliberate.config import settings

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/metrics")
async def metrics(completions: CompletionsDep, charity: CharityDep):
    """Configured integrations and governance parameters. No upstream calls."""
    return {
        "service": "deliberate",
        "version": "0.1.0",
        "providers": sorted(completions),
        "defaultProvider": settings.default_provider,
        "charityConfigured": charity is not None,
        "charityConnected": charity is not None and charity.connected,
        "noiseThreshold": settings.noise_threshold,
    }
