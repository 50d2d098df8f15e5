"""
Operational REST endpoints: service status, performance and cache.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from src.api.dependencies import get_context
from src.core.models import CacheStats, PerformanceReport, ServiceStatus
from src.services.context import OrchestrationContext

router = APIRouter(tags=["system"])

Context = Annotated[OrchestrationContext, Depends(get_context)]


@router.get("/services", response_model=list[ServiceStatus])
async def list_services(context: Context):
    """Registered backends with their health and call metrics."""
    return context.registry.snapshot()


@router.get("/performance", response_model=PerformanceReport)
async def performance_report(context: Context):
    return context.orchestrator.get_performance_report()


@router.get("/cache/stats", response_model=CacheStats)
async def cache_stats(context: Context):
    return context.cache.stats()


@router.post("/cache/optimize", response_model=CacheStats)
async def optimize_cache(context: Context):
    """Purge expired entries and retune the eviction policy now."""
    context.cache.cleanup_expired_entries()
    context.cache.optimize_eviction_policy()
    return context.cache.stats()
