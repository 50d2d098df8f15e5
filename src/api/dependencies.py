"""
Request-scoped accessors for the orchestration context held on app state.
"""

from fastapi import Request

from src.services.context import OrchestrationContext
from src.services.orchestrator import TranslationOrchestrator


def get_context(request: Request) -> OrchestrationContext:
    return request.app.state.context


def get_orchestrator(request: Request) -> TranslationOrchestrator:
    return request.app.state.context.orchestrator
