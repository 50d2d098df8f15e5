"""
Translation REST endpoints.

Implements single translation (optionally with context), batch
translation, and language detection.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from src.api.dependencies import get_orchestrator
from src.core.models import (
    BatchTranslateRequestBody,
    BatchTranslateResponse,
    DetectLanguageRequest,
    DetectLanguageResponse,
    ErrorResponse,
    TranslateRequestBody,
    TranslateResponse,
    TranslationRequest,
)
from src.services.orchestrator import TranslationOrchestrator

router = APIRouter(
    prefix="/translate",
    tags=["translation"],
    responses={code: {"model": ErrorResponse} for code in (400, 429, 502, 503)},
)

Orchestrator = Annotated[TranslationOrchestrator, Depends(get_orchestrator)]


@router.post("", response_model=TranslateResponse)
async def translate(body: TranslateRequestBody, orchestrator: Orchestrator):
    """Translate one text.

    Plain requests go through the coalescing batch path and the cache;
    requests with ``context`` are sent on their own.
    """
    if body.context.strip():
        translated = await orchestrator.translate_with_context(
            body.text, body.context, body.source_language, body.target_language
        )
    else:
        translated = await orchestrator.submit(
            body.text, body.source_language, body.target_language, body.priority
        )
    return TranslateResponse(
        translated_text=translated,
        source_language=body.source_language,
        target_language=body.target_language,
    )


@router.post("/batch", response_model=BatchTranslateResponse)
async def translate_batch(body: BatchTranslateRequestBody, orchestrator: Orchestrator):
    """Translate several texts; results keep the request order."""
    requests = [
        TranslationRequest(
            text=item.text,
            source_language=item.source_language,
            target_language=item.target_language,
            priority=item.priority,
        )
        for item in body.requests
    ]
    translations = await orchestrator.translate_batch(requests, body.priority)
    return BatchTranslateResponse(translations=translations)


@router.post("/detect-language", response_model=DetectLanguageResponse)
async def detect_language(body: DetectLanguageRequest, orchestrator: Orchestrator):
    return DetectLanguageResponse(language=orchestrator.detect_language(body.text))
