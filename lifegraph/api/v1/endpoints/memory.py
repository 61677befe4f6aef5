"""Memory knowledge-graph API endpoints."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from lifegraph.core.auth import get_current_user
from lifegraph.core.database import get_async_session as get_session
from lifegraph.core.exceptions import APIClientError, RateLimitError
from lifegraph.core.rate_limiter import RateLimiter, get_rate_limiter
from lifegraph.core.unified_llm import UnifiedLLMClient, create_llm_client
from lifegraph.repositories.memory_graph_repository import MemoryGraphRepository
from lifegraph.schemas.auth import CurrentUser
from lifegraph.schemas.memory import (
    ConnectionsResponse,
    ContextResponse,
    EntityListResponse,
    EntityRef,
    EntityType,
    ExtractRequest,
    ExtractResponse,
    MemoryEntityResponse,
    MentionSummary,
)
from lifegraph.services.memory.context_assembler import MemoryContextAssembler
from lifegraph.services.memory.context_cache import ContextCache, context_cache
from lifegraph.services.memory.extraction_service import MemoryExtractionService
from lifegraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()

SKIP_MESSAGES = {
    "text_too_short": "Text too short for entity extraction",
    "llm_not_configured": "AI extraction is not configured",
}

_llm_client: Optional[UnifiedLLMClient] = None
_llm_client_loaded = False


def get_llm_client() -> Optional[UnifiedLLMClient]:
    global _llm_client, _llm_client_loaded
    if not _llm_client_loaded:
        _llm_client = create_llm_client()
        _llm_client_loaded = True
    return _llm_client


def get_context_cache() -> ContextCache:
    return context_cache


async def get_graph_repository(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> MemoryGraphRepository:
    return MemoryGraphRepository(db_session)


async def get_context_assembler(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> MemoryContextAssembler:
    return MemoryContextAssembler(db_session)


async def get_extraction_service(
    db_session: Annotated[AsyncSession, Depends(get_session)],
    llm_client: Annotated[Optional[UnifiedLLMClient], Depends(get_llm_client)],
    rate_limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> MemoryExtractionService:
    return MemoryExtractionService(db_session, llm_client, rate_limiter=rate_limiter)


@router.post(
    "/extract",
    response_model=ExtractResponse,
    response_model_exclude_none=True,
    summary="Extract entities from narrative text",
    operation_id="extract_memory_entities",
)
async def extract_entities(
    body: ExtractRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[MemoryExtractionService, Depends(get_extraction_service)],
    cache: Annotated[ContextCache, Depends(get_context_cache)],
) -> ExtractResponse:
    """Run a synchronous extraction and merge the result into the caller's graph."""
    if not body.text or not body.text.strip():
        return ExtractResponse(message="No text provided")

    try:
        outcome = await service.extract_and_store(
            user_id=current_user.id,
            text=body.text,
            chapter_id=body.chapter_id,
            question_id=body.question_id,
            story_id=body.story_id,
        )
    except RateLimitError as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": str(e), "retryAfter": e.retry_after_seconds},
            headers={"Retry-After": str(e.retry_after_seconds)},
        ) from e
    except APIClientError as e:
        LOGGER.error(
            "Entity extraction failed",
            exc_info=True,
            extra={"user_id": current_user.id, "error": str(e)},
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Entity extraction service unavailable",
        ) from e
    finally:
        cache.invalidate(current_user.id)

    return ExtractResponse(
        entities=[MemoryEntityResponse.model_validate(entity) for entity in outcome.entities],
        relationships=outcome.relationships_linked,
        raw=outcome.raw,
        message=SKIP_MESSAGES.get(outcome.skipped_reason),
    )


@router.get(
    "/entities",
    response_model=EntityListResponse,
    summary="List all entities of the current user",
    operation_id="list_memory_entities",
)
async def list_entities(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    repository: Annotated[MemoryGraphRepository, Depends(get_graph_repository)],
) -> EntityListResponse:
    entities = await repository.list_entities(current_user.id)
    return EntityListResponse(entities=[MemoryEntityResponse.model_validate(e) for e in entities])


@router.get(
    "/entities/{entity_type}",
    response_model=EntityListResponse,
    summary="List entities of one category",
    operation_id="list_memory_entities_by_type",
)
async def list_entities_by_type(
    entity_type: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    repository: Annotated[MemoryGraphRepository, Depends(get_graph_repository)],
) -> EntityListResponse:
    """Accepts singular, plural and underscore spellings (``time_period``, ``people``)."""
    parsed = EntityType.from_label(entity_type)
    if parsed is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown entity type '{entity_type}'. Expected one of: "
            + ", ".join(t.value for t in EntityType),
        )

    entities = await repository.list_entities(current_user.id, parsed)
    return EntityListResponse(entities=[MemoryEntityResponse.model_validate(e) for e in entities])


@router.get(
    "/context",
    response_model=ContextResponse,
    response_model_exclude_none=True,
    summary="Memory context block for AI prompts",
    operation_id="get_memory_context",
)
async def get_context(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    assembler: Annotated[MemoryContextAssembler, Depends(get_context_assembler)],
    cache: Annotated[ContextCache, Depends(get_context_cache)],
    compact: bool = Query(False, description="Return the one-line voice variant"),
) -> ContextResponse:
    variant = "compact" if compact else "full"
    cached = cache.get(current_user.id, variant)
    if cached is not None:
        return cached

    if compact:
        response = ContextResponse(context=await assembler.build_compact_context(current_user.id))
    else:
        memory_context = await assembler.build_context(current_user.id)
        response = ContextResponse(context=memory_context.text, stats=memory_context.stats)

    cache.set(current_user.id, response, variant)
    return response


@router.get(
    "/connections/{name}",
    response_model=ConnectionsResponse,
    response_model_exclude_none=True,
    summary="Find what an entity is connected to",
    operation_id="get_memory_connections",
)
async def get_connections(
    name: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    repository: Annotated[MemoryGraphRepository, Depends(get_graph_repository)],
):
    entity = await repository.find_entity_by_name_fragment(current_user.id, name)
    if entity is None:
        return JSONResponse({"connections": [], "message": "Entity not found"})

    connections = await repository.get_connections(entity.id)
    mentions = await repository.get_recent_mentions(entity.id, limit=5)

    return ConnectionsResponse(
        entity=EntityRef.model_validate(entity),
        connections=connections,
        mentions=[
            MentionSummary(
                context=mention.context,
                sentiment=mention.sentiment,
                story_id=mention.story_id,
                chapter_id=mention.chapter_id,
                question_id=mention.question_id,
                created_at=mention.created_at,
            )
            for mention in mentions
        ],
    )
