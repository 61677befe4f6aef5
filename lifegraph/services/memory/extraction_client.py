"""LLM-backed entity extraction for narrative answers."""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from lifegraph.core.unified_llm import UnifiedLLMClient
from lifegraph.prompts.system_prompts import (
    ENTITY_EXTRACTION_GENERATION_CONFIG,
    ENTITY_EXTRACTION_PROMPT,
    ENTITY_EXTRACTION_USER_TEMPLATE,
)
from lifegraph.schemas.memory import (
    CATEGORY_ENTITY_TYPES,
    ExtractedEntity,
    ExtractedRelationship,
    ExtractionResult,
)
from lifegraph.utils.json_parser import parse_json_object
from lifegraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class MemoryExtractionClient:
    """Turns sanitized narrative text into an :class:`ExtractionResult`.

    The caller is responsible for sanitizing the text and for enforcing the
    rate limit; this class only talks to the model and parses its answer.
    """

    def __init__(self, llm_client: UnifiedLLMClient):
        self.client = llm_client

    async def extract(self, sanitized_text: str) -> Tuple[ExtractionResult, Dict[str, Any]]:
        """Run one extraction call.

        Args:
            sanitized_text: Narrative text already passed through the sanitizer

        Returns:
            Tuple of (parsed result, raw parsed JSON object). Both are empty
            when the model answer cannot be parsed.

        Raises:
            APIClientError: If the LLM call itself fails
        """
        response = await self.client.generate_content(
            contents=ENTITY_EXTRACTION_USER_TEMPLATE.format(text=sanitized_text),
            system_instruction=ENTITY_EXTRACTION_PROMPT,
            generation_config=ENTITY_EXTRACTION_GENERATION_CONFIG,
        )

        raw = parse_json_object(response)
        if raw is None:
            LOGGER.warning(
                "Entity extraction returned no parseable JSON",
                extra={"response_length": len(response or "")},
            )
            return ExtractionResult(), {}

        result = parse_extraction_payload(raw)
        LOGGER.info(
            "Entity extraction parsed",
            extra={
                "entities": result.entity_count(),
                "relationships": len(result.relationships),
            },
        )
        return result, raw


def _coerce_items(items: Any, model) -> List:
    if not isinstance(items, list):
        return []

    parsed = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            parsed.append(model.model_validate(item))
        except PydanticValidationError as e:
            LOGGER.debug(f"Dropping malformed extraction item: {e.errors()[:1]}")
    return parsed


def parse_extraction_payload(payload: Optional[Dict[str, Any]]) -> ExtractionResult:
    """Leniently convert a parsed JSON object into an ExtractionResult.

    Non-list categories become empty, items without a usable name are
    dropped, relationships missing an endpoint are dropped.
    """
    if not isinstance(payload, dict):
        return ExtractionResult()

    categories = {}
    for category in CATEGORY_ENTITY_TYPES:
        items = _coerce_items(payload.get(category), ExtractedEntity)
        categories[category] = [item for item in items if item.name]

    relationships = [
        rel
        for rel in _coerce_items(payload.get("relationships"), ExtractedRelationship)
        if rel.entity1 and rel.entity2
    ]

    return ExtractionResult(relationships=relationships, **categories)
