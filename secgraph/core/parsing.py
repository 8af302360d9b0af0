"""
Helpers for turning generation output into validated entity collections.
"""

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Type, TypeVar

from pydantic import ValidationError

from secgraph.core.exceptions import MalformedGenerationOutputError
from secgraph.schemas.entities import ENTITY_CATEGORIES, Entity, EntityBundle

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)

_LEADING_FENCE = re.compile(r"^```[\w-]*\s*")
_TRAILING_FENCE = re.compile(r"\s*```+\s*$")
_EMBEDDED_FENCE = re.compile(r"```[\w-]*\s*([\s\S]*?)\s*```")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences (with or without a language tag) around a response."""
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = _LEADING_FENCE.sub("", cleaned)
        cleaned = _TRAILING_FENCE.sub("", cleaned)
    else:
        match = _EMBEDDED_FENCE.search(cleaned)
        if match:
            cleaned = match.group(1)
    return cleaned.rstrip("`").strip()


def parse_generation_json(text: str) -> Any:
    """
    Parse generation output as JSON after fence stripping.

    Raises:
        MalformedGenerationOutputError: If the text is empty or not valid JSON
    """
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise MalformedGenerationOutputError("Generation output is empty")

    try:
        return json.loads(cleaned)
    except ValueError:
        pass

    try:
        return json.loads(_TRAILING_COMMA.sub(r"\1", cleaned))
    except ValueError as e:
        raise MalformedGenerationOutputError(f"Generation output is not valid JSON: {e}") from e


def remove_duplicates(entities: Iterable[E]) -> List[E]:
    """Drop entities whose key repeats an earlier one, case-insensitively. First occurrence wins."""
    seen = set()
    unique = []
    for entity in entities:
        key = entity.key.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(entity)
    return unique


def validate_entities(raw_items: Any, model: Type[E], category: str) -> List[E]:
    """Validate raw items into entity models, dropping the ones that fail."""
    if not isinstance(raw_items, list):
        if raw_items is not None:
            logger.warning("Expected a list for '%s', got %s; using an empty list", category, type(raw_items).__name__)
        return []

    entities = []
    for index, item in enumerate(raw_items):
        if isinstance(item, model):
            entities.append(item)
            continue
        if not isinstance(item, dict):
            logger.warning("Dropping %s entry %d: not an object", category, index)
            continue
        try:
            entities.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning("Dropping %s entry %d: %s", category, index, e.errors()[0].get("msg", str(e)))
    return entities


def normalize_entity_bundle(raw: Any) -> EntityBundle:
    """Build a validated, de-duplicated EntityBundle from loosely shaped generation output."""
    if not isinstance(raw, dict):
        raise MalformedGenerationOutputError(
            f"Expected a JSON object of entity lists, got {type(raw).__name__}"
        )

    categories: Dict[str, List[Entity]] = {}
    for category, model in ENTITY_CATEGORIES.items():
        categories[category] = remove_duplicates(validate_entities(raw.get(category), model, category))
    return EntityBundle(**categories)
