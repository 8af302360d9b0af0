import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from secgraph.core.exceptions import MalformedGenerationOutputError, UpstreamUnavailableError
from secgraph.core.llm import GenerationClient
from secgraph.core.parsing import parse_generation_json
from secgraph.core.prompts import get_relationship_prompt
from secgraph.schemas.entities import EntityBundle
from secgraph.schemas.graph import RelationshipEdge, RelationType
from secgraph.schemas.knowledge import KGContext

logger = logging.getLogger(__name__)

RELATION_VOCABULARY = ", ".join(relation.value for relation in RelationType)


def _kg_prompt_dict(kg_context: KGContext) -> Dict[str, Any]:
    return {
        kind.value: [match.summary() for match in found]
        for kind, found in kg_context.matches.items()
    }


def parse_relationships(raw: Any) -> List[RelationshipEdge]:
    """Validate loosely shaped generation output into relationship edges, dropping bad items."""
    if isinstance(raw, dict) and "relationships" in raw:
        raw = raw["relationships"]
    if not isinstance(raw, list):
        raise MalformedGenerationOutputError(
            f"Expected a JSON array of relationships, got {type(raw).__name__}"
        )

    edges = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            logger.debug("Dropping relationship %d: not an object", index)
            continue
        try:
            edges.append(RelationshipEdge.model_validate(item))
        except ValidationError:
            logger.debug("Dropping relationship %d: missing source or target", index)
    return edges


class RelationshipSynthesizer:
    def __init__(self, client: GenerationClient):
        self.client = client

    def synthesize(self, bundle: EntityBundle, kg_context: KGContext,
                   answer: str, question: str) -> List[RelationshipEdge]:
        """
        Propose typed relationships between the extracted entities and the user question.

        Endpoint names are not checked against the bundle here. A failed call
        or unparsable output yields an empty list.
        """
        prompt = get_relationship_prompt(
            entities=bundle.to_prompt_dict(),
            kg_context=_kg_prompt_dict(kg_context),
            answer=answer,
            question=question,
            relation_types=RELATION_VOCABULARY,
        )

        try:
            edges = parse_relationships(parse_generation_json(self.client.generate(prompt)))
        except UpstreamUnavailableError as e:
            logger.error("Relationship synthesis call failed: %s", e)
            return []
        except MalformedGenerationOutputError as e:
            logger.error("Relationship synthesis returned malformed output: %s", e)
            return []

        logger.info("Synthesized %d relationships", len(edges))
        return edges
