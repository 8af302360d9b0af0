import logging
from typing import Dict, Optional

from secgraph.core.exceptions import MalformedGenerationOutputError, UpstreamUnavailableError
from secgraph.core.llm import GenerationClient
from secgraph.core.parsing import normalize_entity_bundle, parse_generation_json
from secgraph.core.prompts import get_entity_extraction_prompt
from secgraph.schemas.entities import EntityBundle
from secgraph.schemas.generation import CveInfo

logger = logging.getLogger(__name__)


class EntityExtractor:
    """Extracts typed security entities from an answer with a single generation call."""

    def __init__(self, client: GenerationClient):
        self.client = client

    def extract(self, answer: str,
                reasoning: Optional[str] = None,
                jargons: Optional[Dict[str, str]] = None,
                cve_hint: Optional[CveInfo] = None,
                question: Optional[str] = None) -> EntityBundle:
        """
        Extract entities from the answer text.

        Never raises for upstream faults: an unreachable model or malformed
        output yields an empty bundle.
        """
        prompt = get_entity_extraction_prompt(
            answer=answer,
            reasoning=reasoning,
            jargons=jargons,
            cve_info=cve_hint.model_dump(exclude_none=True) if cve_hint else None,
            question=question,
        )

        try:
            raw = parse_generation_json(self.client.generate(prompt))
            bundle = normalize_entity_bundle(raw)
        except UpstreamUnavailableError as e:
            logger.error("Entity extraction call failed: %s", e)
            return EntityBundle()
        except MalformedGenerationOutputError as e:
            logger.error("Entity extraction returned malformed output: %s", e)
            return EntityBundle()

        logger.info("Extracted entities: %s", bundle.counts())
        return bundle
