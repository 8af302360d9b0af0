import logging

from secgraph.core.llm import GenerationClient
from secgraph.core.prompts import get_topic_prompt

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "User Question"
FALLBACK_TOKENS = 3

_WRAPPING = "\"'`“”‘’*"
_TRAILING_PUNCTUATION = ".,;:!?"


def clean_topic(text: str) -> str:
    """First line of a generated topic, without wrapping quotes or trailing punctuation."""
    lines = [line.strip() for line in (text or "").strip().splitlines() if line.strip()]
    if not lines:
        return ""
    topic = lines[0]
    previous = None
    while topic != previous:
        previous = topic
        topic = topic.strip().strip(_WRAPPING).rstrip(_TRAILING_PUNCTUATION).strip()
    return topic


def fallback_topic(question: str) -> str:
    tokens = (question or "").split()
    if not tokens:
        return DEFAULT_TOPIC
    return " ".join(tokens[:FALLBACK_TOKENS])


class TopicExtractor:
    def __init__(self, client: GenerationClient):
        self.client = client

    def extract_topic(self, question: str) -> str:
        """Short (2-5 word) topic for the question. Never raises."""
        if not question or not question.strip():
            return DEFAULT_TOPIC

        try:
            topic = clean_topic(self.client.generate(get_topic_prompt(question)))
        except Exception as e:
            logger.warning("Topic extraction failed, using question prefix: %s", e)
            return fallback_topic(question)

        if not topic:
            logger.warning("Topic extraction returned nothing, using question prefix")
            return fallback_topic(question)
        return topic
