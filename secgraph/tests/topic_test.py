import pytest
from langchain_core.language_models import FakeListChatModel
from secgraph.core.exceptions import UpstreamUnavailableError
from secgraph.core.llm import GenerationClient
from secgraph.core.topic import TopicExtractor, clean_topic


class FailingClient:
    def generate(self, prompt):
        raise UpstreamUnavailableError("model unreachable")


def topic_for(response, question="How does SQL injection work?"):
    client = GenerationClient(FakeListChatModel(responses=[response]), max_attempts=1)
    return TopicExtractor(client).extract_topic(question)


@pytest.mark.parametrize("response,expected", [
    ("SQL injection", "SQL injection"),
    ('"SQL injection".', "SQL injection"),
    ("`Parameterized queries`", "Parameterized queries"),
    ("Authentication bypass\nThis topic covers login flaws.", "Authentication bypass"),
    ("  'CVE-2021-44228'  ", "CVE-2021-44228"),
])
def test_topic_is_cleaned(response, expected):
    assert topic_for(response) == expected


def test_empty_response_falls_back_to_question_prefix():
    assert topic_for("  \n ") == "How does SQL"


def test_call_failure_falls_back_to_question_prefix():
    extractor = TopicExtractor(FailingClient())

    assert extractor.extract_topic("What is cross-site scripting?") == "What is cross-site"


def test_blank_question_uses_default_topic():
    assert TopicExtractor(FailingClient()).extract_topic("   ") == "User Question"


def test_clean_topic_strips_nested_wrapping():
    assert clean_topic('"`XSS`"!') == "XSS"
