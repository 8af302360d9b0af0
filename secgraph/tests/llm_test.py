import pytest
from langchain_core.language_models import FakeListChatModel
from langchain_groq import ChatGroq
from langchain_openai import ChatOpenAI
from secgraph.core.exceptions import UpstreamUnavailableError
from secgraph.core.llm import GenerationClient, LLMFactory
from secgraph.core.prompts import get_topic_prompt


def test_create_llm_openai():
    llm = LLMFactory.create_llm(model_type="openai", model_id="gpt-4o-mini", api_key="sk-test", max_retries=0)

    assert isinstance(llm, ChatOpenAI)
    assert llm.max_retries == 0


def test_create_llm_groq():
    llm = LLMFactory.create_llm(model_type="groq", model_id="llama-3.1-8b-instant", api_key="gsk-test")

    assert isinstance(llm, ChatGroq)


def test_create_llm_unsupported_type():
    with pytest.raises(ValueError):
        LLMFactory.create_llm(model_type="anthropic")


def test_generate_returns_text():
    client = GenerationClient(FakeListChatModel(responses=["SQL injection"]), max_attempts=1)

    assert client.generate(get_topic_prompt("How does SQL injection work?")) == "SQL injection"


def test_generate_wraps_call_failures():
    client = GenerationClient(FakeListChatModel(responses=["unused"]), max_attempts=1)

    with pytest.raises(UpstreamUnavailableError):
        client.generate(42)
