import json
import pytest
from langchain_core.language_models import FakeListChatModel
from secgraph.core.exceptions import MalformedGenerationOutputError, UpstreamUnavailableError
from secgraph.core.extraction import EntityExtractor
from secgraph.core.llm import GenerationClient
from secgraph.core.parsing import parse_generation_json, strip_code_fences
from secgraph.schemas.entities import Severity
from secgraph.schemas.generation import CveInfo


class FailingClient:
    def generate(self, prompt):
        raise UpstreamUnavailableError("model unreachable")


def extractor_returning(*responses):
    return EntityExtractor(GenerationClient(FakeListChatModel(responses=list(responses)), max_attempts=1))


EXTRACTION_OUTPUT = {
    "vulnerabilities": [
        {"name": "SQL Injection", "description": "Database injection attack", "severity": "high", "cvss": 8.5},
        {"name": "sql injection", "description": "duplicate"},
    ],
    "mitigations": [{"name": "Input Validation", "type": "preventive", "effectiveness": 14}],
    "sources": [{"name": "OWASP Top 10", "type": "standard"}],
    "cves": [
        {"cveId": "CVE-2021-44228", "severity": "Critical", "cvss": 10.0},
        {"cveId": "CVE-XXXX-1234"},
        {"cveId": "cve-2023-1234"},
    ],
    "risks": "not a list",
}


def test_strip_code_fences():
    assert strip_code_fences("```json\n{\"a\": 1}\n```") == "{\"a\": 1}"
    assert strip_code_fences("```\n[]\n```") == "[]"
    assert strip_code_fences("Here you go:\n```json\n{\"a\": 1}\n```\nThanks") == "{\"a\": 1}"
    assert strip_code_fences("{\"a\": 1}``") == "{\"a\": 1}"


def test_parse_generation_json_repairs_trailing_commas():
    assert parse_generation_json('{"vulnerabilities": [{"name": "XSS"},],}') == {"vulnerabilities": [{"name": "XSS"}]}


@pytest.mark.parametrize("text", ["", "   ", "not json at all", '{"vulnerabilities": [{"name": "XSS"'])
def test_parse_generation_json_rejects_garbage(text):
    with pytest.raises(MalformedGenerationOutputError):
        parse_generation_json(text)


def test_extract_normalizes_entities():
    extractor = extractor_returning("```json\n" + json.dumps(EXTRACTION_OUTPUT) + "\n```")

    bundle = extractor.extract("SQL injection lets attackers run queries.", question="What is SQL injection?")

    assert [v.name for v in bundle.vulnerabilities] == ["SQL Injection"]
    assert bundle.vulnerabilities[0].severity == Severity.high
    assert bundle.vulnerabilities[0].cvss_score == 8.5
    assert bundle.mitigations[0].effectiveness == 10
    assert [c.cve_id for c in bundle.cves] == ["CVE-2021-44228", "CVE-2023-1234"]
    assert bundle.risks == []
    assert bundle.affected == []


@pytest.mark.parametrize("response", [
    "I could not find any entities.",
    "```json\n{\"vulnerabilities\": [{\"name\": \"XSS\"",
    "[]",
])
def test_extract_malformed_output_returns_empty_bundle(response):
    bundle = extractor_returning(response).extract("Some answer")

    assert bundle.is_empty()


def test_extract_upstream_failure_returns_empty_bundle():
    bundle = EntityExtractor(FailingClient()).extract("Some answer")

    assert bundle.is_empty()


def test_extract_with_context_blocks():
    captured = {}

    class RecordingClient:
        def generate(self, prompt):
            captured["text"] = prompt.to_string()
            return '{"cves": [{"cveId": "CVE-2025-0762"}]}'

    bundle = EntityExtractor(RecordingClient()).extract(
        "Use after free in DevTools.",
        reasoning="The CVE hint names the issue.",
        jargons={"UAF": "Use after free"},
        cve_hint=CveInfo(cve_id="CVE-2025-0762", cve_desc="Use after free"),
        question="What is CVE-2025-0762?",
    )

    assert [c.cve_id for c in bundle.cves] == ["CVE-2025-0762"]
    assert "Reasoning: The CVE hint names the issue." in captured["text"]
    assert "Technical Terms:" in captured["text"]
    assert "CVE Info:" in captured["text"]
    assert "What is CVE-2025-0762?" in captured["text"]


def test_extract_oversized_numbers_are_dropped_not_raised():
    huge = "1" + "0" * 400
    response = (
        '{"vulnerabilities": [{"name": "XSS", "cvssScore": ' + huge + '}],'
        ' "mitigations": [{"name": "Output Encoding", "effectiveness": ' + huge + '}]}'
    )

    bundle = extractor_returning(response).extract("Some answer")

    assert bundle.vulnerabilities[0].name == "XSS"
    assert bundle.vulnerabilities[0].cvss_score is None
    assert bundle.mitigations[0].effectiveness is None


def test_extract_integer_beyond_conversion_limit_returns_empty_bundle():
    response = '{"vulnerabilities": [{"name": "XSS", "cvssScore": ' + "9" * 5000 + '}]}'

    bundle = extractor_returning(response).extract("Some answer")

    assert bundle.is_empty()
