import json
import pytest
from unittest.mock import MagicMock
from langchain_core.language_models import FakeListChatModel
from secgraph.core.assembler import GraphAssembler
from secgraph.core.exceptions import GraphGenerationError, StructuralInputError
from secgraph.core.extraction import EntityExtractor
from secgraph.core.knowledge_graph import KnowledgeGraphAdapter
from secgraph.core.llm import GenerationClient
from secgraph.core.pipeline import GraphGenerationService, graph_summary, sample_graph
from secgraph.core.relationships import RelationshipSynthesizer
from secgraph.core.topic import TopicExtractor
from secgraph.schemas.generation import GraphGenerationRequest
from secgraph.schemas.graph import ROOT_NODE_ID, Provenance, RelationType


def client(*responses):
    return GenerationClient(FakeListChatModel(responses=list(responses)), max_attempts=1)


@pytest.fixture
def request_body():
    return GraphGenerationRequest(
        message_id="msg-1",
        chat_id="chat-1",
        question="How does SQL injection work?",
        answer="SQL injection abuses unsanitized input. Use parameterized queries.",
        sources=["OWASP"],
    )


@pytest.fixture
def offline_kg():
    graph_client = MagicMock()
    graph_client.test_connection.return_value = False
    return KnowledgeGraphAdapter(graph_client, liveness_retries=0)


def make_service(offline_kg, entities, relationships, topic="SQL injection", tolerant_mode=False, assembler=None):
    return GraphGenerationService(
        extractor=EntityExtractor(client(entities)),
        topic_extractor=TopicExtractor(client(topic)),
        kg_adapter=offline_kg,
        synthesizer=RelationshipSynthesizer(client(relationships)),
        assembler=assembler or GraphAssembler(clock=lambda: 1),
        tolerant_mode=tolerant_mode,
    )


def test_generate_graph_end_to_end(offline_kg, request_body):
    entities = json.dumps({
        "vulnerabilities": [{"name": "SQL Injection", "severity": "High"}],
        "mitigations": [{"name": "Parameterized Queries"}],
    })
    relationships = json.dumps([
        {"source": "SQL Injection", "target": "User Question", "type": "answers", "strength": 9},
        {"source": "Parameterized Queries", "target": "SQL Injection", "type": "mitigates", "strength": 9},
    ])

    graph = make_service(offline_kg, entities, relationships).generate_graph(request_body)

    assert [node.id for node in graph.nodes] == [ROOT_NODE_ID, "vuln-0", "mit-0"]
    assert graph.root.label == "SQL injection"
    edges = {(e.source_node_id, e.target_node_id, e.relation_type) for e in graph.edges}
    assert (ROOT_NODE_ID, "vuln-0", RelationType.answers) in edges
    assert ("mit-0", "vuln-0", RelationType.mitigates) in edges
    assert (ROOT_NODE_ID, "mit-0", RelationType.explains) in edges
    assert all(node.metadata.kg_match is None for node in graph.nodes)


def test_garbage_outputs_still_produce_root_graph(offline_kg, request_body):
    graph = make_service(offline_kg, "not json", "still not json", topic="").generate_graph(request_body)

    assert len(graph.nodes) == 1
    assert graph.root.label == "How does SQL"


def test_unexpected_fault_in_tolerant_mode_returns_root_only(offline_kg, request_body):
    assembler = GraphAssembler(clock=lambda: 1)
    assembler.assemble = MagicMock(side_effect=RuntimeError("boom"))
    service = make_service(offline_kg, "{}", "[]", tolerant_mode=True, assembler=assembler)

    graph = service.generate_graph(request_body)

    assert [node.id for node in graph.nodes] == [ROOT_NODE_ID]
    assert graph.root.label == "SQL injection"


def test_unexpected_fault_in_strict_mode_raises(offline_kg, request_body):
    assembler = GraphAssembler(clock=lambda: 1)
    assembler.assemble = MagicMock(side_effect=RuntimeError("boom"))
    service = make_service(offline_kg, "{}", "[]", assembler=assembler)

    with pytest.raises(GraphGenerationError):
        service.generate_graph(request_body)


def test_structural_error_propagates_in_tolerant_mode(offline_kg, request_body):
    assembler = GraphAssembler(clock=lambda: 1)
    assembler.assemble = MagicMock(side_effect=StructuralInputError("relationships must be a list"))
    service = make_service(offline_kg, "{}", "[]", tolerant_mode=True, assembler=assembler)

    with pytest.raises(StructuralInputError):
        service.generate_graph(request_body)


def test_graph_summary(offline_kg, request_body):
    entities = json.dumps({"vulnerabilities": [{"name": "SQL Injection"}]})
    graph = make_service(offline_kg, entities, "[]").generate_graph(request_body)

    summary = graph_summary(graph)

    assert "- Total Nodes: 2" in summary
    assert "problem: 1, vulnerability: 1" in summary
    assert "answers: 1" in summary
    assert "- Chat ID: chat-1" in summary


def test_sample_graph():
    graph = sample_graph(created_at=42)

    assert graph.metadata.title == "Sample SQL Injection Graph"
    assert graph.metadata.created_at == 42
    assert len(graph.nodes) == 4
    assert len(graph.edges) == 5
    assert graph.root.metadata.provenance == Provenance.sample
    root_linked = {e.target_node_id for e in graph.edges if e.source_node_id == graph.root.id}
    assert root_linked == {n.id for n in graph.nodes} - {graph.root.id}
