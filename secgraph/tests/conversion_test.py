import pytest
from secgraph.core.assembler import GraphAssembler
from secgraph.core.conversion import from_storage_shape, to_storage_shape
from secgraph.schemas.entities import EntityBundle
from secgraph.schemas.graph import ROOT_NODE_ID, NodeKind, Provenance, RelationshipEdge, RelationType
from secgraph.schemas.knowledge import KGContext


@pytest.fixture
def graph():
    bundle = EntityBundle(
        vulnerabilities=[{"name": "SQL Injection", "severity": "High", "cvss": 8.5}],
        cves=[{"cveId": "CVE-2023-1234", "severity": "High"}],
        mitigations=[{"name": "Input Validation", "type": "preventive", "effectiveness": 9}],
        risks=[{"name": "Data Theft", "level": "Critical", "probability": 7, "impact": "Data compromise"}],
    )
    relationships = [RelationshipEdge(source="Input Validation", target="SQL Injection", type="mitigates", strength=9)]
    return GraphAssembler(clock=lambda: 1).assemble(
        "msg-1", "chat-1", bundle, KGContext.empty(), relationships,
        "How do I prevent SQL injection?", "Validate input.", "SQL injection"
    )


def test_to_storage_shape_buckets(graph):
    shape = to_storage_shape(graph)

    assert set(shape) == {"problems", "vulnerabilities", "cves", "mitigations", "risks", "relationships"}
    assert shape["problems"] == [{
        "id": ROOT_NODE_ID,
        "name": "SQL injection",
        "description": "Main topic: SQL injection",
        "source": "user-question",
    }]
    assert shape["vulnerabilities"][0] == {
        "id": "vuln-0", "name": "SQL Injection", "severity": "High", "cvss": 8.5, "source": "extracted"
    }
    assert shape["cves"][0]["cveId"] == "CVE-2023-1234"
    assert shape["cves"][0]["source"] == "NVD"
    assert shape["mitigations"][0]["type"] == "preventive"
    assert shape["mitigations"][0]["effectiveness"] == 9
    assert shape["risks"][0]["level"] == "Critical"
    assert shape["risks"][0]["probability"] == 7
    assert shape["relationships"][0] == {
        "id": "rel-0", "sourceId": "mit-0", "targetId": "vuln-0", "type": "mitigates", "strength": 9
    }


def test_storage_shape_rebuilds_graph(graph):
    rebuilt = from_storage_shape(to_storage_shape(graph), "msg-1", "chat-1")

    assert {node.id for node in rebuilt.nodes} == {node.id for node in graph.nodes}
    assert {(e.source_node_id, e.target_node_id, e.relation_type) for e in rebuilt.edges} == \
        {(e.source_node_id, e.target_node_id, e.relation_type) for e in graph.edges}
    assert rebuilt.get_node("cve-0").kind == NodeKind.cve
    assert rebuilt.get_node("cve-0").label == "CVE-2023-1234"
    assert rebuilt.get_node("cve-0").metadata.provenance == Provenance.nvd
    assert rebuilt.get_node("mit-0").metadata.original_entity == {"type": "preventive", "effectiveness": 9}
    assert rebuilt.metadata.title == "Knowledge Graph: SQL injection"


def test_from_storage_shape_drops_dangling_relationships():
    document = {
        "problems": [{"id": ROOT_NODE_ID, "name": "XSS"}],
        "vulnerabilities": [{"id": "vuln-0", "name": "Stored XSS"}, {"id": "vuln-0", "name": "Duplicate"}, {"name": "No id"}],
        "relationships": [
            {"id": "r1", "sourceId": ROOT_NODE_ID, "targetId": "vuln-0", "type": "answers", "strength": 8},
            {"id": "r2", "sourceId": ROOT_NODE_ID, "targetId": "vuln-9", "type": "answers"},
            {"id": "r3", "sourceId": "vuln-0", "targetId": ROOT_NODE_ID, "type": "unknown"},
        ],
        "unknownBucket": [{"id": "x"}],
    }

    rebuilt = from_storage_shape(document, "msg-1", "chat-1", title="Stored")

    assert [node.label for node in rebuilt.nodes] == ["XSS", "Stored XSS"]
    assert [edge.id for edge in rebuilt.edges] == ["r1", "r3"]
    assert rebuilt.edges[1].relation_type == RelationType.relates_to
    assert rebuilt.edges[1].strength == 1
    assert rebuilt.metadata.title == "Stored"


def test_empty_buckets_are_omitted():
    graph = GraphAssembler(clock=lambda: 1).assemble_minimal("msg-1", "chat-1", "What is XSS?", "XSS")

    assert set(to_storage_shape(graph)) == {"problems"}
