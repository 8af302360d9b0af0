import pytest
from unittest.mock import MagicMock
from datetime import date
from secgraph.core.knowledge_graph import KnowledgeGraphAdapter
from secgraph.core.patterns.factory import KnowledgeQueryHandlerFactory
from secgraph.core.patterns.handlers.graph_handlers import (
    CveGraphHandler, MitigationGraphHandler, SourceGraphHandler, VulnerabilityGraphHandler
)
from secgraph.schemas.entities import EntityBundle
from secgraph.schemas.generation import CveInfo
from secgraph.schemas.graph import NodeKind


@pytest.fixture
def bundle():
    return EntityBundle(
        vulnerabilities=[{"name": "SQL Injection"}],
        cves=[{"cveId": "CVE-2021-44228", "description": "Log4Shell"}],
        mitigations=[{"name": "Input Validation", "description": "Validate inputs"}],
    )


@pytest.fixture
def graph_client():
    client = MagicMock()
    client.test_connection.return_value = True
    client.query.return_value = []
    return client


def make_adapter(graph_client, **kwargs):
    return KnowledgeGraphAdapter(graph_client, sleep=lambda seconds: None, **kwargs)


def test_liveness_check_failure_returns_empty_context(graph_client, bundle):
    graph_client.test_connection.return_value = False
    delays = []
    adapter = KnowledgeGraphAdapter(graph_client, liveness_retries=2, backoff_base=1.0,
                                    backoff_cap=10.0, sleep=delays.append)

    context = adapter.lookup(bundle)

    assert context.is_empty()
    assert graph_client.test_connection.call_count == 3
    assert delays == [1.0, 2.0]
    graph_client.query.assert_not_called()


def test_liveness_backoff_is_capped(graph_client, bundle):
    graph_client.test_connection.return_value = False
    delays = []
    adapter = KnowledgeGraphAdapter(graph_client, liveness_retries=4, backoff_base=4.0,
                                    backoff_cap=10.0, sleep=delays.append)

    adapter.lookup(bundle)

    assert delays == [4.0, 8.0, 10.0, 10.0]


def test_liveness_check_recovers_after_retry(graph_client, bundle):
    graph_client.test_connection.side_effect = [False, True]

    make_adapter(graph_client).lookup(bundle)

    assert graph_client.query.called


def test_lookup_collects_matches(graph_client, bundle):
    def run_query(cypher, parameters):
        if "MATCH (v:Vulnerability)\n" in cypher:
            return [{
                "node": {"name": "SQL Injection", "published": date(2024, 1, 2)},
                "cves": [{"cveId": "CVE-2021-44228"}],
                "mitigations": [],
            }]
        return []

    graph_client.query.side_effect = run_query

    context = make_adapter(graph_client).lookup(bundle)

    matches = context.for_kind(NodeKind.vulnerability)
    assert len(matches) == 1
    assert matches[0].node == {"name": "SQL Injection", "published": "2024-01-02"}
    assert matches[0].cves == [{"cveId": "CVE-2021-44228"}]
    assert context.counts() == {"vulnerability": 1}


def test_failing_category_keeps_other_results(graph_client, bundle):
    def run_query(cypher, parameters):
        if "MATCH (c:CVE)\n" in cypher:
            raise RuntimeError("query timed out")
        if "MATCH (m:Mitigation)" in cypher:
            return [{"node": {"name": "Input Validation"}, "vulnerabilities": [{"name": "SQL Injection"}]}]
        return []

    graph_client.query.side_effect = run_query

    context = make_adapter(graph_client).lookup(bundle)

    assert context.for_kind(NodeKind.cve) == []
    assert context.for_kind(NodeKind.mitigation)[0].node["name"] == "Input Validation"


def test_empty_categories_are_not_queried(graph_client):
    make_adapter(graph_client).lookup(EntityBundle())

    graph_client.query.assert_not_called()


def test_query_parameters_include_hints(graph_client, bundle):
    hint = CveInfo(cve_id="CVE-2025-0762", cve_desc="Use after free", mitigation="Update Chrome")

    make_adapter(graph_client, match_limit=5, neighbor_limit=3).lookup(
        bundle, source_hints=["NVD"], cve_hint=hint
    )

    params = {call.args[0]: call.args[1] for call in graph_client.query.call_args_list}
    vuln_params = params[VulnerabilityGraphHandler.cypher]
    assert vuln_params["names"] == ["SQL Injection"]
    assert vuln_params["cveIds"] == ["CVE-2021-44228", "CVE-2025-0762"]
    assert vuln_params["matchLimit"] == 5
    assert vuln_params["neighborLimit"] == 3
    assert params[CveGraphHandler.cypher]["descriptions"] == ["Log4Shell", "Use after free"]
    assert params[MitigationGraphHandler.cypher]["descriptions"] == ["Validate inputs", "Update Chrome"]
    assert params[SourceGraphHandler.cypher]["names"] == ["NVD"]


def test_factory_registry():
    kinds = KnowledgeQueryHandlerFactory.get_available_kinds()

    assert NodeKind.problem not in kinds
    assert isinstance(KnowledgeQueryHandlerFactory.get_handler(NodeKind.cve), CveGraphHandler)
    with pytest.raises(ValueError):
        KnowledgeQueryHandlerFactory.get_handler(NodeKind.problem)
