from typing import Any, Dict, List, Optional
from ..base import KnowledgeQueryHandler, non_empty
from secgraph.schemas.entities import EntityBundle
from secgraph.schemas.generation import CveInfo
from secgraph.schemas.graph import NodeKind


def _hint_value(cve_hint: Optional[CveInfo], field: str) -> List[str]:
    value = getattr(cve_hint, field, None) if cve_hint else None
    return [value] if value else []


class VulnerabilityGraphHandler(KnowledgeQueryHandler):
    kind = NodeKind.vulnerability
    cypher = """
        MATCH (v:Vulnerability)
        WHERE any(name IN $names WHERE toLower(v.name) CONTAINS toLower(name))
           OR any(cveId IN $cveIds WHERE v.cveId = cveId)
        WITH DISTINCT v LIMIT $matchLimit
        OPTIONAL MATCH (v)-[:HAS_CVE]->(c:CVE)
        OPTIONAL MATCH (v)-[:HAS_MITIGATION]->(m:Mitigation)
        OPTIONAL MATCH (v)-[:AFFECTS]->(a:Affected)
        OPTIONAL MATCH (v)-[:HAS_RISK]->(r:Risk)
        OPTIONAL MATCH (v)-[:REFERENCES]->(s:Source)
        WITH v,
             collect(DISTINCT c)[..$neighborLimit] AS cves,
             collect(DISTINCT m)[..$neighborLimit] AS mitigations,
             collect(DISTINCT a)[..$neighborLimit] AS affected,
             collect(DISTINCT r)[..$neighborLimit] AS risks,
             collect(DISTINCT s)[..$neighborLimit] AS sources
        RETURN properties(v) AS node,
               [n IN cves | properties(n)] AS cves,
               [n IN mitigations | properties(n)] AS mitigations,
               [n IN affected | properties(n)] AS affected,
               [n IN risks | properties(n)] AS risks,
               [n IN sources | properties(n)] AS sources
    """

    def build_params(self, bundle: EntityBundle,
                     source_hints: Optional[List[str]] = None,
                     cve_hint: Optional[CveInfo] = None) -> Optional[Dict[str, Any]]:
        names = non_empty(v.name for v in bundle.vulnerabilities)
        cve_ids = non_empty([c.cve_id for c in bundle.cves] + _hint_value(cve_hint, "cve_id"))
        if not names and not cve_ids:
            return None
        return {"names": names, "cveIds": cve_ids}


class CveGraphHandler(KnowledgeQueryHandler):
    kind = NodeKind.cve
    cypher = """
        MATCH (c:CVE)
        WHERE any(id IN $ids WHERE c.cveId = id)
           OR any(desc IN $descriptions WHERE toLower(c.description) CONTAINS toLower(desc))
        WITH DISTINCT c LIMIT $matchLimit
        OPTIONAL MATCH (c)-[:BELONGS_TO]->(v:Vulnerability)
        OPTIONAL MATCH (c)-[:HAS_MITIGATION]->(m:Mitigation)
        OPTIONAL MATCH (c)-[:AFFECTS]->(a:Affected)
        OPTIONAL MATCH (c)-[:REFERENCES]->(s:Source)
        WITH c,
             collect(DISTINCT v)[..$neighborLimit] AS vulnerabilities,
             collect(DISTINCT m)[..$neighborLimit] AS mitigations,
             collect(DISTINCT a)[..$neighborLimit] AS affected,
             collect(DISTINCT s)[..$neighborLimit] AS sources
        RETURN properties(c) AS node,
               [n IN vulnerabilities | properties(n)] AS vulnerabilities,
               [n IN mitigations | properties(n)] AS mitigations,
               [n IN affected | properties(n)] AS affected,
               [n IN sources | properties(n)] AS sources
    """

    def build_params(self, bundle: EntityBundle,
                     source_hints: Optional[List[str]] = None,
                     cve_hint: Optional[CveInfo] = None) -> Optional[Dict[str, Any]]:
        ids = non_empty([c.cve_id for c in bundle.cves] + _hint_value(cve_hint, "cve_id"))
        descriptions = non_empty([c.description for c in bundle.cves] + _hint_value(cve_hint, "cve_desc"))
        if not ids and not descriptions:
            return None
        return {"ids": [cve_id.upper() for cve_id in ids], "descriptions": descriptions}


class MitigationGraphHandler(KnowledgeQueryHandler):
    kind = NodeKind.mitigation
    cypher = """
        MATCH (m:Mitigation)
        WHERE any(name IN $names WHERE toLower(m.name) CONTAINS toLower(name))
           OR any(desc IN $descriptions WHERE toLower(m.description) CONTAINS toLower(desc))
        WITH DISTINCT m LIMIT $matchLimit
        OPTIONAL MATCH (m)-[:MITIGATES]->(v:Vulnerability)
        OPTIONAL MATCH (m)-[:APPLIES_TO]->(c:CVE)
        WITH m,
             collect(DISTINCT v)[..$neighborLimit] AS vulnerabilities,
             collect(DISTINCT c)[..$neighborLimit] AS cves
        RETURN properties(m) AS node,
               [n IN vulnerabilities | properties(n)] AS vulnerabilities,
               [n IN cves | properties(n)] AS cves
    """

    def build_params(self, bundle: EntityBundle,
                     source_hints: Optional[List[str]] = None,
                     cve_hint: Optional[CveInfo] = None) -> Optional[Dict[str, Any]]:
        names = non_empty(m.name for m in bundle.mitigations)
        descriptions = non_empty([m.description for m in bundle.mitigations] + _hint_value(cve_hint, "mitigation"))
        if not names and not descriptions:
            return None
        return {"names": names, "descriptions": descriptions}


class SourceGraphHandler(KnowledgeQueryHandler):
    kind = NodeKind.source
    cypher = """
        MATCH (s:Source)
        WHERE any(name IN $names WHERE toLower(s.name) CONTAINS toLower(name))
        WITH DISTINCT s LIMIT $matchLimit
        OPTIONAL MATCH (v:Vulnerability)-[:REFERENCES]->(s)
        OPTIONAL MATCH (c:CVE)-[:REFERENCES]->(s)
        WITH s,
             collect(DISTINCT v)[..$neighborLimit] AS vulnerabilities,
             collect(DISTINCT c)[..$neighborLimit] AS cves
        RETURN properties(s) AS node,
               [n IN vulnerabilities | properties(n)] AS vulnerabilities,
               [n IN cves | properties(n)] AS cves
    """

    def build_params(self, bundle: EntityBundle,
                     source_hints: Optional[List[str]] = None,
                     cve_hint: Optional[CveInfo] = None) -> Optional[Dict[str, Any]]:
        names = non_empty([s.name for s in bundle.sources] + list(source_hints or []))
        if not names:
            return None
        return {"names": names}


class AffectedGraphHandler(KnowledgeQueryHandler):
    kind = NodeKind.affected
    cypher = """
        MATCH (a:Affected)
        WHERE any(name IN $names WHERE toLower(a.name) CONTAINS toLower(name))
        WITH DISTINCT a LIMIT $matchLimit
        OPTIONAL MATCH (v:Vulnerability)-[:AFFECTS]->(a)
        OPTIONAL MATCH (c:CVE)-[:AFFECTS]->(a)
        WITH a,
             collect(DISTINCT v)[..$neighborLimit] AS vulnerabilities,
             collect(DISTINCT c)[..$neighborLimit] AS cves
        RETURN properties(a) AS node,
               [n IN vulnerabilities | properties(n)] AS vulnerabilities,
               [n IN cves | properties(n)] AS cves
    """

    def build_params(self, bundle: EntityBundle,
                     source_hints: Optional[List[str]] = None,
                     cve_hint: Optional[CveInfo] = None) -> Optional[Dict[str, Any]]:
        names = non_empty(a.name for a in bundle.affected)
        return {"names": names} if names else None


class RiskGraphHandler(KnowledgeQueryHandler):
    kind = NodeKind.risk
    cypher = """
        MATCH (r:Risk)
        WHERE any(name IN $names WHERE toLower(r.name) CONTAINS toLower(name))
        WITH DISTINCT r LIMIT $matchLimit
        OPTIONAL MATCH (v:Vulnerability)-[:HAS_RISK]->(r)
        WITH r, collect(DISTINCT v)[..$neighborLimit] AS vulnerabilities
        RETURN properties(r) AS node,
               [n IN vulnerabilities | properties(n)] AS vulnerabilities
    """

    def build_params(self, bundle: EntityBundle,
                     source_hints: Optional[List[str]] = None,
                     cve_hint: Optional[CveInfo] = None) -> Optional[Dict[str, Any]]:
        names = non_empty(r.name for r in bundle.risks)
        return {"names": names} if names else None
