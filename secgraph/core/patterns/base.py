from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from secgraph.core.connections.clients import GraphDatabaseClient
from secgraph.schemas.entities import EntityBundle
from secgraph.schemas.generation import CveInfo
from secgraph.schemas.graph import NodeKind
from secgraph.schemas.knowledge import NEIGHBOR_LISTS, KGMatch


class KnowledgeQueryHandler(ABC):
    """
    Base class for per-category knowledge graph lookups.

    To add a category:
    1. Inherit from this class
    2. Set `kind` and `cypher`, implement build_params()
    3. Register in KnowledgeQueryHandlerFactory._handlers

    The Cypher query must return one row per matched node with the node's
    properties under `node` and any of the neighbor lists (vulnerabilities,
    cves, mitigations, affected, risks, sources) as lists of property maps.
    Queries receive `$matchLimit` and `$neighborLimit` in addition to the
    parameters from build_params().
    """

    kind: NodeKind
    cypher: str

    @abstractmethod
    def build_params(self, bundle: EntityBundle,
                     source_hints: Optional[List[str]] = None,
                     cve_hint: Optional[CveInfo] = None) -> Optional[Dict[str, Any]]:
        """
        Build the query parameters for this category.

        Returns:
            The parameters, or None when there is nothing to look up
        """
        pass

    def execute_query(self, graph_client: GraphDatabaseClient, bundle: EntityBundle,
                      source_hints: Optional[List[str]] = None,
                      cve_hint: Optional[CveInfo] = None,
                      match_limit: int = 25, neighbor_limit: int = 10) -> List[KGMatch]:
        params = self.build_params(bundle, source_hints, cve_hint)
        if params is None:
            return []

        rows = graph_client.query(self.cypher, {
            **params,
            "matchLimit": match_limit,
            "neighborLimit": neighbor_limit,
        })
        return [self._to_match(row) for row in rows if row.get("node")]

    def _to_match(self, row: Dict[str, Any]) -> KGMatch:
        neighbors = {
            name: [sanitize_properties(item) for item in (row.get(name) or []) if item]
            for name in NEIGHBOR_LISTS
        }
        return KGMatch(category=self.kind, node=sanitize_properties(row["node"]), **neighbors)


def sanitize_properties(properties: Any) -> Dict[str, Any]:
    """Keep JSON-friendly property values; temporal and spatial driver types become strings."""
    if not isinstance(properties, dict):
        return {}
    clean = {}
    for key, value in properties.items():
        if value is None or isinstance(value, (str, int, float, bool)):
            clean[key] = value
        elif isinstance(value, (list, tuple)):
            clean[key] = [item if isinstance(item, (str, int, float, bool)) else str(item) for item in value]
        else:
            clean[key] = str(value)
    return clean


def non_empty(values) -> List[str]:
    """Strip and de-duplicate lookup terms, preserving order."""
    seen = set()
    terms = []
    for value in values:
        if not isinstance(value, str):
            continue
        term = value.strip()
        if term and term.lower() not in seen:
            seen.add(term.lower())
            terms.append(term)
    return terms
