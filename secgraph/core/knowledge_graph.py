"""
Lookup of extracted entities in the persistent security knowledge graph.

The store is optional enrichment: when it cannot be reached the adapter
returns an empty context and generation carries on without it.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from secgraph.core.config import Settings
from secgraph.core.connections.clients import GraphDatabaseClient, Neo4jClient
from secgraph.core.patterns.base import KnowledgeQueryHandler
from secgraph.core.patterns.factory import KnowledgeQueryHandlerFactory
from secgraph.schemas.entities import EntityBundle
from secgraph.schemas.generation import CveInfo
from secgraph.schemas.graph import NodeKind
from secgraph.schemas.knowledge import KGContext, KGMatch

logger = logging.getLogger(__name__)


class KnowledgeGraphAdapter:
    def __init__(self, graph_client: GraphDatabaseClient,
                 handlers: Optional[List[KnowledgeQueryHandler]] = None,
                 match_limit: int = 25, neighbor_limit: int = 10,
                 liveness_retries: int = 2, backoff_base: float = 1.0, backoff_cap: float = 10.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.graph_client = graph_client
        self.handlers = handlers if handlers is not None else KnowledgeQueryHandlerFactory.get_handlers()
        self.match_limit = match_limit
        self.neighbor_limit = neighbor_limit
        self.liveness_retries = max(0, liveness_retries)
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "KnowledgeGraphAdapter":
        client = Neo4jClient(
            uri=settings.neo4j_uri,
            username=settings.neo4j_user,
            password=settings.neo4j_password,
            database=settings.neo4j_database,
        )
        return cls(
            client,
            match_limit=settings.kg_match_limit,
            neighbor_limit=settings.kg_neighbor_limit,
            liveness_retries=settings.liveness_retries,
            backoff_base=settings.liveness_backoff_base,
            backoff_cap=settings.liveness_backoff_cap,
        )

    def is_available(self) -> bool:
        """Liveness check, retried with exponential backoff."""
        for attempt in range(self.liveness_retries + 1):
            if self.graph_client.test_connection():
                return True
            if attempt < self.liveness_retries:
                delay = min(self.backoff_cap, self.backoff_base * (2 ** attempt))
                logger.info("Knowledge graph liveness check failed (attempt %d), retrying in %.1fs", attempt + 1, delay)
                self._sleep(delay)
        return False

    def lookup(self, bundle: EntityBundle,
               source_hints: Optional[List[str]] = None,
               cve_hint: Optional[CveInfo] = None) -> KGContext:
        """
        Find stored nodes matching the extracted entities, with their one-hop neighborhoods.

        Args:
            bundle: Extracted entities
            source_hints: Source names cited by the caller
            cve_hint: CVE hint attached to the answer

        Returns:
            KGContext keyed by node kind; empty when the store is unreachable
        """
        if not self.is_available():
            logger.warning("Knowledge graph unavailable, continuing without enrichment")
            return KGContext.empty()

        matches: Dict[NodeKind, List[KGMatch]] = {}
        for handler in self.handlers:
            try:
                found = handler.execute_query(
                    self.graph_client,
                    bundle,
                    source_hints=source_hints,
                    cve_hint=cve_hint,
                    match_limit=self.match_limit,
                    neighbor_limit=self.neighbor_limit,
                )
            except Exception:
                logger.error("Knowledge graph query for '%s' failed", handler.kind.value, exc_info=True)
                continue
            if found:
                matches[handler.kind] = found

        context = KGContext(matches=matches)
        logger.info("Knowledge graph lookup matched %s", context.counts() or "nothing")
        return context

    def close(self):
        self.graph_client.close()
