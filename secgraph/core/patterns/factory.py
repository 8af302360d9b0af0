from typing import Dict, List, Type
from .base import KnowledgeQueryHandler
from .handlers.graph_handlers import (
    VulnerabilityGraphHandler,
    CveGraphHandler,
    MitigationGraphHandler,
    SourceGraphHandler,
    AffectedGraphHandler,
    RiskGraphHandler,
)
from secgraph.schemas.graph import NodeKind


class KnowledgeQueryHandlerFactory:
    """
    Factory class to create the knowledge graph query handler for a node kind.

    Handlers run in the order they are listed in _handlers.
    """

    _handlers: Dict[NodeKind, Type[KnowledgeQueryHandler]] = {
        NodeKind.vulnerability: VulnerabilityGraphHandler,
        NodeKind.cve: CveGraphHandler,
        NodeKind.mitigation: MitigationGraphHandler,
        NodeKind.source: SourceGraphHandler,
        NodeKind.affected: AffectedGraphHandler,
        NodeKind.risk: RiskGraphHandler,
    }

    @classmethod
    def get_handler(cls, kind: NodeKind) -> KnowledgeQueryHandler:
        """Get handler instance for the given node kind"""
        if kind not in cls._handlers:
            raise ValueError(f"No query handler for kind: {kind}. Available kinds: {[k.value for k in cls._handlers]}")

        handler_class = cls._handlers[kind]
        return handler_class()

    @classmethod
    def get_handlers(cls) -> List[KnowledgeQueryHandler]:
        return [handler_class() for handler_class in cls._handlers.values()]

    @classmethod
    def get_available_kinds(cls) -> List[NodeKind]:
        """Get list of all node kinds with a query handler"""
        return list(cls._handlers.keys())
