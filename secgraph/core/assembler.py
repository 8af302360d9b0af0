"""
Deterministic assembly of the typed knowledge graph.

Given the same entities, relationships and topic the assembler always
produces the same node ids, edge endpoints and edge types; only the
creation timestamp differs between runs.
"""

import logging
import time
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

from pydantic import ValidationError

from secgraph.core.exceptions import StructuralInputError
from secgraph.schemas.entities import ENTITY_CATEGORIES, Entity, EntityBundle
from secgraph.schemas.graph import (
    QUESTION_ALIASES,
    ROOT_NODE_ID,
    Graph,
    GraphEdge,
    GraphMetadata,
    GraphNode,
    NodeKind,
    NodeMetadata,
    Provenance,
    RelationshipEdge,
    RelationType,
)
from secgraph.schemas.knowledge import KGContext

logger = logging.getLogger(__name__)

COMPLETENESS_STRENGTH = 7

# Bundle category -> (node kind, id prefix), in node creation order
NODE_CATEGORIES: Tuple[Tuple[str, NodeKind, str], ...] = (
    ("vulnerabilities", NodeKind.vulnerability, "vuln"),
    ("cves", NodeKind.cve, "cve"),
    ("mitigations", NodeKind.mitigation, "mit"),
    ("sources", NodeKind.source, "src"),
    ("affected", NodeKind.affected, "aff"),
    ("risks", NodeKind.risk, "risk"),
)

# Relation used to attach an otherwise unconnected node to the root
COMPLETENESS_RELATIONS: Dict[NodeKind, Tuple[RelationType, str]] = {
    NodeKind.vulnerability: (RelationType.answers, "Directly answers the user's question about vulnerabilities"),
    NodeKind.cve: (RelationType.demonstrates, "Demonstrates specific vulnerability examples"),
    NodeKind.mitigation: (RelationType.explains, "Explains how to address the problem"),
    NodeKind.source: (RelationType.references, "References authoritative information"),
    NodeKind.affected: (RelationType.explains, "Explains what systems are impacted"),
    NodeKind.risk: (RelationType.explains, "Explains the risk assessment"),
}


def epoch_millis() -> int:
    return int(time.time() * 1000)


def normalize_label(label: str) -> str:
    return " ".join(label.split()).casefold()


class NodeLookup:
    """Resolves relationship endpoint names to node ids.

    Exact labels are tried first; a case and whitespace insensitive table is
    only consulted when the exact lookup misses. The first node registered
    under a label wins.
    """

    def __init__(self):
        self._exact: Dict[str, str] = {}
        self._normalized: Dict[str, str] = {}

    def add(self, label: str, node_id: str):
        self._exact.setdefault(label, node_id)
        self._normalized.setdefault(normalize_label(label), node_id)

    def resolve(self, name: str) -> Optional[str]:
        if name in self._exact:
            return self._exact[name]
        return self._normalized.get(normalize_label(name))


class GraphAssembler:
    def __init__(self, clock: Callable[[], int] = epoch_millis):
        self.clock = clock

    def assemble(self, message_id: str, chat_id: str,
                 bundle: Any,
                 kg_context: Optional[KGContext],
                 relationships: Any,
                 question: str,
                 answer: str,
                 topic: str) -> Graph:
        """
        Build the graph rooted at the user question.

        Args:
            message_id: Chat message the graph belongs to
            chat_id: Chat the message belongs to
            bundle: EntityBundle, or a mapping of category name to list of raw entities
            kg_context: Knowledge graph matches used for kgMatch annotations
            relationships: List of RelationshipEdge (or raw dicts) from the synthesizer
            question: The user's original question
            answer: The analysis text
            topic: Root label

        Returns:
            The assembled Graph

        Raises:
            StructuralInputError: If an entity category or the relationship collection is not a list
        """
        if not isinstance(relationships, (list, tuple)):
            raise StructuralInputError(
                f"relationships must be a list, got {type(relationships).__name__}"
            )
        categories = self._categories(bundle)

        root = self._root_node(question, topic)
        nodes: List[GraphNode] = [root]
        lookup = NodeLookup()
        for alias in QUESTION_ALIASES:
            lookup.add(alias, ROOT_NODE_ID)

        for category, kind, prefix in NODE_CATEGORIES:
            for slot, entity in categories[category]:
                node = self._entity_node(f"{prefix}-{slot}", kind, entity)
                nodes.append(node)
                lookup.add(node.label, node.id)

        edges = self._resolve_edges(relationships, lookup)
        edges.extend(self._completeness_edges(nodes, edges))
        nodes = self._annotate_kg_matches(nodes, kg_context)

        graph = Graph(
            nodes=tuple(nodes),
            edges=tuple(edges),
            metadata=self._metadata(message_id, chat_id, topic),
        )
        logger.info("Assembled graph with %d nodes and %d edges", len(graph.nodes), len(graph.edges))
        return graph

    def assemble_minimal(self, message_id: str, chat_id: str, question: str, topic: Optional[str] = None) -> Graph:
        """Root-only graph, used when generation cannot complete."""
        topic = topic or question or "User Question"
        return Graph(
            nodes=(self._root_node(question, topic),),
            edges=(),
            metadata=self._metadata(message_id, chat_id, topic),
        )

    def _categories(self, bundle: Any) -> Dict[str, List[Tuple[int, Entity]]]:
        if isinstance(bundle, EntityBundle):
            return {
                category: list(enumerate(getattr(bundle, category)))
                for category, _, _ in NODE_CATEGORIES
            }
        if not isinstance(bundle, Mapping):
            raise StructuralInputError(
                f"entities must be an EntityBundle or a mapping, got {type(bundle).__name__}"
            )

        categories = {}
        for category, _, _ in NODE_CATEGORIES:
            raw_items = bundle.get(category)
            if raw_items is None:
                raw_items = []
            if not isinstance(raw_items, (list, tuple)):
                raise StructuralInputError(
                    f"entity category '{category}' must be a list, got {type(raw_items).__name__}"
                )
            categories[category] = list(self._validated(category, raw_items))
        return categories

    def _validated(self, category: str, raw_items: Sequence[Any]) -> Iterator[Tuple[int, Entity]]:
        model = ENTITY_CATEGORIES[category]
        for slot, item in enumerate(raw_items):
            if isinstance(item, model):
                yield slot, item
                continue
            try:
                yield slot, model.model_validate(item)
            except ValidationError:
                logger.warning("Skipping %s entry %d without a usable key", category, slot)

    def _root_node(self, question: str, topic: str) -> GraphNode:
        return GraphNode(
            id=ROOT_NODE_ID,
            label=topic,
            kind=NodeKind.problem,
            description=f"Main topic: {topic}",
            metadata=NodeMetadata(provenance=Provenance.user_question, original_question=question),
        )

    def _entity_node(self, node_id: str, kind: NodeKind, entity: Entity) -> GraphNode:
        severity = getattr(entity, "severity", None)
        if kind == NodeKind.risk:
            severity = getattr(entity, "level", None)

        return GraphNode(
            id=node_id,
            label=entity.key,
            kind=kind,
            description=getattr(entity, "description", None),
            severity=severity,
            cvss_score=getattr(entity, "cvss_score", None),
            metadata=NodeMetadata(
                provenance=Provenance.nvd if kind == NodeKind.cve else Provenance.extracted,
                original_entity=entity.to_dict(),
            ),
        )

    def _resolve_edges(self, relationships: Sequence[Any], lookup: NodeLookup) -> List[GraphEdge]:
        edges: List[GraphEdge] = []
        seen: Set[Tuple[str, str, RelationType]] = set()

        for index, relationship in enumerate(relationships):
            if not isinstance(relationship, RelationshipEdge):
                try:
                    relationship = RelationshipEdge.model_validate(relationship)
                except ValidationError:
                    logger.debug("Dropping relationship %d: invalid shape", index)
                    continue

            source_id = lookup.resolve(relationship.source)
            target_id = lookup.resolve(relationship.target)
            if source_id is None or target_id is None:
                logger.debug("Dropping relationship %d: unresolved endpoint %r -> %r",
                             index, relationship.source, relationship.target)
                continue
            if source_id == target_id:
                logger.debug("Dropping relationship %d: self loop on %s", index, source_id)
                continue
            if target_id == ROOT_NODE_ID:
                source_id, target_id = target_id, source_id

            key = (source_id, target_id, relationship.type)
            if key in seen:
                logger.debug("Dropping relationship %d: duplicate of an earlier edge", index)
                continue
            seen.add(key)

            edges.append(GraphEdge(
                id=f"rel-{index}",
                source_node_id=source_id,
                target_node_id=target_id,
                relation_type=relationship.type,
                description=relationship.description,
                strength=relationship.strength,
            ))
        return edges

    def _completeness_edges(self, nodes: Sequence[GraphNode], edges: Sequence[GraphEdge]) -> List[GraphEdge]:
        connected = set()
        for edge in edges:
            if edge.source_node_id == ROOT_NODE_ID:
                connected.add(edge.target_node_id)
            elif edge.target_node_id == ROOT_NODE_ID:
                connected.add(edge.source_node_id)

        added = []
        for node in nodes:
            if node.id == ROOT_NODE_ID or node.id in connected:
                continue
            relation, description = COMPLETENESS_RELATIONS.get(
                node.kind, (RelationType.relates_to, "Related to user question")
            )
            added.append(GraphEdge(
                id=f"problem-connection-{node.id}",
                source_node_id=ROOT_NODE_ID,
                target_node_id=node.id,
                relation_type=relation,
                description=description,
                strength=COMPLETENESS_STRENGTH,
            ))
        return added

    def _annotate_kg_matches(self, nodes: List[GraphNode], kg_context: Optional[KGContext]) -> List[GraphNode]:
        if kg_context is None or kg_context.is_empty():
            return nodes

        annotated = []
        for node in nodes:
            if node.id == ROOT_NODE_ID:
                annotated.append(node)
                continue
            try:
                match = kg_context.find(node.kind, node.label)
                if match:
                    node = node.model_copy(update={
                        "metadata": node.metadata.model_copy(update={"kg_match": match}),
                    })
            except Exception:
                logger.warning("Knowledge graph annotation failed for %s", node.id, exc_info=True)
            annotated.append(node)
        return annotated

    def _metadata(self, message_id: str, chat_id: str, topic: str) -> GraphMetadata:
        return GraphMetadata(
            title=f"Knowledge Graph: {topic}",
            created_at=self.clock(),
            message_id=message_id,
            chat_id=chat_id,
        )
