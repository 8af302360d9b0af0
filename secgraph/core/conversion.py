"""
Conversion between the in-memory Graph and the bucketed storage shape.

The storage shape groups nodes by kind (``vulnerabilities``, ``cves`` ...)
and keeps edges under ``relationships`` with ``sourceId``/``targetId``.
Buckets are only present when non-empty.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from secgraph.core.assembler import epoch_millis
from secgraph.schemas.graph import (
    ROOT_NODE_ID,
    Graph,
    GraphEdge,
    GraphMetadata,
    GraphNode,
    NodeKind,
    NodeMetadata,
    Provenance,
    coerce_relation_type,
    coerce_strength,
)
from secgraph.schemas.entities import coerce_cvss, coerce_text

logger = logging.getLogger(__name__)

# Node kind -> (bucket name, label field, fields copied from the original entity)
STORAGE_BUCKETS: Dict[NodeKind, Tuple[str, str, Tuple[str, ...]]] = {
    NodeKind.vulnerability: ("vulnerabilities", "name", ()),
    NodeKind.mitigation: ("mitigations", "name", ("type", "effectiveness")),
    NodeKind.source: ("sources", "name", ("type", "url", "reliability")),
    NodeKind.cve: ("cves", "cveId", ()),
    NodeKind.problem: ("problems", "name", ("category", "impact")),
    NodeKind.affected: ("affected", "name", ("type", "impact")),
    NodeKind.risk: ("risks", "name", ("probability", "impact")),
}

BUCKET_KINDS = {bucket: kind for kind, (bucket, _, _) in STORAGE_BUCKETS.items()}


def _node_entry(node: GraphNode) -> Dict[str, Any]:
    _, label_field, entity_fields = STORAGE_BUCKETS[node.kind]
    original = node.metadata.original_entity or {}

    entry: Dict[str, Any] = {
        "id": node.id,
        label_field: node.label,
        "description": node.description,
    }
    if node.kind == NodeKind.risk:
        entry["level"] = node.severity.value if node.severity else original.get("level")
    elif node.kind in (NodeKind.vulnerability, NodeKind.cve):
        entry["severity"] = node.severity.value if node.severity else None
        entry["cvss"] = node.cvss_score
    for field in entity_fields:
        entry[field] = original.get(field)
    entry["source"] = node.metadata.provenance.value
    return {key: value for key, value in entry.items() if value is not None}


def to_storage_shape(graph: Graph) -> Dict[str, Any]:
    """Regroup a graph into the bucketed storage document."""
    shape: Dict[str, List[Dict[str, Any]]] = {}
    for node in graph.nodes:
        bucket = STORAGE_BUCKETS[node.kind][0]
        shape.setdefault(bucket, []).append(_node_entry(node))

    if graph.edges:
        shape["relationships"] = [
            {
                key: value for key, value in {
                    "id": edge.id,
                    "sourceId": edge.source_node_id,
                    "targetId": edge.target_node_id,
                    "type": edge.relation_type.value,
                    "strength": edge.strength,
                    "description": edge.description,
                }.items() if value is not None
            }
            for edge in graph.edges
        ]
    return shape


def _provenance(value: Any, kind: NodeKind) -> Provenance:
    try:
        return Provenance(value)
    except ValueError:
        return Provenance.nvd if kind == NodeKind.cve else Provenance.extracted


def _node_from_entry(kind: NodeKind, entry: Dict[str, Any]) -> Optional[GraphNode]:
    _, label_field, entity_fields = STORAGE_BUCKETS[kind]
    node_id = coerce_text(entry.get("id"))
    label = coerce_text(entry.get(label_field)) or coerce_text(entry.get("name"))
    if not node_id or not label:
        return None

    original = {field: entry[field] for field in entity_fields if entry.get(field) is not None}
    return GraphNode(
        id=node_id,
        label=label,
        kind=kind,
        description=coerce_text(entry.get("description")),
        severity=entry.get("level") if kind == NodeKind.risk else entry.get("severity"),
        cvss_score=coerce_cvss(entry.get("cvss")),
        metadata=NodeMetadata(
            provenance=_provenance(entry.get("source"), kind),
            original_entity=original or None,
        ),
    )


def from_storage_shape(document: Dict[str, Any], message_id: str, chat_id: str,
                       title: Optional[str] = None,
                       clock: Callable[[], int] = epoch_millis) -> Graph:
    """
    Rebuild a Graph from a stored document.

    Malformed entries, repeated node ids and relationships whose endpoints
    are not in the document are dropped.
    """
    nodes: List[GraphNode] = []
    seen_ids = set()
    for bucket, entries in document.items():
        kind = BUCKET_KINDS.get(bucket)
        if kind is None or not isinstance(entries, list):
            continue
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            node = _node_from_entry(kind, entry)
            if node is None or node.id in seen_ids:
                logger.debug("Dropping stored %s entry %r", bucket, entry)
                continue
            seen_ids.add(node.id)
            nodes.append(node)

    edges: List[GraphEdge] = []
    for index, relationship in enumerate(document.get("relationships") or []):
        if not isinstance(relationship, dict):
            continue
        source_id = relationship.get("sourceId")
        target_id = relationship.get("targetId")
        if source_id not in seen_ids or target_id not in seen_ids or source_id == target_id:
            logger.debug("Dropping stored relationship %r", relationship)
            continue
        edges.append(GraphEdge(
            id=coerce_text(relationship.get("id")) or f"rel-{index}",
            source_node_id=source_id,
            target_node_id=target_id,
            relation_type=coerce_relation_type(relationship.get("type")),
            description=coerce_text(relationship.get("description")),
            strength=coerce_strength(relationship.get("strength")),
        ))

    if title is None:
        root = next((node for node in nodes if node.id == ROOT_NODE_ID), None)
        title = f"Knowledge Graph: {root.label}" if root else "Knowledge Graph"

    return Graph(
        nodes=tuple(nodes),
        edges=tuple(edges),
        metadata=GraphMetadata(title=title, created_at=clock(), message_id=message_id, chat_id=chat_id),
    )
