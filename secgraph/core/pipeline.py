import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from secgraph.core.assembler import GraphAssembler
from secgraph.core.config import Settings
from secgraph.core.exceptions import GraphGenerationError, StructuralInputError
from secgraph.core.extraction import EntityExtractor
from secgraph.core.knowledge_graph import KnowledgeGraphAdapter
from secgraph.core.llm import GenerationClient
from secgraph.core.relationships import RelationshipSynthesizer
from secgraph.core.topic import TopicExtractor
from secgraph.schemas.generation import GraphGenerationRequest
from secgraph.schemas.graph import (
    ROOT_NODE_ID,
    Graph,
    GraphEdge,
    GraphMetadata,
    GraphNode,
    NodeKind,
    NodeMetadata,
    Provenance,
    RelationType,
)

logger = logging.getLogger(__name__)


class GraphGenerationService:
    """
    Runs one graph generation: entity and topic extraction in parallel,
    then knowledge graph lookup, relationship synthesis and assembly.

    In tolerant mode an unexpected fault produces a root-only graph instead
    of an error. Structural input errors always propagate.
    """

    def __init__(self, extractor: EntityExtractor, topic_extractor: TopicExtractor,
                 kg_adapter: KnowledgeGraphAdapter, synthesizer: RelationshipSynthesizer,
                 assembler: Optional[GraphAssembler] = None, tolerant_mode: bool = False):
        self.extractor = extractor
        self.topic_extractor = topic_extractor
        self.kg_adapter = kg_adapter
        self.synthesizer = synthesizer
        self.assembler = assembler or GraphAssembler()
        self.tolerant_mode = tolerant_mode

    @classmethod
    def from_settings(cls, settings: Settings) -> "GraphGenerationService":
        client = GenerationClient.from_settings(settings)
        return cls(
            extractor=EntityExtractor(client),
            topic_extractor=TopicExtractor(client),
            kg_adapter=KnowledgeGraphAdapter.from_settings(settings),
            synthesizer=RelationshipSynthesizer(client),
            tolerant_mode=settings.tolerant_mode,
        )

    def generate_graph(self, request: GraphGenerationRequest) -> Graph:
        """
        Generate the knowledge graph for a chat message.

        Raises:
            StructuralInputError: If a stage received a structurally invalid value
            GraphGenerationError: On an unexpected fault outside tolerant mode
        """
        logger.info("Generating graph for message %s in chat %s", request.message_id, request.chat_id)
        topic = None
        try:
            with ThreadPoolExecutor(max_workers=2) as executor:
                entities_future = executor.submit(
                    self.extractor.extract,
                    request.answer,
                    request.reasoning,
                    request.jargons,
                    request.cve_info,
                    request.question,
                )
                topic_future = executor.submit(self.topic_extractor.extract_topic, request.question)
                entities = entities_future.result()
                topic = topic_future.result()

            kg_context = self.kg_adapter.lookup(entities, request.sources, request.cve_info)
            relationships = self.synthesizer.synthesize(entities, kg_context, request.answer, request.question)
            graph = self.assembler.assemble(
                request.message_id,
                request.chat_id,
                entities,
                kg_context,
                relationships,
                request.question,
                request.answer,
                topic,
            )
        except StructuralInputError:
            raise
        except Exception as e:
            if not self.tolerant_mode:
                if isinstance(e, GraphGenerationError):
                    raise
                raise GraphGenerationError(f"Graph generation failed: {str(e)}") from e
            logger.error("Graph generation failed, returning root-only graph", exc_info=True)
            return self.assembler.assemble_minimal(request.message_id, request.chat_id, request.question, topic)

        logger.info(graph_summary(graph))
        return graph


def graph_summary(graph: Graph) -> str:
    """Human-readable node and edge counts for a graph."""
    node_types = ", ".join(f"{kind}: {count}" for kind, count in graph.node_counts().items())
    edge_types = ", ".join(f"{kind}: {count}" for kind, count in graph.edge_counts().items())
    return "\n".join([
        "Graph Summary:",
        f"- Total Nodes: {len(graph.nodes)}",
        f"- Node Types: {node_types}",
        f"- Total Links: {len(graph.edges)}",
        f"- Link Types: {edge_types}",
        f"- Message ID: {graph.metadata.message_id}",
        f"- Chat ID: {graph.metadata.chat_id}",
    ])


def sample_graph(created_at: int) -> Graph:
    """Fixed SQL injection graph for exercising graph consumers."""
    sample = NodeMetadata(provenance=Provenance.sample)
    return Graph(
        nodes=(
            GraphNode(id=ROOT_NODE_ID, label="SQL Injection Vulnerability", kind=NodeKind.problem,
                      description="Database injection attack risk", metadata=sample),
            GraphNode(id="vuln-1", label="SQL Injection", kind=NodeKind.vulnerability,
                      description="Database injection attack", severity="High", cvss_score=8.5,
                      metadata=sample),
            GraphNode(id="mit-1", label="Input Validation", kind=NodeKind.mitigation,
                      description="Validate all user inputs", metadata=sample),
            GraphNode(id="cve-1", label="CVE-2023-1234", kind=NodeKind.cve,
                      description="SQL injection vulnerability", severity="High", cvss_score=8.5,
                      metadata=NodeMetadata(provenance=Provenance.nvd)),
        ),
        edges=(
            GraphEdge(id="link-1", source_node_id=ROOT_NODE_ID, target_node_id="vuln-1",
                      relation_type=RelationType.relates_to,
                      description="Main problem involves SQL injection", strength=9),
            GraphEdge(id="link-2", source_node_id="mit-1", target_node_id="vuln-1",
                      relation_type=RelationType.mitigates,
                      description="Input validation prevents SQL injection", strength=8),
            GraphEdge(id="link-3", source_node_id="cve-1", target_node_id="vuln-1",
                      relation_type=RelationType.affects,
                      description="CVE affects the vulnerability", strength=9),
            GraphEdge(id="link-4", source_node_id="main-problem", target_node_id="mit-1",
                      relation_type=RelationType.explains,
                      description="Explains how to address the problem", strength=7),
            GraphEdge(id="link-5", source_node_id="main-problem", target_node_id="cve-1",
                      relation_type=RelationType.demonstrates,
                      description="Demonstrates specific vulnerability examples", strength=7),
        ),
        metadata=GraphMetadata(title="Sample SQL Injection Graph", description="Sample graph for testing",
                               created_at=created_at, message_id="sample", chat_id="sample"),
    )
