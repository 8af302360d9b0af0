from enum import Enum
from typing import Annotated, Any, Dict, Optional, Tuple

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from secgraph.schemas.entities import OptionalSeverity, OptionalText, coerce_number

ROOT_NODE_ID = "main-problem"
# Names the generation capability uses for the root node
QUESTION_ALIASES = ("User Question", "main-problem")


class NodeKind(str, Enum):
    problem = "problem"
    vulnerability = "vulnerability"
    cve = "cve"
    mitigation = "mitigation"
    source = "source"
    affected = "affected"
    risk = "risk"


class RelationType(str, Enum):
    answers = "answers"
    explains = "explains"
    demonstrates = "demonstrates"
    mitigates = "mitigates"
    affects = "affects"
    causes = "causes"
    references = "references"
    relates_to = "relates_to"
    protects = "protects"
    reduces_risk = "reduces_risk"
    vulnerable_to = "vulnerable_to"


class Provenance(str, Enum):
    extracted = "extracted"
    nvd = "NVD"
    user_question = "user-question"
    sample = "sample"


def coerce_relation_type(value: Any) -> RelationType:
    if isinstance(value, RelationType):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return RelationType(normalized)
        except ValueError:
            pass
    return RelationType.relates_to


def coerce_strength(value: Any) -> int:
    number = coerce_number(value)
    if number is None:
        return 1
    return max(1, min(10, int(round(number))))


Strength = Annotated[int, BeforeValidator(coerce_strength)]


class GraphModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class NodeMetadata(GraphModel):
    provenance: Provenance
    original_entity: Optional[Dict[str, Any]] = None
    original_question: Optional[str] = None
    kg_match: Optional[Dict[str, Any]] = None


class GraphNode(GraphModel):
    id: str
    label: str
    kind: NodeKind
    description: Optional[str] = None
    severity: OptionalSeverity = None
    cvss_score: Optional[float] = None
    metadata: NodeMetadata


class GraphEdge(GraphModel):
    id: str
    source_node_id: str
    target_node_id: str
    relation_type: RelationType
    description: Optional[str] = None
    strength: int = Field(..., ge=1, le=10)


class GraphMetadata(GraphModel):
    title: str
    description: str = "Generated from chat message analysis"
    created_at: int = Field(..., description="Creation time in epoch milliseconds")
    message_id: str
    chat_id: str


class Graph(GraphModel):
    nodes: Tuple[GraphNode, ...]
    edges: Tuple[GraphEdge, ...] = ()
    metadata: GraphMetadata

    @model_validator(mode="after")
    def check_unique_node_ids(self):
        seen = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValueError(f"Duplicate node id: {node.id}")
            seen.add(node.id)
        return self

    @property
    def root(self) -> Optional[GraphNode]:
        return self.get_node(ROOT_NODE_ID)

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


    def node_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for node in self.nodes:
            counts[node.kind.value] = counts.get(node.kind.value, 0) + 1
        return counts

    def edge_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for edge in self.edges:
            counts[edge.relation_type.value] = counts.get(edge.relation_type.value, 0) + 1
        return counts


class RelationshipEdge(BaseModel):
    """A relationship as proposed by the generation capability, endpoints still by name."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    source: str
    target: str
    type: RelationType = RelationType.relates_to
    description: OptionalText = None
    strength: Strength = 1

    @field_validator("source", "target", mode="before")
    @classmethod
    def validate_endpoint(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("relationship endpoints must be non-empty strings")
        return v.strip()

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v):
        return coerce_relation_type(v)
