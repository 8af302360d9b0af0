from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from secgraph.schemas.graph import NodeKind

NEIGHBOR_LISTS = ("vulnerabilities", "cves", "mitigations", "affected", "risks", "sources")


class KGMatch(BaseModel):
    """A node found in the persistent graph store plus its one-hop neighborhood."""

    model_config = ConfigDict(frozen=True)

    category: NodeKind
    node: Dict[str, Any]
    vulnerabilities: List[Dict[str, Any]] = Field(default_factory=list)
    cves: List[Dict[str, Any]] = Field(default_factory=list)
    mitigations: List[Dict[str, Any]] = Field(default_factory=list)
    affected: List[Dict[str, Any]] = Field(default_factory=list)
    risks: List[Dict[str, Any]] = Field(default_factory=list)
    sources: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return str(self.node.get("cveId") or self.node.get("name") or "")

    def summary(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "node": self.node,
            **{name: getattr(self, name) for name in NEIGHBOR_LISTS if getattr(self, name)},
        }


def _contains(haystack: Any, needle: str) -> bool:
    return isinstance(haystack, str) and needle in haystack.lower()


class KGContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    matches: Dict[NodeKind, List[KGMatch]] = Field(default_factory=dict)

    @classmethod
    def empty(cls) -> "KGContext":
        return cls()

    def is_empty(self) -> bool:
        return not any(self.matches.values())

    def for_kind(self, kind: NodeKind) -> List[KGMatch]:
        return self.matches.get(kind, [])

    def counts(self) -> Dict[str, int]:
        return {kind.value: len(found) for kind, found in self.matches.items()}

    def find(self, kind: NodeKind, label: str) -> Optional[Dict[str, Any]]:
        """Case-insensitive lookup of a node label in the retrieved context.

        CVEs match on exact id. Other kinds match when the stored name (or
        description) contains the label. Kinds without a direct hit fall back
        to the neighbor lists of every retrieved node.
        """
        needle = (label or "").strip().lower()
        if not needle:
            return None

        if kind == NodeKind.cve:
            for match in self.for_kind(kind):
                if str(match.node.get("cveId", "")).lower() == needle:
                    return match.summary()
            return self._find_neighbor("cves", needle, id_field="cveId")

        for match in self.for_kind(kind):
            if _contains(match.node.get("name"), needle) or _contains(match.node.get("description"), needle):
                return match.summary()

        neighbor_list = {
            NodeKind.vulnerability: "vulnerabilities",
            NodeKind.mitigation: "mitigations",
            NodeKind.affected: "affected",
            NodeKind.risk: "risks",
            NodeKind.source: "sources",
        }.get(kind)
        if neighbor_list:
            return self._find_neighbor(neighbor_list, needle)
        return None

    def _find_neighbor(self, neighbor_list: str, needle: str, id_field: str = "name") -> Optional[Dict[str, Any]]:
        for found in self.matches.values():
            for match in found:
                for neighbor in getattr(match, neighbor_list):
                    value = neighbor.get(id_field)
                    if id_field == "cveId":
                        hit = isinstance(value, str) and value.lower() == needle
                    else:
                        hit = _contains(value, needle)
                    if hit:
                        return {"category": match.category.value, "node": neighbor, "via": match.key}
        return None
