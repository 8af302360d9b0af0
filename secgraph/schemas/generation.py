from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from secgraph.schemas.graph import Graph


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CveInfo(BaseModel):
    cve_id: Optional[str] = Field(None, description="CVE identifier attached to the answer")
    cve_desc: Optional[str] = Field(None, description="CVE description")
    mitigation: Optional[str] = Field(None, description="Known mitigation for the CVE")


class GraphGenerationRequest(CamelModel):
    message_id: str = Field(..., min_length=1, description="The chat message the graph belongs to")
    chat_id: str = Field(..., min_length=1, description="The chat the message belongs to")
    question: str = Field(..., min_length=1, description="The user's original question")
    answer: str = Field(..., min_length=1, description="The analysis text to extract entities from")
    reasoning: Optional[str] = Field(None, description="Reasoning trace that produced the answer")
    sources: Optional[List[str]] = Field(None, description="Source names cited by the answer")
    jargons: Optional[Dict[str, str]] = Field(None, description="Technical terms and their definitions")
    cve_info: Optional[CveInfo] = Field(None, description="CVE hint attached to the answer")


class GraphGenerationResponse(CamelModel):
    success: bool
    graph_data: Optional[Graph] = None
    persisted: bool = False


class StoredGraphResponse(CamelModel):
    success: bool = True
    graph_data: Dict[str, Any]


class StoredGraphEntry(CamelModel):
    message_id: str
    chat_id: str
    graph_visualization: Dict[str, Any]
    date_created: Optional[datetime] = None


class StoredGraphListResponse(CamelModel):
    graphs: List[StoredGraphEntry]
    total: int
