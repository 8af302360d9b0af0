import asyncio
import logging
from fastapi import APIRouter, HTTPException, Query, status, Depends
from secgraph.schemas.generation import (
    GraphGenerationRequest, GraphGenerationResponse,
    StoredGraphResponse, StoredGraphEntry, StoredGraphListResponse
)
from secgraph.core.assembler import epoch_millis
from secgraph.core.conversion import to_storage_shape
from secgraph.core.dependencies import get_generation_service, get_graph_storage
from secgraph.core.exceptions import GraphGenerationError, StructuralInputError
from secgraph.core.pipeline import GraphGenerationService, sample_graph
from secgraph.core.storage import GraphVisualizationStorage

router = APIRouter()

logger = logging.getLogger(__name__)


def _entry(document) -> StoredGraphEntry:
    return StoredGraphEntry(
        message_id=document["message_id"],
        chat_id=document["chat_id"],
        graph_visualization=document.get("graph_visualization") or {},
        date_created=document.get("date_created"),
    )


# ─── GENERATION ENDPOINTS ───────────────────────────────────────────────────────

@router.post("/generate", response_model=GraphGenerationResponse)
async def generate_graph(
    request: GraphGenerationRequest,
    service: GraphGenerationService = Depends(get_generation_service),
    storage: GraphVisualizationStorage = Depends(get_graph_storage)
):
    """Generate the knowledge graph for a chat message and store it"""
    try:
        loop = asyncio.get_running_loop()
        graph = await loop.run_in_executor(None, service.generate_graph, request)
    except StructuralInputError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except GraphGenerationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate graph: {str(e)}"
        )

    persisted = True
    try:
        await loop.run_in_executor(
            None, storage.upsert_graph, request.message_id, request.chat_id, to_storage_shape(graph)
        )
    except Exception:
        logger.error("Failed to store graph for message %s", request.message_id, exc_info=True)
        persisted = False

    return GraphGenerationResponse(success=True, graph_data=graph, persisted=persisted)


@router.get("/sample", response_model=GraphGenerationResponse)
async def get_sample_graph():
    """Fixed sample graph for frontend testing"""
    return GraphGenerationResponse(success=True, graph_data=sample_graph(epoch_millis()))


# ─── STORED GRAPH ENDPOINTS ─────────────────────────────────────────────────────

@router.get("/message/{message_id}", response_model=StoredGraphResponse)
def get_graph_by_message(
    message_id: str,
    chat_id: str = Query(None),
    storage: GraphVisualizationStorage = Depends(get_graph_storage)
):
    """Get the stored graph for a message"""
    document = storage.find_by_message(message_id, chat_id)
    if not document:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Graph not found"
        )
    return StoredGraphResponse(graph_data=document.get("graph_visualization") or {})


@router.get("/chat/{chat_id}", response_model=StoredGraphListResponse)
def get_graphs_by_chat(chat_id: str, storage: GraphVisualizationStorage = Depends(get_graph_storage)):
    """List stored graphs for a chat, newest first"""
    graphs = [_entry(document) for document in storage.find_by_chat_id(chat_id)]
    return StoredGraphListResponse(graphs=graphs, total=len(graphs))


@router.get("/recent", response_model=StoredGraphListResponse)
def get_recent_graphs(
    limit: int = Query(10, ge=1, le=100),
    storage: GraphVisualizationStorage = Depends(get_graph_storage)
):
    """List the most recently stored graphs"""
    graphs = [_entry(document) for document in storage.find_recent(limit)]
    return StoredGraphListResponse(graphs=graphs, total=len(graphs))


@router.delete("/message/{message_id}")
def delete_graph(
    message_id: str,
    chat_id: str = Query(None),
    storage: GraphVisualizationStorage = Depends(get_graph_storage)
):
    """Delete the stored graph for a message"""
    if not storage.delete_by_message(message_id, chat_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Graph not found"
        )
    return {"success": True, "message": "Graph deleted successfully"}
