import logging
from fastapi import HTTPException, Request, status
from secgraph.core.config import Settings
from secgraph.core.pipeline import GraphGenerationService
from secgraph.core.storage import GraphVisualizationStorage

logger = logging.getLogger(__name__)


def init_services(app_state, settings: Settings):
    """Build the long-lived components once per process and attach them to app.state."""
    app_state.generation_service = GraphGenerationService.from_settings(settings)
    app_state.graph_storage = GraphVisualizationStorage.from_settings(settings)
    logger.info("Graph services ready (environment=%s)", settings.environment)


def close_services(app_state):
    service = getattr(app_state, "generation_service", None)
    if service is not None:
        service.kg_adapter.close()
    storage = getattr(app_state, "graph_storage", None)
    if storage is not None:
        storage.close()


def get_generation_service(request: Request) -> GraphGenerationService:
    service = getattr(request.app.state, "generation_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Graph generation service is not initialized"
        )
    return service


def get_graph_storage(request: Request) -> GraphVisualizationStorage:
    storage = getattr(request.app.state, "graph_storage", None)
    if storage is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Graph storage is not initialized"
        )
    return storage
