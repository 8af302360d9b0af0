import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from secgraph.api.v1.routers import graph
from secgraph.core.config import settings
from secgraph.core.dependencies import init_services, close_services

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_services(app.state, settings)
    yield
    close_services(app.state)


app = FastAPI(title="Security Knowledge Graph Backend", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(graph.router, prefix="/api/v1/graph", tags=["graph"])


@app.get("/")
def read_root():
    return {"message": "Security Knowledge Graph Backend API", "version": "1.0.0"}


@app.get("/health")
def health_check():
    return {"status": "healthy", "environment": settings.environment}
