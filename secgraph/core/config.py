from typing import Literal
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    environment: Literal["development", "production"] = Field(default="development")
    log_level: str = Field(default="INFO")

    mongodb_uri: str = Field(default="mongodb://localhost:27017/secgraph")
    database_name: str = Field(default="secgraph")
    graph_collection: str = Field(default="graph_visualizations")

    neo4j_uri: str = Field(default="neo4j://localhost:7687")
    neo4j_user: str = Field(default="neo4j")
    neo4j_password: str = Field(default="password")
    neo4j_database: str = Field(default="neo4j")

    llm_provider: Literal["openai", "groq"] = Field(default="openai")
    llm_model_id: str = Field(default="gpt-4o-mini")
    llm_temperature: float = Field(default=0)
    llm_timeout: int = Field(default=60)
    llm_max_attempts: int = Field(default=3)
    openai_api_key: str = Field(default="sk-proj-1234567890")
    groq_api_key: str = Field(default="grk_1234567890")

    liveness_retries: int = Field(default=2)
    liveness_backoff_base: float = Field(default=1.0)
    liveness_backoff_cap: float = Field(default=10.0)
    kg_match_limit: int = Field(default=25)
    kg_neighbor_limit: int = Field(default=10)

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def tolerant_mode(self) -> bool:
        return self.environment == "production"


settings = Settings()
