"""Application configuration using Pydantic settings."""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore")

    openai_api_key: Optional[str] = None
    service_name: str = "piece-search"
    service_port: int = 8000
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    content_dir: str = "content/pieces"
    embedding_store_path: str = "public/embeddings/pieces-v1.json"

    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: Optional[int] = None
    embedding_store_version: str = "pieces-v1"

    # Fragmenting and embedding inputs
    fragment_min_length: int = 48
    embedding_batch_size: int = 16
    embedding_input_max_chars: int = 2000
    piece_embedding_body_chars: int = 1200

    # Retrieval defaults
    limit_fragments: int = 6
    limit_pieces: int = 3
    min_score: float = 0.0


settings = Settings()
