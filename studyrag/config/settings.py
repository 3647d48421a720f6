"""Application settings loaded from environment variables via pydantic-settings.

Values are read from (highest priority first):

  1. Environment variables, e.g. ``OPENAI_API_KEY=sk-abc123`` or
     ``SEMANTIC_DEDUP_THRESHOLD=0.92``
  2. A ``.env`` file in the working directory
  3. The defaults declared below

Field ``quality_review_batch_size`` maps to env var
``QUALITY_REVIEW_BATCH_SIZE`` and so on (pydantic-settings uppercases).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """StudyRAG application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === AI Providers ===
    # Empty key = "not configured"; main.py falls back to Ollama.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint (TogetherAI, Groq, ...)
    openai_text_model: str = ""
    openai_embedding_model: str = ""
    ollama_base_url: str = "http://localhost:11434"
    ollama_text_model: str = "llama3.1"
    ollama_embedding_model: str = "nomic-embed-text"
    llm_timeout_seconds: float = 120.0

    # === Storage ===
    sqlite_db_path: str = "data/studyrag.db"

    # === Upload limits ===
    max_file_size_mb: int = 20

    # === RAG Configuration ===
    embedding_dimension: int = 768
    match_threshold: float = 0.5
    match_count: int = 5
    rrf_k: int = 60
    rerank_enabled: bool = False

    # === Quality Gate ===
    quality_score_threshold: int = 5
    quality_suggestion_threshold: int = 7
    # Lectures with more kept points than this get an AI-grouped outline.
    outline_local_threshold: int = 10
    semantic_dedup_threshold: float = 0.9
    quality_review_batch_size: int = 20

    # === Ingestion ===
    save_batch_size: int = 20
    embedding_max_retries: int = 3
    embedding_base_delay: float = 1.0

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    def get_available_llm_providers(self) -> list[str]:
        """Return LLM provider names that are configured, in preference order."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
