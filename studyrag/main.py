"""StudyRAG FastAPI application entry point.

Wires providers, services, and routes together via dependency injection.
Settings come from ``.env`` / environment variables and
``config/config.yaml``; structured logging is configured at import time.

``build_components`` is shared with the CLI so both surfaces run the
same pipeline.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from studyrag import __version__
from studyrag.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from studyrag.api.routes import router as api_router
from studyrag.config.loader import load_config
from studyrag.config.settings import Settings
from studyrag.interfaces.embedding_provider import IEmbeddingProvider
from studyrag.interfaces.llm_provider import ILLMProvider
from studyrag.pipeline.orchestrator import IngestionOrchestrator
from studyrag.pipeline.progress_tracker import ProgressTracker
from studyrag.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from studyrag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from studyrag.providers.llm.ollama_provider import OllamaLLMProvider
from studyrag.providers.llm.openai_provider import OpenAILLMProvider
from studyrag.providers.parser.pymupdf_parser import PyMuPDFParser
from studyrag.providers.store.sqlite_knowledge_store import SQLiteKnowledgeStore
from studyrag.services.content_extractor import ContentExtractor
from studyrag.services.embedding_client import EmbeddingClient
from studyrag.services.outline_generator import OutlineGenerator
from studyrag.services.quality_reviewer import QualityReviewer
from studyrag.services.reranker import LLMReranker
from studyrag.services.retrieval_assembler import RetrievalAssembler
from studyrag.services.semantic_deduplicator import SemanticDeduplicator
from studyrag.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """OpenAI (or an OpenAI-compatible endpoint) when a key is set, else Ollama."""
    if app_settings.openai_api_key:
        return OpenAILLMProvider(settings=app_settings)
    return OllamaLLMProvider(settings=app_settings)


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider.

    Priority: OpenAI/OpenAI-compatible (if an API key is set), then Nomic
    on Ollama.  Nomic is returned even when the availability check fails,
    so ingestion reports the outage per call instead of refusing to start.
    """
    if app_settings.openai_api_key:
        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider
    return NomicEmbeddingProvider(settings=app_settings)


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components; the web app stores them on
    ``app.state`` and the CLI uses them directly.
    """
    llm = _build_llm_provider(app_settings)
    embedding_provider = _build_embedding_provider(app_settings)
    store = SQLiteKnowledgeStore(db_path=app_settings.sqlite_db_path)
    parser = PyMuPDFParser()

    embedding_client = EmbeddingClient(
        embedding_provider,
        max_attempts=app_settings.embedding_max_retries,
        base_delay=app_settings.embedding_base_delay,
    )
    progress_tracker = ProgressTracker()

    orchestrator = IngestionOrchestrator(
        store=store,
        parser=parser,
        extractor=ContentExtractor(llm),
        deduplicator=SemanticDeduplicator(
            embedding_client, threshold=app_settings.semantic_dedup_threshold
        ),
        reviewer=QualityReviewer(
            llm,
            batch_size=app_settings.quality_review_batch_size,
            min_score=app_settings.quality_score_threshold,
            suggestion_below=app_settings.quality_suggestion_threshold,
        ),
        embedding_client=embedding_client,
        progress_tracker=progress_tracker,
        save_batch_size=app_settings.save_batch_size,
        max_file_size=app_settings.max_file_size_bytes,
        outline_generator=OutlineGenerator(
            llm, local_threshold=app_settings.outline_local_threshold
        ),
    )

    retrieval = RetrievalAssembler(
        embedding_client,
        store,
        match_threshold=app_settings.match_threshold,
        match_count=app_settings.match_count,
        rrf_k=app_settings.rrf_k,
        reranker=LLMReranker(llm) if app_settings.rerank_enabled else None,
    )

    provider_registry: dict[str, Any] = {
        "llm": llm.is_available(),
        "llm_name": llm.get_provider_name(),
        "embedding": embedding_provider.is_available(),
        "embedding_name": embedding_provider.get_provider_name(),
        "parser": parser.get_provider_name(),
    }

    return {
        "settings": app_settings,
        "store": store,
        "orchestrator": orchestrator,
        "progress_tracker": progress_tracker,
        "retrieval": retrieval,
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Build components and create store tables on startup."""
    components = build_components(settings)
    for key, value in components.items():
        setattr(application.state, key, value)
    application.state.config = config

    await components["store"].initialize()

    _logger.info(
        "app_startup",
        version=__version__,
        environment=settings.app_env,
        llm=components["provider_registry"]["llm_name"],
        embedding=components["provider_registry"]["embedding_name"],
        db_path=settings.sqlite_db_path,
    )

    yield

    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="StudyRAG API",
        version=__version__,
        description=(
            "Upload lecture slides, exams, and assignments as PDFs; extract "
            "quality-checked knowledge points and questions; retrieve "
            "citation-annotated context for grounded answers."
        ),
        lifespan=_lifespan,
    )

    # Last added runs first.
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)
    return application


app = create_app()


def main() -> None:
    uvicorn.run(
        "studyrag.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )


if __name__ == "__main__":
    main()
