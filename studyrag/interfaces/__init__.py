"""Abstract interfaces for every external collaborator StudyRAG depends on."""

from __future__ import annotations

from studyrag.interfaces.document_parser import IDocumentParser
from studyrag.interfaces.embedding_provider import IEmbeddingProvider
from studyrag.interfaces.knowledge_store import IKnowledgeStore
from studyrag.interfaces.llm_provider import ILLMProvider

__all__ = [
    "IDocumentParser",
    "IEmbeddingProvider",
    "IKnowledgeStore",
    "ILLMProvider",
]
