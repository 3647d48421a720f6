"""StudyRAG: document ingestion, quality gating, and grounded retrieval."""

__version__ = "0.1.0"
