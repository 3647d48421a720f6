"""HTTP surface for StudyRAG: document management, SSE ingestion, retrieval."""
