"""Ingestion pipeline: cancellation, progress tracking, SSE framing, orchestration."""
