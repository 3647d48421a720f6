"""Command-line tools for StudyRAG.

- ``python -m studyrag.cli ingest --file notes.pdf --type lecture``: run the
  ingestion pipeline on a local PDF and print its progress events.
- ``python -m studyrag.cli query "what is gradient descent"``: print the
  assembled retrieval context.
- ``python -m studyrag.cli stats``: list stored documents with chunk counts.

The CLI builds the same components as the web app
(:func:`studyrag.main.build_components`) and runs one command per process.
"""
