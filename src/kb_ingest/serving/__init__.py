"""
Serving — FastAPI application exposing ingestion and reindexing over HTTP.

The UI layer uploads batches and triggers reindexing through this API; it
never calls the pipeline directly.
"""
