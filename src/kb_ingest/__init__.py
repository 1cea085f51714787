"""Knowledge-base ingestion: uploaded files → chunked, embedded, indexed documents."""

__version__ = "0.1.0"
