"""vidcore: media ingestion and derivation service."""

__version__ = "0.1.0"
