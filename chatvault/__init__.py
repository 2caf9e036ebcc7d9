"""chatvault - ingestion and retrieval of captured chat assistant transcripts."""

__version__ = "0.1.0"
