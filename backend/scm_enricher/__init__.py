"""Enrich extension catalog entries with GitHub repository metadata."""

__version__ = "1.0.0"
