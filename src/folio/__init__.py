"""Folio - local semantic search over a knowledge folder and captured web pages."""

__version__ = "0.1.0"
