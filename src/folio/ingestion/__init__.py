"""Content readers."""
