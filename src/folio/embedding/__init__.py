"""Embedding and reranking models and their worker processes."""
