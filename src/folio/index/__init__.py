"""Document store, indexing engine and search."""
