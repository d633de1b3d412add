"""Crawl queue and drain loop for expanding search context from the web."""
