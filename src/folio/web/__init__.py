"""HTTP transport for Folio."""
