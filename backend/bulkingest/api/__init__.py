"""HTTP layer: upload and listing routes."""
