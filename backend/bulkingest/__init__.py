"""Bulk CSV ingestion service."""
