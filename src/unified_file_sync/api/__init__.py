"""HTTP API for the unified file sync."""
