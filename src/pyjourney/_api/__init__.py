"""Upstream fleet API endpoint modules (internal)."""
