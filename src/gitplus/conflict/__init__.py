"""Conflict extraction and confidence-gated resolution."""
