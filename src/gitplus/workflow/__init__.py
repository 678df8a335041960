"""pydantic-graph workflow for conflict resolution."""
