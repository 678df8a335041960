"""Repository access: handle, state queries and mutating operations."""
