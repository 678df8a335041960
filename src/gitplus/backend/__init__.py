"""Client for the external reasoning backend."""
