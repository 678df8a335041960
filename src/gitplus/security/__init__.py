"""Input sanitizing and path security."""
