"""Shared infrastructure: config, logging, errors, subprocess runner."""
