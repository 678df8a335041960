"""gitplus - safety core for automated git workflows."""

__version__ = "0.1.0"
