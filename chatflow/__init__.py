"""ChatFlow API service."""

__version__ = "1.8.3"
