"""User accounts for a multi-user dungeon: SQL storage, WSGI service and HTTP client."""

__version__ = "0.1.0"
__all__ = ["client", "errors", "models", "service", "storage", "timestamp"]