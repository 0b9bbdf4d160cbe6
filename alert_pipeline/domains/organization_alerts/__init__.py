"""Organization alerts domain package (live alerts and publishing)."""

__all__ = [
    "models",
    "repository",
    "publisher",
]
