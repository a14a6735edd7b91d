"""Core subsystem exports for the asset library."""

__all__ = [
    "db_manager",
    "errors",
    "runtime",
]
