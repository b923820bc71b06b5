"""Utility exports for filesystem helpers."""

from snowyowl.utils.fs import append_text, atomic_write, contained_path, is_within, safe_delete

__all__ = [
    "append_text",
    "atomic_write",
    "contained_path",
    "is_within",
    "safe_delete",
]
