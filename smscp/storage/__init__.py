"""
Persistence backends.

Both backends implement the StorageBackend contract with identical
external semantics.
"""

from smscp.storage.base import StorageBackend

__all__ = ["StorageBackend"]
