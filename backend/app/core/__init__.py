"""Core utilities for the Parley backend."""

from .storage import StoredBlob, delete_blobs, resolve_blob, store_blob

__all__ = ["StoredBlob", "store_blob", "delete_blobs", "resolve_blob"]
