"""Speicher-Kollaboratoren: Dokumentenspeicher, Cache und Repositories."""

from .cache import CacheKeys, MemoryCache, RedisCache
from .document_store import DocumentStore, DuplicateKeyError
from .repositories import ClassRepository, DirectoryRepository, InstanceRepository
from .resources import Resources, open_resources

__all__ = [
    "CacheKeys",
    "MemoryCache",
    "RedisCache",
    "DocumentStore",
    "DuplicateKeyError",
    "ClassRepository",
    "DirectoryRepository",
    "InstanceRepository",
    "Resources",
    "open_resources",
]
