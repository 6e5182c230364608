"""Prozessweite Ressourcen (Speicher + Cache) als expliziter Handle."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from config.schema import AppConfig, CacheBackend, CacheConfig
from storage.cache import Cache, CacheKeys, MemoryCache, RedisCache
from storage.document_store import DocumentStore

logger = logging.getLogger(__name__)


def build_cache(config: CacheConfig) -> Cache:
    """Erzeugt das konfigurierte Cache-Backend."""
    if config.backend == CacheBackend.REDIS:
        cache = RedisCache(config.redis_url, default_ttl=config.default_ttl)
        if cache.ping():
            logger.info(f"Redis-Cache verbunden: {config.redis_url}")
        return cache
    return MemoryCache(default_ttl=config.default_ttl)


@dataclass
class Resources:
    config: AppConfig
    store: DocumentStore
    cache: Cache
    keys: CacheKeys = field(default_factory=CacheKeys)


@contextmanager
def open_resources(
    config: AppConfig,
    store: Optional[DocumentStore] = None,
    cache: Optional[Cache] = None,
) -> Iterator[Resources]:
    """Öffnet Speicher und Cache beim Start und gibt sie am Ende wieder frei.

    Ungespeicherte Änderungen werden beim Schließen in die Datei geschrieben.
    """
    store = store or DocumentStore.open(
        Path(config.storage.data_path), autosave=config.storage.autosave
    )
    cache = cache or build_cache(config.cache)
    resources = Resources(config, store, cache, CacheKeys(config.cache.key_prefix))
    logger.debug(f"Ressourcen geöffnet ({config.cache.backend.value}-Cache)")
    try:
        yield resources
    finally:
        store.flush()
        cache.close()
        logger.debug("Ressourcen geschlossen")
