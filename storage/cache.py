"""Key-Value-Cache mit TTL: prozesslokal (MemoryCache) oder Redis (RedisCache).

Werte werden JSON-serialisiert abgelegt; beide Backends verhalten sich für
Aufrufer identisch. Der Cache ist ein explizit übergebener Kollaborator und
wird bei jedem Schreibvorgang auf Kurse oder Termine invalidiert.
"""

import fnmatch
import hashlib
import json
import logging
import time
from typing import Any, Callable, Optional, Protocol

import redis

logger = logging.getLogger(__name__)


class Cache(Protocol):
    def get(self, key: str) -> Any: ...
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None: ...
    def delete(self, key: str) -> None: ...
    def delete_pattern(self, pattern: str) -> int: ...
    def close(self) -> None: ...


class MemoryCache:
    """Prozesslokaler Cache. clock ist injizierbar (Tests)."""

    def __init__(self, default_ttl: int = 3600,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._data: dict[str, tuple[float, str]] = {}

    def get(self, key: str) -> Any:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires, raw = entry
        if expires <= self._clock():
            del self._data[key]
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires = self._clock() + (ttl or self.default_ttl)
        self._data[key] = (expires, json.dumps(value, default=str))

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def delete_pattern(self, pattern: str) -> int:
        """Löscht alle Schlüssel, die dem Glob-Muster entsprechen."""
        keys = [k for k in self._data if fnmatch.fnmatchcase(k, pattern)]
        for k in keys:
            del self._data[k]
        return len(keys)

    def keys(self) -> list[str]:
        now = self._clock()
        return sorted(k for k, (exp, _) in self._data.items() if exp > now)

    def clear(self) -> None:
        self._data.clear()

    def close(self) -> None:
        self._data.clear()


class RedisCache:
    """Redis-Backend. Verbindungsfehler werden geloggt und wie ein Cache-Miss
    behandelt; Planung und Speicher funktionieren ohne Cache weiter."""

    def __init__(self, url: Optional[str] = None, default_ttl: int = 3600,
                 client: Optional["redis.Redis"] = None) -> None:
        self.default_ttl = default_ttl
        self.client = client or redis.Redis.from_url(
            url or "redis://localhost:6379/0",
            encoding="utf-8",
            decode_responses=True,
        )

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis nicht erreichbar: {e}")
            return False

    def get(self, key: str) -> Any:
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache-Lesefehler für '{key}': {e}")
            return None
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        try:
            self.client.setex(key, ttl or self.default_ttl, json.dumps(value, default=str))
        except redis.RedisError as e:
            logger.warning(f"Cache-Schreibfehler für '{key}': {e}")

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Cache-Löschfehler für '{key}': {e}")

    def delete_pattern(self, pattern: str) -> int:
        try:
            keys = list(self.client.scan_iter(match=pattern, count=500))
            if keys:
                self.client.delete(*keys)
            return len(keys)
        except redis.RedisError as e:
            logger.warning(f"Cache-Invalidierung für '{pattern}' fehlgeschlagen: {e}")
            return 0

    def close(self) -> None:
        self.client.close()


class CacheKeys:
    """Schlüsselschema: <prefix>:class:<id>, <prefix>:classes:<hash>,
    <prefix>:calendar:<start>:<end>:<hash>, <prefix>:directory:<art>."""

    def __init__(self, prefix: str = "schedule") -> None:
        self.prefix = prefix

    @staticmethod
    def _digest(params: dict) -> str:
        raw = json.dumps(params, sort_keys=True, default=str)
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:12]

    def class_(self, class_id: str) -> str:
        return f"{self.prefix}:class:{class_id}"

    def classes(self, params: dict) -> str:
        return f"{self.prefix}:classes:{self._digest(params)}"

    def calendar(self, start: str, end: str, filters: dict) -> str:
        return f"{self.prefix}:calendar:{start}:{end}:{self._digest(filters)}"

    def directory(self, kind: str) -> str:
        return f"{self.prefix}:directory:{kind}"

    @property
    def classes_pattern(self) -> str:
        return f"{self.prefix}:classes:*"

    @property
    def calendar_pattern(self) -> str:
        return f"{self.prefix}:calendar:*"

    @property
    def directory_pattern(self) -> str:
        return f"{self.prefix}:directory:*"

    def invalidate_schedule(self, cache: Cache, class_id: Optional[str] = None) -> None:
        """Invalidiert alle von Kurs-/Terminänderungen betroffenen Einträge."""
        if class_id:
            cache.delete(self.class_(class_id))
        cache.delete_pattern(self.classes_pattern)
        cache.delete_pattern(self.calendar_pattern)
