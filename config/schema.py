from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class CacheBackend(str, Enum):
    MEMORY = "memory"
    REDIS = "redis"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# ─── SPEICHER ───

class StorageConfig(BaseModel):
    """Dokumentenspeicher (JSON-Datei)."""
    # Pfad der JSON-Datei mit allen Collections
    data_path: str = Field("output/schedule_store.json",
        description="Pfad der Datendatei")
    # Nach jedem Schreibvorgang außerhalb einer Transaktion speichern
    autosave: bool = Field(True,
        description="Nach jedem Schreibvorgang speichern")


# ─── CACHE ───

class CacheConfig(BaseModel):
    """Key-Value-Cache für Kalender- und Listenabfragen.

    Wird bei jedem Schreibvorgang auf Kurse oder Termine invalidiert.
    """
    # "memory" (prozesslokal) oder "redis"
    backend: CacheBackend = Field(CacheBackend.MEMORY,
        description="Cache-Backend")
    # Verbindungs-URL, nur für backend=redis
    redis_url: Optional[str] = Field(None,
        description="Redis-URL, z.B. redis://localhost:6379/0")
    # Präfix aller Cache-Schlüssel
    key_prefix: str = Field("schedule",
        description="Präfix aller Schlüssel")
    # Standard-TTL in Sekunden
    default_ttl: int = Field(3600, ge=1,
        description="Standard-TTL (Sekunden)")
    # TTL für Kurslisten
    classes_ttl: int = Field(1800, ge=1,
        description="TTL Kurslisten (Sekunden)")
    # TTL für Kalenderbereiche
    calendar_ttl: int = Field(900, ge=1,
        description="TTL Kalender (Sekunden)")

    @model_validator(mode='after')
    def validate_redis_url(self):
        """Redis-Backend ohne URL ist nicht nutzbar."""
        if self.backend == CacheBackend.REDIS and not self.redis_url:
            raise ValueError("Cache-Backend 'redis' benötigt redis_url")
        return self


# ─── PLANUNG ───

class SchedulingConfig(BaseModel):
    """Parameter für Expansion und Materialisierung."""
    # Horizont für offene Serien ohne Enddatum
    horizon_days: int = Field(180, ge=1, le=3660,
        description="Expansionshorizont für offene Serien (Tage)")
    # Obergrenze für ein einzelnes Anfragefenster
    max_window_days: int = Field(3660, ge=1,
        description="Max. Länge eines Abfragefensters (Tage)")
    # Konflikte standardmäßig ablehnen (False = nur warnen)
    reject_conflicts: bool = Field(True,
        description="Konflikte standardmäßig ablehnen")
    # Wie oft ein ConcurrentBookingError erneut versucht wird
    booking_retries: int = Field(1, ge=0, le=1,
        description="Wiederholungen bei gleichzeitiger Buchung (max. 1)")


# ─── LOGGING ───

class LoggingConfig(BaseModel):
    """Log-Ausgabe der CLI."""
    level: LogLevel = Field(LogLevel.INFO,
        description="Log-Level")
    # Rich-Handler mit Farben/Zeitstempel (False = schlichtes Format)
    rich_output: bool = Field(True,
        description="Rich-Formatierung")


# ─── GESAMT-CONFIG ───

class AppConfig(BaseModel):
    """Gesamtkonfiguration des Kursplaners."""
    # Name der Einrichtung (Anzeige in Kalender und Export)
    organization_name: str = Field("Muster-Akademie",
        description="Name der Einrichtung")
    storage: StorageConfig = Field(default_factory=StorageConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
