"""Standardwerte: Default-Konfiguration und Stammdaten für Demo-Daten."""

from config.schema import (
    AppConfig,
    CacheConfig,
    LoggingConfig,
    SchedulingConfig,
    StorageConfig,
)


def default_app_config() -> AppConfig:
    """Vollständige Default-Konfiguration."""
    return AppConfig(
        organization_name="Muster-Akademie",
        storage=StorageConfig(),
        cache=CacheConfig(),
        scheduling=SchedulingConfig(),
        logging=LoggingConfig(),
    )


# ─── Demo-Stammdaten ──────────────────────────────────────────────────────────
# Raumtypen: Name → (Kapazität, Ausstattung, Anzahl Räume)

ROOM_TYPE_METADATA: dict[str, dict] = {
    "Seminarraum":   {"capacity": 24, "amenities": ["Beamer", "Whiteboard"], "rooms": 4},
    "Hörsaal":       {"capacity": 120, "amenities": ["Beamer", "Mikrofon"], "rooms": 1},
    "Computerraum":  {"capacity": 18, "amenities": ["PCs", "Beamer"], "rooms": 2},
    "Labor":         {"capacity": 16, "amenities": ["Abzug", "Waschbecken"], "rooms": 1},
    "Bewegungsraum": {"capacity": 20, "amenities": ["Matten", "Spiegel"], "rooms": 1},
}

# Kursvorlagen: (Name, Kürzel, Raumtyp, Dauer in Minuten)
COURSE_TEMPLATES: list[tuple[str, str, str, int]] = [
    ("Einführung in Python", "PY101", "Computerraum", 90),
    ("Datenanalyse mit Pandas", "PY201", "Computerraum", 90),
    ("Projektmanagement", "PM100", "Seminarraum", 90),
    ("Rhetorik", "KOM110", "Seminarraum", 60),
    ("Buchhaltung Grundlagen", "BWL120", "Seminarraum", 90),
    ("Statistik", "MA200", "Hörsaal", 90),
    ("Chemie-Praktikum", "CH150", "Labor", 120),
    ("Yoga am Morgen", "GES10", "Bewegungsraum", 60),
    ("Englisch B2", "SPR220", "Seminarraum", 90),
    ("Spanisch A1", "SPR101", "Seminarraum", 90),
    ("Webentwicklung", "IT230", "Computerraum", 120),
    ("Erste Hilfe", "GES30", "Seminarraum", 240),
]

# Mögliche Kursbeginne
START_TIMES: list[str] = ["08:00", "09:00", "10:30", "13:00", "14:30", "16:00", "18:00"]

SPECIALIZATIONS: list[str] = [
    "Informatik", "Wirtschaft", "Sprachen", "Naturwissenschaften",
    "Gesundheit", "Kommunikation", "Mathematik",
]
