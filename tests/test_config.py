"""Tests für Konfigurationssystem, Ressourcen und Stammdatenmodelle."""

from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from config.defaults import COURSE_TEMPLATES, ROOM_TYPE_METADATA, default_app_config
from config.manager import ConfigManager
from config.schema import AppConfig, CacheBackend, CacheConfig, SchedulingConfig
from storage.cache import MemoryCache, RedisCache
from storage.document_store import DocumentStore
from storage.resources import build_cache, open_resources


# ─── DEFAULT-KONFIGURATION ────────────────────────────────────────────────────

class TestDefaultConfig:
    def test_defaults_valid(self):
        """Default-Config lässt sich ohne Fehler erstellen."""
        config = default_app_config()
        assert config.organization_name == "Muster-Akademie"
        assert config.cache.backend == CacheBackend.MEMORY
        assert config.scheduling.horizon_days == 180
        assert config.scheduling.reject_conflicts is True

    def test_templates_reference_known_room_types(self):
        for name, code, room_type, minutes in COURSE_TEMPLATES:
            assert room_type in ROOM_TYPE_METADATA, f"{name}: Raumtyp {room_type} fehlt"
            assert minutes > 0


# ─── PYDANTIC-VALIDIERUNG ─────────────────────────────────────────────────────

class TestPydanticValidation:
    def test_redis_without_url_raises(self):
        """Redis-Backend ohne URL → ValidationError."""
        with pytest.raises(PydanticValidationError):
            CacheConfig(backend="redis")

    def test_redis_with_url(self):
        cfg = CacheConfig(backend="redis", redis_url="redis://localhost:6379/1")
        assert cfg.backend == CacheBackend.REDIS

    def test_horizon_bounds(self):
        with pytest.raises(PydanticValidationError):
            SchedulingConfig(horizon_days=0)

    def test_at_most_one_retry(self):
        with pytest.raises(PydanticValidationError):
            SchedulingConfig(booking_retries=2)

    def test_nested_from_dict(self):
        config = AppConfig.model_validate({
            "organization_name": "VHS Nord",
            "scheduling": {"horizon_days": 30},
            "logging": {"level": "DEBUG", "rich_output": False},
        })
        assert config.scheduling.horizon_days == 30
        assert config.logging.level.value == "DEBUG"


# ─── YAML SPEICHERN / LADEN ───────────────────────────────────────────────────

class TestConfigManager:
    def test_save_and_load_roundtrip(self, tmp_path: Path):
        """Config speichern, laden und validieren, vollständiger Roundtrip."""
        config = default_app_config().model_copy(update={"organization_name": "VHS Süd"})
        mgr = ConfigManager(config_path=tmp_path / "kursplaner.yaml")

        mgr.save(config)
        assert mgr.DEFAULT_CONFIG.exists()
        text = mgr.DEFAULT_CONFIG.read_text(encoding="utf-8")
        assert "─── Cache ───" in text

        loaded = mgr.load()
        assert loaded == config

    def test_first_run_check(self, tmp_path: Path):
        mgr = ConfigManager(config_path=tmp_path / "kursplaner.yaml")
        assert mgr.first_run_check() is True
        mgr.save(default_app_config())
        assert mgr.first_run_check() is False

    def test_load_nonexistent_raises(self, tmp_path: Path):
        """Laden einer nicht-existenten Datei → FileNotFoundError."""
        mgr = ConfigManager()
        with pytest.raises(FileNotFoundError):
            mgr.load(tmp_path / "not_there.yaml")

    def test_load_invalid_raises(self, tmp_path: Path):
        path = tmp_path / "kaputt.yaml"
        path.write_text("scheduling:\n  horizon_days: -5\n", encoding="utf-8")
        with pytest.raises(ValueError):
            ConfigManager().load(path)

    def test_load_or_default(self, tmp_path: Path):
        mgr = ConfigManager(config_path=tmp_path / "fehlt.yaml")
        assert mgr.load_or_default() == default_app_config()

    def test_profile_save_and_load(self, tmp_path: Path):
        """Profil speichern und laden (Roundtrip)."""
        config = default_app_config().model_copy(update={"organization_name": "Test-Akademie"})
        mgr = ConfigManager(profiles_dir=tmp_path / "profiles")

        assert mgr.save_profile(config, "sommer", "Nur zum Testen")
        assert mgr.load_profile("sommer").organization_name == "Test-Akademie"

        profiles = mgr.list_profiles()
        assert [p["name"] for p in profiles] == ["sommer"]
        assert profiles[0]["description"] == "Nur zum Testen"

    def test_profile_overwrite(self, tmp_path: Path):
        mgr = ConfigManager(profiles_dir=tmp_path / "profiles")
        mgr.save_profile(default_app_config(), "basis")
        changed = default_app_config().model_copy(update={"organization_name": "Neu"})
        assert mgr.save_profile(changed, "basis", overwrite=True)
        assert mgr.load_profile("basis").organization_name == "Neu"

    def test_list_profiles_empty(self, tmp_path: Path):
        """Leeres Profil-Verzeichnis → leere Liste."""
        mgr = ConfigManager(profiles_dir=tmp_path / "profiles")
        assert mgr.list_profiles() == []

    def test_unknown_profile(self, tmp_path: Path):
        mgr = ConfigManager(profiles_dir=tmp_path / "profiles")
        with pytest.raises(FileNotFoundError):
            mgr.load_profile("gibt-es-nicht")


# ─── RESSOURCEN ───────────────────────────────────────────────────────────────

class TestResources:
    def test_build_memory_cache(self):
        assert isinstance(build_cache(CacheConfig()), MemoryCache)

    def test_build_redis_cache(self):
        """Ohne erreichbaren Server bleibt der Cache nutzbar (Miss statt Fehler)."""
        cfg = CacheConfig(backend="redis", redis_url="redis://127.0.0.1:1/0", default_ttl=60)
        cache = build_cache(cfg)
        assert isinstance(cache, RedisCache)
        assert cache.default_ttl == 60
        assert cache.get("irgendwas") is None
        cache.close()

    def test_open_resources_flushes_store(self, tmp_path: Path):
        config = default_app_config()
        config.storage.data_path = str(tmp_path / "data" / "store.json")
        config.storage.autosave = False
        with open_resources(config) as res:
            res.store.insert("things", {"id": "a"})
            assert res.keys.prefix == config.cache.key_prefix
        reopened = DocumentStore.open(Path(config.storage.data_path))
        assert reopened.get("things", "a") == {"id": "a"}
