"""ConfigManager: YAML-Konfiguration und Profile des Kursplaners.

Die Datei wird mit ruamel.yaml geschrieben, damit Abschnittskommentare
erhalten bleiben. Validiert wird ausschließlich über AppConfig (Pydantic).
"""

import json
from datetime import date
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table
from rich import box
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from config.defaults import default_app_config
from config.schema import (
    AppConfig,
    CacheBackend,
    CacheConfig,
    SchedulingConfig,
    StorageConfig,
)

console = Console()
yaml = YAML()
yaml.default_flow_style = False
yaml.width = 120


# ─── YAML-Hilfen ───

_SECTION_COMMENTS = {
    "storage": (
        "Speicher",
        "JSON-Dokumentenspeicher für Kurse, Termine, Lehrkräfte und Räume.",
    ),
    "cache": (
        "Cache",
        "memory = prozesslokal, redis = gemeinsamer Cache (redis_url nötig).\n"
        "Wird bei jedem Schreibvorgang auf Kurse/Termine invalidiert.",
    ),
    "scheduling": (
        "Planung",
        "Horizont für offene Serien und Verhalten bei Konflikten.",
    ),
    "logging": ("Logging", None),
}


def _yaml_header() -> str:
    return (
        "# ============================================\n"
        "# Kursplaner: Konfiguration\n"
        f"# Gespeichert am {date.today().isoformat()}\n"
        "# ============================================\n"
    )


def _read_yaml(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.load(f)


def _write_yaml(path: Path, data: Any) -> None:
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f)


class ConfigManager:
    CONFIG_DIR = Path("config")
    DEFAULT_CONFIG = CONFIG_DIR / "kursplaner.yaml"
    PROFILES_DIR = Path("profiles")

    def __init__(self, config_path: Optional[Path] = None,
                 profiles_dir: Optional[Path] = None) -> None:
        if config_path is not None:
            self.DEFAULT_CONFIG = Path(config_path)
        if profiles_dir is not None:
            self.PROFILES_DIR = Path(profiles_dir)

    def first_run_check(self) -> bool:
        """True, solange noch keine Konfigurationsdatei geschrieben wurde."""
        return not self.DEFAULT_CONFIG.exists()

    # ─── Laden ───

    def load(self, path: Optional[Path] = None) -> AppConfig:
        """Liest die YAML-Datei und validiert sie gegen AppConfig."""
        target = Path(path) if path else self.DEFAULT_CONFIG
        if not target.exists():
            raise FileNotFoundError(
                f"Keine Konfiguration unter {target}. "
                f"Bitte zuerst 'kursplaner setup' ausführen."
            )
        raw = _read_yaml(target) or {}
        try:
            return AppConfig.model_validate(json.loads(json.dumps(raw)))
        except PydanticValidationError as e:
            raise ValueError(f"Ungültige Konfiguration in {target}:\n{e}") from e

    def load_or_default(self, path: Optional[Path] = None) -> AppConfig:
        target = Path(path) if path else self.DEFAULT_CONFIG
        return self.load(target) if target.exists() else default_app_config()

    # ─── Speichern ───

    def save(self, config: AppConfig, path: Optional[Path] = None) -> None:
        target = Path(path) if path else self.DEFAULT_CONFIG
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            f.write(_yaml_header() + "\n")
            yaml.dump(self._commented(config), f)
        console.print(f"[green]✓[/green] Konfiguration gespeichert: {target}")

    @staticmethod
    def _commented(config: AppConfig) -> CommentedMap:
        """Config als CommentedMap mit Abschnittsköpfen."""
        cm = CommentedMap(json.loads(config.model_dump_json()))
        for key, (label, comment) in _SECTION_COMMENTS.items():
            before = f"\n─── {label} ───"
            if comment:
                before += f"\n{comment}"
            cm.yaml_set_comment_before_after_key(key, before=before)

        scheduling = CommentedMap(cm["scheduling"])
        scheduling.yaml_add_eol_comment("Tage", "horizon_days")
        scheduling.yaml_add_eol_comment("0 oder 1", "booking_retries")
        cm["scheduling"] = scheduling
        return cm

    # ─── Profile ───

    def _profile_path(self, name: str, meta: bool = False) -> Path:
        return self.PROFILES_DIR / (f"{name}.meta.yaml" if meta else f"{name}.yaml")

    def save_profile(self, config: AppConfig, name: str,
                     description: str = "", overwrite: bool = False) -> bool:
        """Legt die Config als benanntes Profil ab (plus .meta.yaml mit Beschreibung)."""
        path = self._profile_path(name)
        if path.exists() and not overwrite and not Confirm.ask(
            f"Profil '{name}' überschreiben?", default=False
        ):
            console.print("[yellow]Nicht gespeichert.[/yellow]")
            return False

        self.PROFILES_DIR.mkdir(parents=True, exist_ok=True)
        self.save(config, path)
        _write_yaml(self._profile_path(name, meta=True), {
            "name": name,
            "description": description,
            "created": date.today().isoformat(),
        })
        console.print(f"[green]✓[/green] Profil '{name}' gespeichert.")
        return True

    def list_profiles(self) -> list[dict]:
        if not self.PROFILES_DIR.exists():
            return []
        result = []
        for path in sorted(self.PROFILES_DIR.glob("*.yaml")):
            if path.name.endswith(".meta.yaml"):
                continue
            meta_path = self._profile_path(path.stem, meta=True)
            meta = (_read_yaml(meta_path) or {}) if meta_path.exists() else {}
            result.append({
                "name": path.stem,
                "path": str(path),
                "description": meta.get("description", ""),
                "created": meta.get("created", ""),
            })
        return result

    def load_profile(self, name: str) -> AppConfig:
        path = self._profile_path(name)
        if not path.exists():
            known = ", ".join(p["name"] for p in self.list_profiles()) or "keine"
            raise FileNotFoundError(f"Profil '{name}' existiert nicht (vorhanden: {known}).")
        return self.load(path)

    # ─── Interaktive Einrichtung ───

    def setup_interactive(self) -> AppConfig:
        """Fragt die wichtigsten Einstellungen ab und gibt eine neue Config zurück."""
        config = default_app_config()
        console.print(Panel("[bold]Kursplaner einrichten[/bold]", border_style="cyan"))

        name = Prompt.ask("Name der Einrichtung", default=config.organization_name)
        data_path = Prompt.ask("Datendatei", default=config.storage.data_path)
        backend = Prompt.ask(
            "Cache-Backend", choices=[b.value for b in CacheBackend],
            default=config.cache.backend.value,
        )
        redis_url = None
        if backend == CacheBackend.REDIS.value:
            redis_url = Prompt.ask("Redis-URL", default="redis://localhost:6379/0")
        horizon = IntPrompt.ask("Expansionshorizont (Tage)",
                                default=config.scheduling.horizon_days)

        return config.model_copy(update={
            "organization_name": name,
            "storage": StorageConfig(data_path=data_path),
            "cache": CacheConfig(backend=CacheBackend(backend), redis_url=redis_url),
            "scheduling": SchedulingConfig(horizon_days=horizon),
        })

    def show(self, config: AppConfig) -> None:
        """Zeigt die Konfiguration als Tabellen an."""
        console.print(Panel(
            f"[bold]{config.organization_name}[/bold]",
            title="Konfiguration",
            border_style="cyan",
        ))
        for section in ("storage", "cache", "scheduling", "logging"):
            table = Table(title=_SECTION_COMMENTS[section][0], box=box.SIMPLE)
            table.add_column("Parameter", style="bold")
            table.add_column("Wert")
            for k, v in getattr(config, section).model_dump(mode="json").items():
                table.add_row(k, str(v))
            console.print(table)
