"""Kursplaner: Haupt-CLI.

Verwendung:
  python main.py setup                          Ersteinrichtung
  python main.py config show                    Konfiguration anzeigen
  python main.py generate                       Demo-Daten erzeugen und buchen
  python main.py generate --export-json         Demo-Daten + JSON speichern
  python main.py classes list                   Kurse suchen/auflisten
  python main.py classes show <id>              Kursdetails
  python main.py classes create <datei.yaml>    Kurs aus YAML/JSON anlegen
  python main.py classes update <id> <datei>    Kurs ändern
  python main.py classes deactivate <id>        Kurs deaktivieren
  python main.py directory <art>                Lehrkräfte/Raumtypen/Räume auflisten
  python main.py expand <id>                    Termine eines Kurses (Vorschau)
  python main.py check <datei.yaml>             Konfliktprüfung ohne Speichern
  python main.py materialize <id>               Termine materialisieren
  python main.py status <id> <status>           Terminstatus setzen
  python main.py reschedule <id> <datum>        Termin verschieben
  python main.py calendar                       Kalender anzeigen
  python main.py export                         Kalender als Excel exportieren
  python main.py audit                          Gespeicherte Termine prüfen
  python main.py profile save <name>            Profil speichern
  python main.py profile load <name>            Profil laden
  python main.py profile list                   Profile auflisten
"""

import logging
import sys
from contextlib import contextmanager
from datetime import date, timedelta
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich import box

console = Console()

# Standard-Pfad für exportierte Demo-Datensätze
DEFAULT_DATA_JSON = Path("output/demo_data.json")

DATE_TYPE = click.DateTime(formats=["%Y-%m-%d"])


def _load_config_or_abort():
    """Lädt die Konfiguration oder bricht mit Fehlermeldung ab."""
    from config.manager import ConfigManager
    mgr = ConfigManager()
    if mgr.first_run_check():
        console.print(
            "[red]Keine Konfiguration gefunden.[/red]\n"
            "Führen Sie zunächst [bold]python main.py setup[/bold] aus."
        )
        sys.exit(1)
    config = mgr.load()
    _setup_logging(config)
    return mgr, config


def _setup_logging(config) -> None:
    handlers: list[logging.Handler]
    if config.logging.rich_output:
        handlers = [RichHandler(console=console, show_path=False, rich_tracebacks=False)]
        fmt = "%(message)s"
    else:
        handlers = [logging.StreamHandler()]
        fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    logging.basicConfig(
        level=config.logging.level.value, format=fmt, handlers=handlers, force=True
    )


def _print_error(e) -> None:
    console.print(f"[red bold]{type(e).__name__}:[/red bold] {e.message}")
    for err in e.errors:
        console.print(f"  [red]• {err.field}: {err.message}[/red]")


@contextmanager
def _scheduler():
    """Öffnet Speicher/Cache und liefert (config, scheduler, directory).

    Fachliche Fehler werden angezeigt und beenden die CLI mit Exit-Code 1.
    """
    from scheduling.directory import Directory
    from scheduling.errors import SchedulingError
    from scheduling.service import ClassScheduler
    from storage.resources import open_resources

    mgr, config = _load_config_or_abort()
    try:
        with open_resources(config) as res:
            scheduler = ClassScheduler.from_resources(res)
            directory = Directory(res.store, res.cache, res.keys, config.cache.default_ttl)
            yield config, scheduler, directory
    except SchedulingError as e:
        _print_error(e)
        sys.exit(1)


def _load_definition(path: Path) -> dict:
    """Liest eine Kursdefinition aus YAML oder JSON."""
    from ruamel.yaml import YAML
    with open(path, "r", encoding="utf-8") as f:
        data = YAML(typ="safe").load(f)
    if not isinstance(data, dict):
        console.print(f"[red]{path}: erwartet wird ein Objekt (Schlüssel: Wert).[/red]")
        sys.exit(1)
    return data


def _as_date(value):
    return value.date() if value is not None else None


def _default_range(start, end) -> tuple[date, date]:
    start = _as_date(start) or date.today()
    end = _as_date(end) or start + timedelta(days=13)
    return start, end


def _schedule_label(cls) -> str:
    if cls.class_type == "single":
        end = f" – {cls.end_date.isoformat()}" if cls.end_date else ""
        return f"{cls.start_date.isoformat()}{end} {cls.start_time}–{cls.end_time}"
    rec = cls.recurrence
    slots = ", ".join(str(s) for s in rec.time_slots)
    return f"{rec.pattern.value} ab {rec.start_date} ({slots})"


# ─── SETUP ────────────────────────────────────────────────────────────────────

@click.command("setup")
def cmd_setup():
    """Ersteinrichtung: Konfiguration interaktiv anlegen."""
    from config.manager import ConfigManager

    mgr = ConfigManager()
    if not mgr.first_run_check():
        console.print("[yellow]Eine Konfiguration existiert bereits.[/yellow]")
        if not click.confirm("Trotzdem neu einrichten?", default=False):
            return

    config = mgr.setup_interactive()
    mgr.save(config)
    console.print("[bold green]Einrichtung abgeschlossen![/bold green]")
    console.print("Führen Sie jetzt [bold]python main.py generate[/bold] aus.")


# ─── CONFIG ───────────────────────────────────────────────────────────────────

@click.group("config")
def cmd_config():
    """Konfiguration anzeigen."""


@cmd_config.command("show")
def config_show():
    """Zeigt die aktuelle Konfiguration an."""
    mgr, config = _load_config_or_abort()
    mgr.show(config)


# ─── GENERATE ─────────────────────────────────────────────────────────────────

@click.command("generate")
@click.option("--seed", default=42, help="Zufalls-Seed für reproduzierbare Daten.")
@click.option("--start", type=DATE_TYPE, default=None,
              help="Startdatum der Serien (Standard: heute).")
@click.option("--instructors", default=8, help="Anzahl Lehrkräfte.")
@click.option("--export-json", is_flag=True, default=False,
              help="Datensatz als JSON speichern.")
@click.option("--json-path", default=str(DEFAULT_DATA_JSON),
              help="Pfad für JSON-Export.")
@click.option("--load/--no-load", default=True,
              help="Datensatz in den Speicher buchen.")
def cmd_generate(seed: int, start, instructors: int, export_json: bool,
                 json_path: str, load: bool):
    """Erzeugt Demo-Daten (Lehrkräfte, Räume, Kurse) und bucht sie."""
    mgr, config = _load_config_or_abort()
    from data.demo_data import DemoDataGenerator, load_dataset

    console.print("[bold]Demo-Daten werden generiert...[/bold]")
    gen = DemoDataGenerator(config, seed=seed, start=_as_date(start),
                            num_instructors=instructors)
    data = gen.generate()
    gen.print_summary(data)
    console.print(f"\n[dim]{data.summary()}[/dim]")
    data.check_references().print_rich()

    if export_json:
        out_path = Path(json_path)
        data.save_json(out_path)
        console.print(f"[green]✓[/green] JSON gespeichert: {out_path}")

    if not load:
        return
    with _scheduler() as (config, scheduler, directory):
        created, skipped = load_dataset(data, directory, scheduler)
    console.print(f"[green]✓[/green] {created} Kurse gebucht: {config.storage.data_path}")
    for reason in skipped:
        console.print(f"  [yellow]übersprungen:[/yellow] {reason}")


# ─── CLASSES ──────────────────────────────────────────────────────────────────

@click.group("classes")
def cmd_classes():
    """Kurse suchen, anzeigen, anlegen, ändern, deaktivieren."""


@cmd_classes.command("list")
@click.option("--search", "-s", default=None, help="Volltextsuche (Name, Kürzel, Beschreibung).")
@click.option("--instructor", default=None, help="Lehrkraft-ID.")
@click.option("--room-type", default=None, help="Raumtyp-ID.")
@click.option("--room", default=None, help="Raum-ID.")
@click.option("--pattern", type=click.Choice(["daily", "weekly", "monthly", "custom"]),
              default=None)
@click.option("--type", "class_type", type=click.Choice(["single", "recurring"]), default=None)
@click.option("--start", type=DATE_TYPE, default=None)
@click.option("--end", type=DATE_TYPE, default=None)
@click.option("--all", "include_inactive", is_flag=True, default=False,
              help="Auch deaktivierte Kurse anzeigen.")
def classes_list(search, instructor, room_type, room, pattern, class_type,
                 start, end, include_inactive):
    """Listet Kurse gefiltert auf."""
    with _scheduler() as (config, scheduler, directory):
        found = scheduler.find_classes(
            search=search, instructor_id=instructor, room_type_id=room_type,
            room_id=room, pattern=pattern, class_type=class_type,
            start_date=_as_date(start), end_date=_as_date(end),
            include_inactive=include_inactive,
        )

    if not found:
        console.print("[dim]Keine Kurse gefunden.[/dim]")
        return
    table = Table(title=f"Kurse ({len(found)})", box=box.ROUNDED)
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Kürzel")
    table.add_column("Typ")
    table.add_column("Zeitplan")
    table.add_column("Termine", justify="right")
    for cls in found:
        name = cls.name if cls.is_active else f"[strike]{cls.name}[/strike]"
        table.add_row(cls.id[:8], name, cls.course_code or "", cls.class_type,
                      _schedule_label(cls), str(len(cls.generated_instances)))
    console.print(table)


@cmd_classes.command("show")
@click.argument("class_id")
def classes_show(class_id: str):
    """Zeigt einen Kurs mit seinen materialisierten Terminen."""
    from export.helpers import STATUS_LABELS
    with _scheduler() as (config, scheduler, directory):
        cls = scheduler.get_class(class_id)

    console.print(Panel(
        f"[bold]{cls.name}[/bold] {cls.course_code or ''}\n"
        f"{cls.description or ''}\n"
        f"Lehrkraft: {cls.instructor_id} | Raumtyp: {cls.room_type_id} | "
        f"Raum: {cls.room_id or '—'}\n"
        f"Zeitplan: {_schedule_label(cls)}\n"
        f"Aktiv: {'ja' if cls.is_active else 'nein'}",
        title=cls.id, border_style="cyan",
    ))
    table = Table(box=box.SIMPLE)
    table.add_column("Datum")
    table.add_column("Zeit")
    table.add_column("Status")
    table.add_column("Termin-ID", style="dim")
    for gi in cls.generated_instances:
        table.add_row(gi.date.isoformat(), f"{gi.start_time}–{gi.end_time}",
                      STATUS_LABELS[gi.status], gi.instance_id)
    console.print(table)


@cmd_classes.command("create")
@click.argument("datei", type=click.Path(exists=True, path_type=Path))
@click.option("--force", is_flag=True, default=False, help="Trotz Konflikten buchen.")
def classes_create(datei: Path, force: bool):
    """Legt einen Kurs aus einer YAML-/JSON-Definition an."""
    data = _load_definition(datei)
    with _scheduler() as (config, scheduler, directory):
        cls = scheduler.create_class(data, force=force)
    console.print(
        f"[green]✓[/green] Kurs angelegt: [bold]{cls.name}[/bold] ({cls.id}), "
        f"{len(cls.generated_instances)} Termine"
    )


@cmd_classes.command("update")
@click.argument("class_id")
@click.argument("datei", type=click.Path(exists=True, path_type=Path))
@click.option("--force", is_flag=True, default=False, help="Trotz Konflikten speichern.")
def classes_update(class_id: str, datei: Path, force: bool):
    """Übernimmt die Felder aus der Datei in einen bestehenden Kurs."""
    changes = _load_definition(datei)
    with _scheduler() as (config, scheduler, directory):
        cls = scheduler.update_class(class_id, changes, force=force)
    console.print(f"[green]✓[/green] Kurs geändert: [bold]{cls.name}[/bold]")


@cmd_classes.command("deactivate")
@click.argument("class_id")
def classes_deactivate(class_id: str):
    """Deaktiviert einen Kurs und sagt künftige Termine ab."""
    with _scheduler() as (config, scheduler, directory):
        cls = scheduler.deactivate_class(class_id)
    console.print(f"[green]✓[/green] Kurs deaktiviert: [bold]{cls.name}[/bold]")


# ─── DIRECTORY ────────────────────────────────────────────────────────────────

@click.command("directory")
@click.argument("kind", type=click.Choice(["instructors", "room-types", "rooms"]))
def cmd_directory(kind: str):
    """Listet Lehrkräfte, Raumtypen oder Räume auf."""
    with _scheduler() as (config, scheduler, directory):
        if kind == "instructors":
            rows = [(i.id, i.full_name, i.email, i.specialization or "")
                    for i in directory.list_instructors()]
            headers = ["ID", "Name", "E-Mail", "Fachgebiet"]
        elif kind == "room-types":
            rows = [(rt.id, rt.name, str(rt.capacity), ", ".join(rt.amenities))
                    for rt in directory.list_room_types()]
            headers = ["ID", "Name", "Kapazität", "Ausstattung"]
        else:
            rows = [(r.id, r.name, r.room_type_id, r.building or "")
                    for r in directory.list_rooms()]
            headers = ["ID", "Name", "Raumtyp", "Gebäude"]

    table = Table(title=kind, box=box.ROUNDED)
    for h in headers:
        table.add_column(h)
    for row in rows:
        table.add_row(*row)
    console.print(table)


# ─── EXPAND ───────────────────────────────────────────────────────────────────

@click.command("expand")
@click.argument("class_id")
@click.option("--start", type=DATE_TYPE, default=None, help="Fensterbeginn (YYYY-MM-DD).")
@click.option("--end", type=DATE_TYPE, default=None, help="Fensterende (YYYY-MM-DD).")
def cmd_expand(class_id: str, start, end):
    """Zeigt die Termine eines Kurses, ohne etwas zu speichern."""
    from scheduling.recurrence import expand_class
    with _scheduler() as (config, scheduler, directory):
        cls = scheduler.get_class(class_id)
        occurrences = expand_class(cls, _as_date(start), _as_date(end),
                                   config.scheduling.horizon_days)

    console.print(f"[bold]{cls.name}[/bold]: {len(occurrences)} Termine")
    for occ in occurrences:
        console.print(f"  {occ}")


# ─── CHECK ────────────────────────────────────────────────────────────────────

@click.command("check")
@click.argument("datei", type=click.Path(exists=True, path_type=Path))
@click.option("--exclude", default=None, help="Kurs-ID, die ignoriert wird (bei Änderungen).")
def cmd_check(datei: Path, exclude):
    """Prüft eine Kursdefinition auf Konflikte, ohne zu buchen."""
    from scheduling.validation import parse_class
    data = _load_definition(datei)
    with _scheduler() as (config, scheduler, directory):
        result = scheduler.check(parse_class(data), exclude_class_id=exclude)

    if not result.has_conflict:
        console.print("[bold green]✓ Keine Konflikte[/bold green]")
        return
    table = Table(title=f"{len(result.conflicts)} Konflikt(e)", box=box.ROUNDED)
    table.add_column("Art")
    table.add_column("Kurs")
    table.add_column("Datum")
    table.add_column("Zeit")
    for c in result.conflicts:
        table.add_row(c.conflict_type, c.class_name, c.date.isoformat(),
                      f"{c.start_time}–{c.end_time}")
    console.print(table)
    sys.exit(1)


# ─── MATERIALIZE ──────────────────────────────────────────────────────────────

@click.command("materialize")
@click.argument("class_id")
@click.option("--until", type=DATE_TYPE, default=None, help="Letzter Tag (YYYY-MM-DD).")
def cmd_materialize(class_id: str, until):
    """Legt fehlende Termine eines Kurses an; bestehende bleiben unverändert."""
    with _scheduler() as (config, scheduler, directory):
        result = scheduler.generate_instances(class_id, _as_date(until))
    console.print(f"[green]✓[/green] {result.summary()}")


# ─── STATUS ───────────────────────────────────────────────────────────────────

@click.command("status")
@click.argument("class_id")
@click.argument("status", type=click.Choice(["scheduled", "completed", "cancelled"]))
@click.option("--instance", "instance_id", default=None,
              help="Termin-ID oder Termin-Schlüssel <kurs>:<datum>:<HH:MM>.")
@click.option("--date", "on_date", type=DATE_TYPE, default=None,
              help="Nächster Termin ab diesem Datum (Standard: heute).")
@click.option("--notes", default=None, help="Notiz zum Termin.")
def cmd_status(class_id: str, status: str, instance_id, on_date, notes):
    """Setzt den Status eines Termins."""
    with _scheduler() as (config, scheduler, directory):
        inst = scheduler.update_status(class_id, status, instance_id,
                                       _as_date(on_date), notes)
    console.print(
        f"[green]✓[/green] {inst.date.isoformat()} {inst.start_time}–{inst.end_time}: "
        f"{inst.status.value}"
    )


# ─── RESCHEDULE ───────────────────────────────────────────────────────────────

@click.command("reschedule")
@click.argument("class_id")
@click.argument("new_date", type=DATE_TYPE)
@click.option("--instance", "instance_id", default=None, help="Termin-ID oder Termin-Schlüssel.")
@click.option("--start", "start_time", default=None, help="Neuer Beginn HH:MM.")
@click.option("--end", "end_time", default=None, help="Neues Ende HH:MM.")
@click.option("--room", "room_id", default=None, help="Neuer Raum.")
@click.option("--notes", default=None)
@click.option("--force", is_flag=True, default=False, help="Trotz Konflikten verschieben.")
def cmd_reschedule(class_id, new_date, instance_id, start_time, end_time, room_id,
                   notes, force):
    """Verschiebt einen Termin auf ein neues Datum."""
    with _scheduler() as (config, scheduler, directory):
        inst = scheduler.reschedule_instance(
            class_id, new_date.date(), instance_id=instance_id,
            start_time=start_time, end_time=end_time, room_id=room_id,
            notes=notes, force=force,
        )
    console.print(
        f"[green]✓[/green] Ersatztermin {inst.date.isoformat()} "
        f"{inst.start_time}–{inst.end_time} ({inst.id})"
    )


# ─── CALENDAR ─────────────────────────────────────────────────────────────────

@click.command("calendar")
@click.option("--start", type=DATE_TYPE, default=None, help="Beginn (Standard: heute).")
@click.option("--end", type=DATE_TYPE, default=None, help="Ende (Standard: +13 Tage).")
@click.option("--instructor", default=None, help="Lehrkraft-ID.")
@click.option("--room-type", default=None, help="Raumtyp-ID.")
@click.option("--room", default=None, help="Raum-ID.")
@click.option("--week", "week_view", is_flag=True, default=False, help="Wochenraster statt Liste.")
def cmd_calendar(start, end, instructor, room_type, room, week_view: bool):
    """Zeigt alle Termine im Zeitraum."""
    from export.calendar_renderer import render_agenda_rows, render_week_rows
    from export.helpers import STATUS_LABELS, STATUS_STYLES, monday_of, week_header

    start, end = _default_range(start, end)
    with _scheduler() as (config, scheduler, directory):
        calendar = scheduler.get_occurrences_in_range(
            start, end, instructor_id=instructor, room_type_id=room_type, room_id=room,
        )

    title = f"Kalender {start.strftime('%d.%m.%Y')} – {end.strftime('%d.%m.%Y')}"
    if week_view:
        table = Table(title=title, box=box.ROUNDED, show_lines=True)
        table.add_column("Woche", style="bold")
        for label in week_header(monday_of(start)):
            table.add_column(label.split(" ")[0], min_width=12)
        for row in render_week_rows(calendar, start, end):
            table.add_row(*row)
    else:
        table = Table(title=title, box=box.ROUNDED)
        for h in ["Datum", "Zeit", "Kurs", "Lehrkraft", "Raum", "Status", "Termin"]:
            table.add_column(h)
        styles = {STATUS_LABELS[s]: style for s, style in STATUS_STYLES.items()}
        for row in render_agenda_rows(calendar):
            style = styles[row[5]]
            table.add_row(*row[:5], f"[{style}]{row[5]}[/{style}]", f"[dim]{row[6]}[/dim]")
    console.print(table)


# ─── EXPORT ───────────────────────────────────────────────────────────────────

@click.command("export")
@click.option("--start", type=DATE_TYPE, default=None, help="Beginn (Standard: heute).")
@click.option("--end", type=DATE_TYPE, default=None, help="Ende (Standard: +13 Tage).")
@click.option("--output", "-o", default="output/kursplan.xlsx", help="Ausgabepfad.")
@click.option("--no-rooms", is_flag=True, default=False, help="Keine Raum-Blätter.")
def cmd_export(start, end, output: str, no_rooms: bool):
    """Exportiert den Kalender als Excel-Datei."""
    from export.excel_export import ExcelExporter

    start, end = _default_range(start, end)
    with _scheduler() as (config, scheduler, directory):
        calendar = scheduler.get_occurrences_in_range(start, end)

    out_path = Path(output)
    ExcelExporter(calendar, start, end, config.organization_name).export(
        out_path, per_room=not no_rooms
    )
    console.print(f"[green]✓[/green] Excel gespeichert: {out_path}")


# ─── AUDIT ────────────────────────────────────────────────────────────────────

@click.command("audit")
@click.option("--start", type=DATE_TYPE, default=None)
@click.option("--end", type=DATE_TYPE, default=None)
def cmd_audit(start, end):
    """Prüft alle gespeicherten Termine auf Doppelbuchungen."""
    from analysis.booking_audit import BookingAuditor
    with _scheduler() as (config, scheduler, directory):
        report = BookingAuditor(scheduler.store).audit(_as_date(start), _as_date(end))
    report.print_rich()
    sys.exit(0 if report.is_valid else 1)


# ─── PROFILE ──────────────────────────────────────────────────────────────────

@click.group("profile")
def cmd_profile():
    """Konfigurationsprofile verwalten (speichern, laden, auflisten)."""


@cmd_profile.command("save")
@click.argument("name")
@click.option("--description", "-d", default="", help="Beschreibung des Profils.")
def profile_save(name: str, description: str):
    """Speichert die aktuelle Konfiguration als Profil."""
    mgr, config = _load_config_or_abort()
    mgr.save_profile(config, name, description)


@cmd_profile.command("load")
@click.argument("name")
def profile_load(name: str):
    """Lädt ein gespeichertes Profil als aktive Konfiguration."""
    from config.manager import ConfigManager
    mgr = ConfigManager()
    try:
        config = mgr.load_profile(name)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    mgr.save(config)
    console.print(f"[green]✓[/green] Profil '{name}' als aktive Config gesetzt.")


@cmd_profile.command("list")
def profile_list():
    """Listet alle gespeicherten Profile auf."""
    from config.manager import ConfigManager
    profiles = ConfigManager().list_profiles()

    if not profiles:
        console.print("[dim]Keine Profile vorhanden.[/dim]")
        return

    table = Table(title="Gespeicherte Profile", box=box.ROUNDED)
    table.add_column("Name", style="bold")
    table.add_column("Erstellt")
    table.add_column("Beschreibung")
    for p in profiles:
        table.add_row(p["name"], str(p.get("created", "")), p.get("description", ""))
    console.print(table)


# ─── HAUPT-CLI ────────────────────────────────────────────────────────────────

@click.group()
def cli():
    """Kursplaner: Kurse, Serien, Termine und Konfliktprüfung.

    Starten Sie mit: python main.py setup
    """


def main():
    """Einstiegspunkt. Startet automatisch die Einrichtung beim ersten Aufruf."""
    from config.manager import ConfigManager
    mgr = ConfigManager()

    if len(sys.argv) == 1 and mgr.first_run_check():
        console.print(Panel(
            "[bold]Willkommen beim Kursplaner![/bold]\n\n"
            "Keine Konfiguration gefunden.\n"
            "Die Einrichtung wird jetzt gestartet...",
            border_style="cyan",
        ))
        sys.argv.append("setup")

    cli()


# Befehle registrieren
cli.add_command(cmd_setup)
cli.add_command(cmd_config)
cli.add_command(cmd_generate)
cli.add_command(cmd_classes)
cli.add_command(cmd_directory)
cli.add_command(cmd_expand)
cli.add_command(cmd_check)
cli.add_command(cmd_materialize)
cli.add_command(cmd_status)
cli.add_command(cmd_reschedule)
cli.add_command(cmd_calendar)
cli.add_command(cmd_export)
cli.add_command(cmd_audit)
cli.add_command(cmd_profile)


if __name__ == "__main__":
    main()
