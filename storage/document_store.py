"""Dokumentenspeicher: benannte Collections von JSON-Dokumenten.

Jedes Dokument ist ein dict mit Pflichtfeld "id". Daten und Uhrzeiten liegen
als ISO-Strings vor ("YYYY-MM-DD", "HH:MM"), damit Bereichsabfragen als
String-Vergleich funktionieren und die Datei direkt als JSON lesbar bleibt.

Eindeutige Indizes können partiell sein (where-Prädikat): nur Dokumente, für
die das Prädikat True liefert, nehmen an der Eindeutigkeit teil. Felder mit
Wert None nehmen nie teil (sparse).
"""

import copy
import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from scheduling.errors import NotFoundError

logger = logging.getLogger(__name__)

Document = dict[str, Any]
Predicate = Callable[[Document], bool]


class DuplicateKeyError(Exception):
    """Ein eindeutiger Index wurde verletzt."""

    def __init__(self, collection: str, index: str, key: tuple) -> None:
        super().__init__(
            f"Eindeutiger Index '{index}' in '{collection}' verletzt: {key}"
        )
        self.collection = collection
        self.index = index
        self.key = key


@dataclass
class IndexSpec:
    name: str
    fields: tuple[str, ...]
    unique: bool = False
    where: Optional[Predicate] = None

    def key_for(self, doc: Document) -> Optional[tuple]:
        """Indexschlüssel eines Dokuments oder None, wenn es nicht teilnimmt."""
        if self.where is not None and not self.where(doc):
            return None
        values = tuple(doc.get(f) for f in self.fields)
        if any(v is None for v in values):
            return None
        return values


@dataclass
class _Collection:
    docs: dict[str, Document] = field(default_factory=dict)
    indexes: dict[str, IndexSpec] = field(default_factory=dict)


class DocumentStore:
    """In-Memory-Dokumentenspeicher mit optionaler JSON-Datei.

    Schreibvorgänge außerhalb einer Transaktion werden bei autosave=True
    sofort in die Datei geschrieben; innerhalb erst beim erfolgreichen
    Abschluss der äußersten Transaktion.
    """

    def __init__(self, path: Optional[Path] = None, autosave: bool = False) -> None:
        self.path = Path(path) if path is not None else None
        self.autosave = autosave and self.path is not None
        self._collections: dict[str, _Collection] = {}
        self._tx_depth = 0
        self._dirty = False

    # ─── Collections & Indizes ───

    def _coll(self, name: str) -> _Collection:
        if name not in self._collections:
            self._collections[name] = _Collection()
        return self._collections[name]

    def collections(self) -> list[str]:
        return sorted(self._collections)

    def create_index(
        self,
        collection: str,
        fields: list[str],
        unique: bool = False,
        where: Optional[Predicate] = None,
        name: Optional[str] = None,
    ) -> str:
        """Legt einen (optional eindeutigen, optional partiellen) Index an.

        Bestehende Dokumente werden gegen einen neuen eindeutigen Index geprüft.
        """
        spec = IndexSpec(name or "_".join(fields), tuple(fields), unique, where)
        coll = self._coll(collection)
        if spec.unique:
            seen: dict[tuple, str] = {}
            for doc in coll.docs.values():
                key = spec.key_for(doc)
                if key is None:
                    continue
                if key in seen:
                    raise DuplicateKeyError(collection, spec.name, key)
                seen[key] = doc["id"]
        coll.indexes[spec.name] = spec
        return spec.name

    def _check_unique(self, collection: str, doc: Document) -> None:
        coll = self._coll(collection)
        for spec in coll.indexes.values():
            if not spec.unique:
                continue
            key = spec.key_for(doc)
            if key is None:
                continue
            for other in coll.docs.values():
                if other["id"] != doc["id"] and spec.key_for(other) == key:
                    raise DuplicateKeyError(collection, spec.name, key)

    # ─── Schreiben ───

    def insert(self, collection: str, doc: Document) -> Document:
        if "id" not in doc:
            raise ValueError("Dokument ohne 'id'")
        coll = self._coll(collection)
        if doc["id"] in coll.docs:
            raise DuplicateKeyError(collection, "_id", (doc["id"],))
        stored = copy.deepcopy(doc)
        self._check_unique(collection, stored)
        coll.docs[stored["id"]] = stored
        self._written()
        return copy.deepcopy(stored)

    def replace(self, collection: str, doc: Document) -> Document:
        """Ersetzt ein bestehendes Dokument vollständig."""
        coll = self._coll(collection)
        if doc.get("id") not in coll.docs:
            raise NotFoundError(collection, doc.get("id"))
        stored = copy.deepcopy(doc)
        self._check_unique(collection, stored)
        coll.docs[stored["id"]] = stored
        self._written()
        return copy.deepcopy(stored)

    def update(self, collection: str, doc_id: str, changes: Document) -> Document:
        """Setzt einzelne Felder eines Dokuments ($set-Semantik)."""
        current = self._coll(collection).docs.get(doc_id)
        if current is None:
            raise NotFoundError(collection, doc_id)
        merged = {**current, **copy.deepcopy(changes), "id": doc_id}
        return self.replace(collection, merged)

    def delete(self, collection: str, doc_id: str) -> bool:
        removed = self._coll(collection).docs.pop(doc_id, None)
        if removed is not None:
            self._written()
        return removed is not None

    # ─── Lesen ───

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        doc = self._coll(collection).docs.get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def require(self, collection: str, doc_id: str, resource: Optional[str] = None) -> Document:
        doc = self.get(collection, doc_id)
        if doc is None:
            raise NotFoundError(resource or collection, doc_id)
        return doc

    def require_active(self, collection: str, doc_id: str,
                       resource: Optional[str] = None) -> Document:
        """Wie require(), aber inaktive Dokumente gelten als nicht vorhanden."""
        doc = self.require(collection, doc_id, resource)
        if not doc.get("is_active", True):
            raise NotFoundError(resource or collection, doc_id)
        return doc

    def find(
        self,
        collection: str,
        predicate: Optional[Predicate] = None,
        sort_by: Optional[list[str]] = None,
        **equals: Any,
    ) -> list[Document]:
        """Alle Dokumente, deren Felder den equals-Werten entsprechen und die
        das Prädikat erfüllen. Ein Listenwert in equals bedeutet "einer von"."""
        result = []
        for doc in self._coll(collection).docs.values():
            if not _matches(doc, equals):
                continue
            if predicate is not None and not predicate(doc):
                continue
            result.append(copy.deepcopy(doc))
        if sort_by:
            result.sort(key=lambda d: tuple(_sort_value(d.get(f)) for f in sort_by))
        return result

    def find_one(self, collection: str, **equals: Any) -> Optional[Document]:
        for doc in self._coll(collection).docs.values():
            if _matches(doc, equals):
                return copy.deepcopy(doc)
        return None

    def find_in_date_range(
        self, collection: str, field_name: str, start: str, end: str, **equals: Any
    ) -> list[Document]:
        """Dokumente mit start ≤ doc[field_name] ≤ end (ISO-Strings, inklusive)."""
        def in_range(doc: Document) -> bool:
            value = doc.get(field_name)
            return value is not None and start <= value <= end

        return self.find(collection, predicate=in_range,
                         sort_by=[field_name, "start_time"], **equals)

    def text_search(
        self, collection: str, query: str, fields: list[str], **equals: Any
    ) -> list[Document]:
        """Einfache Volltextsuche: alle Suchwörter müssen (ohne Groß-/Klein-
        schreibung) in mindestens einem der Felder vorkommen."""
        terms = [t.lower() for t in query.split() if t.strip()]

        def hit(doc: Document) -> bool:
            text = " ".join(str(doc.get(f) or "") for f in fields).lower()
            return all(t in text for t in terms)

        return self.find(collection, predicate=hit, **equals)

    def count(self, collection: str, **equals: Any) -> int:
        return sum(1 for d in self._coll(collection).docs.values() if _matches(d, equals))

    # ─── Transaktionen ───

    @contextmanager
    def transaction(self) -> Iterator["DocumentStore"]:
        """Alles-oder-nichts: bei einer Exception wird der Stand vor Beginn
        wiederhergestellt. Verschachtelte Transaktionen gehören zur äußersten."""
        snapshot = {
            name: {doc_id: copy.deepcopy(doc) for doc_id, doc in coll.docs.items()}
            for name, coll in self._collections.items()
        }
        self._tx_depth += 1
        try:
            yield self
        except BaseException:
            for name, coll in self._collections.items():
                coll.docs = snapshot.get(name, {})
            logger.debug("Transaktion zurückgerollt")
            raise
        finally:
            self._tx_depth -= 1
        if self._tx_depth == 0 and self._dirty and self.autosave:
            self.flush()

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    def _written(self) -> None:
        self._dirty = True
        if self.autosave and not self.in_transaction:
            self.flush()

    # ─── Persistenz ───

    def flush(self) -> None:
        """Schreibt ungespeicherte Änderungen in die Datei (falls konfiguriert)."""
        if self.path is None or not self._dirty:
            return
        self.save_json(self.path)

    def save_json(self, path: Path) -> None:
        """Speichert alle Collections als JSON-Datei."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "collections": {
                name: list(coll.docs.values())
                for name, coll in sorted(self._collections.items())
            },
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        if path == self.path:
            self._dirty = False
        logger.debug(f"Speicher geschrieben: {path}")

    @classmethod
    def load_json(cls, path: Path, autosave: bool = False) -> "DocumentStore":
        """Lädt einen Speicher aus einer JSON-Datei."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"JSON-Datei nicht gefunden: {path}")
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        store = cls(path, autosave=autosave)
        for name, docs in payload.get("collections", {}).items():
            coll = store._coll(name)
            for doc in docs:
                coll.docs[doc["id"]] = doc
        return store

    @classmethod
    def open(cls, path: Path, autosave: bool = True) -> "DocumentStore":
        """Lädt die Datei, falls vorhanden, sonst leerer Speicher mit diesem Pfad."""
        path = Path(path)
        if path.exists():
            return cls.load_json(path, autosave=autosave)
        return cls(path, autosave=autosave)


def _matches(doc: Document, equals: dict[str, Any]) -> bool:
    for key, expected in equals.items():
        value = doc.get(key)
        if isinstance(expected, (list, tuple, set)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _sort_value(value: Any) -> tuple:
    # None zuerst, ohne Typvergleich mit Strings
    return (0, "") if value is None else (1, value)
