"""JSON file persistence implementing the keyed record store."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Protocol

from steptrack.errors import RecordNotFound
from steptrack.models import TrackerConfig, Write

logger = logging.getLogger(__name__)

DEFAULT_DB_FILE = "steptrack.json"
DB_ENV_VAR = "STEPTRACK_DB"

COLLECTIONS = ("tasks", "steps")
ID_PREFIXES = {"tasks": "T", "steps": "S"}


class RecordStore(Protocol):
    """Create/list/update/delete over named collections of dict records."""

    def create(self, collection: str, record: dict) -> dict: ...

    def list(self, collection: str, **filters) -> list[dict]: ...

    def update(self, collection: str, record_id: str, fields: dict) -> dict: ...

    def delete(self, collection: str, record_id: str) -> None: ...


def apply_writes(store: RecordStore, writes: list[Write]) -> list[dict]:
    """Issue each write as an update, in order; returns the stored records."""
    return [store.update(w.collection, w.id, w.fields) for w in writes]


class Store:
    """Reads and writes the tracker database (JSON file).

    Every mutating call rewrites the file, so the on-disk state is always the
    canonical copy a caller should re-derive from.
    """

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = Path(db_path or os.environ.get(DB_ENV_VAR) or DEFAULT_DB_FILE)

    # -- raw file access ----------------------------------------------------

    def _read(self) -> dict:
        if not self.db_path.exists():
            return {"config": None, "tasks": {}, "steps": {}}
        raw = json.loads(self.db_path.read_text())
        for name in COLLECTIONS:
            raw.setdefault(name, {})
        raw.setdefault("config", None)
        return raw

    def _write(self, raw: dict) -> None:
        self.db_path.write_text(json.dumps(raw, indent=4))

    def _table(self, raw: dict, collection: str) -> dict:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection '{collection}'")
        return raw[collection]

    # -- config -------------------------------------------------------------

    def load_config(self) -> TrackerConfig | None:
        data = self._read().get("config")
        return TrackerConfig.from_dict(data) if data is not None else None

    def save_config(self, config: TrackerConfig) -> None:
        raw = self._read()
        raw["config"] = config.to_dict()
        self._write(raw)

    # -- record store -------------------------------------------------------

    def generate_id(self, collection: str, existing: dict) -> str:
        """Generate the next T-N / S-N id."""
        prefix = ID_PREFIXES[collection]
        nums = [int(k.split("-")[1]) for k in existing if k.startswith(f"{prefix}-")]
        return f"{prefix}-{max(nums, default=0) + 1}"

    def create(self, collection: str, record: dict) -> dict:
        raw = self._read()
        table = self._table(raw, collection)
        rid = self.generate_id(collection, table)
        stored = {**record, "id": rid, "created_at": datetime.now().isoformat(timespec="seconds")}
        table[rid] = stored
        self._write(raw)
        logger.debug("Created %s/%s", collection, rid)
        return dict(stored)

    def create_many(self, collection: str, records: list[dict]) -> list[dict]:
        raw = self._read()
        table = self._table(raw, collection)
        now = datetime.now().isoformat(timespec="seconds")
        created = []
        for record in records:
            rid = self.generate_id(collection, table)
            table[rid] = {**record, "id": rid, "created_at": now}
            created.append(dict(table[rid]))
        self._write(raw)
        return created

    def list(self, collection: str, **filters) -> list[dict]:
        """Records whose fields equal every given filter value, in id order."""
        table = self._table(self._read(), collection)
        rows = [
            dict(r) for r in table.values()
            if all(r.get(k) == v for k, v in filters.items())
        ]
        return sorted(rows, key=lambda r: int(r["id"].split("-")[1]))

    def update(self, collection: str, record_id: str, fields: dict) -> dict:
        raw = self._read()
        table = self._table(raw, collection)
        if record_id not in table:
            raise RecordNotFound(collection, record_id)
        fields = {k: v for k, v in fields.items() if k not in ("id", "created_at")}
        table[record_id].update(fields)
        self._write(raw)
        return dict(table[record_id])

    def delete(self, collection: str, record_id: str) -> None:
        raw = self._read()
        table = self._table(raw, collection)
        if record_id not in table:
            raise RecordNotFound(collection, record_id)
        del table[record_id]
        self._write(raw)
        logger.debug("Deleted %s/%s", collection, record_id)
