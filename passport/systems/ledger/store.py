"""
Passport — Ledger Persistence

Writes the ledger snapshot to a JSON file after every successful
mutation and reads it back on startup. Writes go to a temporary file
that atomically replaces the previous snapshot, so a crash mid-write
leaves the last good snapshot in place.
"""

from __future__ import annotations

import os
from pathlib import Path

import orjson
import structlog

from passport.primitives.membership import LedgerSnapshot

logger = structlog.get_logger("passport.systems.ledger.store")

_SNAPSHOT_VERSION = 1


class LedgerStore:
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._logger = logger.bind(component="ledger_store", path=str(self._path))

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> LedgerSnapshot | None:
        """Return the persisted snapshot, or None if nothing has been saved."""
        if not self._path.exists():
            return None

        data = orjson.loads(self._path.read_bytes())
        version = data.get("version")
        if version != _SNAPSHOT_VERSION:
            raise ValueError(
                f"Unsupported ledger snapshot version {version!r} in {self._path}"
            )
        snapshot = LedgerSnapshot.model_validate(data["ledger"])
        self._logger.info(
            "ledger_loaded",
            records=len(snapshot.records),
            total_issued=snapshot.counters.total_issued,
        )
        return snapshot

    def save(self, snapshot: LedgerSnapshot) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = orjson.dumps(
            {"version": _SNAPSHOT_VERSION, "ledger": snapshot.model_dump(mode="json")},
            option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS,
        )
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_bytes(payload)
        os.replace(tmp_path, self._path)
        self._logger.debug("ledger_saved", records=len(snapshot.records))
