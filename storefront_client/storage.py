"""
storage.py — Durable Client-Side State

Each persisted store owns one record under its own storage name. A record is a
plain JSON object holding only the store's persisted fields. Records are read
once when a store is constructed and rewritten on every mutation.

Two backends are provided:
    - JsonFileStorage: one ``<name>.json`` file per record in a state directory.
    - MemoryStorage: a dict, for tests and short-lived processes.

Neither backend reconciles concurrent writers across processes; the last write wins.
"""

import json
import logging
import os
import tempfile
import threading

log = logging.getLogger(__name__)


class MemoryStorage:
    """In-process storage. Records are deep-copied through JSON on the way in and out."""

    def __init__(self):
        self._records = {}
        self._lock = threading.Lock()

    def load(self, name: str):
        with self._lock:
            raw = self._records.get(name)
        return json.loads(raw) if raw is not None else None

    def save(self, name: str, record: dict):
        raw = json.dumps(record)
        with self._lock:
            self._records[name] = raw

    def remove(self, name: str):
        with self._lock:
            self._records.pop(name, None)


class JsonFileStorage:
    """
    File-backed storage. Writes go to a temporary file first and are moved into
    place, so a crash mid-write never leaves a truncated record behind.

    Args:
        directory (str): Directory holding the records; created on first write.
    """

    def __init__(self, directory: str):
        self.directory = directory
        self._lock = threading.Lock()

    def _path(self, name: str) -> str:
        return os.path.join(self.directory, f"{name}.json")

    def load(self, name: str):
        path = self._path(name)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return json.load(fh)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError:
            log.warning(f"[Storage] Corrupt record '{name}' at {path}, ignoring it.")
            return None

    def save(self, name: str, record: dict):
        with self._lock:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(record, fh)
            os.replace(tmp_path, self._path(name))

    def remove(self, name: str):
        with self._lock:
            try:
                os.remove(self._path(name))
            except FileNotFoundError:
                pass
