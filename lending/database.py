import json
import logging
import os
import shutil
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

BOOKS = "books"
MEMBERS = "members"
HISTORY = "history"

SEQUENCES_FILE = "_sequences.json"

# Collection locks are shared by every store that points at the same directory
# within this process.
_collection_locks: Dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()


def _collection_lock(key: str) -> threading.RLock:
    with _locks_guard:
        lock = _collection_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _collection_locks[key] = lock
        return lock


class CollectionStore:
    """Loads and saves named collections as JSON files under one data directory.

    Each collection is a list of objects in ``<data_dir>/<name>.json``. Reads never
    raise: a missing file is an empty collection, an unreadable one is an empty
    collection plus an entry in :meth:`diagnostics`. Writes return a success flag.
    """

    def __init__(self, data_dir: str | os.PathLike) -> None:
        self.data_dir = Path(data_dir)
        self._diagnostics: Dict[str, str] = {}
        self._diag_lock = threading.Lock()

    def initialize(self) -> None:
        """Create the data directory if it does not exist yet."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    # ------------------------- Reads ------------------------- #
    def load(self, name: str) -> List[Dict[str, Any]]:
        path = self.path_for(name)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            self._clear_diagnostic(name)
            return []
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            self._record_diagnostic(name, f"Error reading {name} data: {e}")
            return []

        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            self._record_diagnostic(name, f"Error reading {name} data: expected a list of objects")
            return []

        self._clear_diagnostic(name)
        return data

    def diagnostics(self) -> Dict[str, str]:
        """Read failures seen since the last successful load of each collection."""
        with self._diag_lock:
            return dict(self._diagnostics)

    def _record_diagnostic(self, name: str, message: str) -> None:
        logger.error(message)
        with self._diag_lock:
            self._diagnostics[name] = message

    def _clear_diagnostic(self, name: str) -> None:
        with self._diag_lock:
            self._diagnostics.pop(name, None)

    # ------------------------- Writes ------------------------- #
    def save(self, name: str, records: List[Dict[str, Any]]) -> bool:
        """Overwrite the collection with ``records``. Returns False on any failure."""
        path = self.path_for(name)
        try:
            payload = json.dumps(records, indent=2, ensure_ascii=False)
            self.data_dir.mkdir(parents=True, exist_ok=True)
            if name in self.diagnostics() and path.exists():
                # keep the unreadable file around instead of silently replacing it
                shutil.copy2(path, path.with_name(path.name + ".corrupt"))
                logger.warning(f"Unreadable {name} collection preserved as {path.name}.corrupt")
            self._write_atomic(path, payload)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error writing {name} data: {e}")
            return False

        self._clear_diagnostic(name)
        self._bump_sequence(name, records)
        return True

    def _write_atomic(self, path: Path, payload: str) -> None:
        """Write ``payload`` to a temp file beside ``path`` and move it into place."""
        tmp_name: Optional[str] = None
        try:
            with tempfile.NamedTemporaryFile("w", encoding="utf-8", dir=self.data_dir,
                                             prefix=f".{path.stem}.", suffix=".tmp", delete=False) as f:
                tmp_name = f.name
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        finally:
            if tmp_name is not None:
                try:
                    os.remove(tmp_name)
                except OSError:
                    pass

    # ------------------------- Id allocation ------------------------- #
    def next_id(self, name: str, records: List[Dict[str, Any]]) -> int:
        """Max existing id + 1, never below an id that was handed out before."""
        with _collection_lock(f"{self.data_dir.resolve()}:{SEQUENCES_FILE}"):
            highest = self._sequences().get(name, 0)
        for record in records:
            try:
                highest = max(highest, int(record.get("id", 0)))
            except (TypeError, ValueError):
                continue
        return highest + 1

    def _sequences(self) -> Dict[str, int]:
        path = self.data_dir / SEQUENCES_FILE
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable {SEQUENCES_FILE}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, int)}

    def _bump_sequence(self, name: str, records: List[Dict[str, Any]]) -> None:
        ids = [r.get("id") for r in records if isinstance(r.get("id"), int)]
        if not ids:
            return
        # shared by all collections, so it needs its own lock
        with _collection_lock(f"{self.data_dir.resolve()}:{SEQUENCES_FILE}"):
            sequences = self._sequences()
            if max(ids) <= sequences.get(name, 0):
                return
            sequences[name] = max(ids)
            try:
                self._write_atomic(self.data_dir / SEQUENCES_FILE, json.dumps(sequences, indent=2))
            except OSError as e:
                logger.warning(f"Could not update {SEQUENCES_FILE}: {e}")

    # ------------------------- Locking ------------------------- #
    @contextmanager
    def lock(self, *names: str) -> Iterator[None]:
        """Hold the exclusive locks of the given collections.

        Locks are taken in sorted order so that callers naming the same
        collections in different orders cannot deadlock.
        """
        root = str(self.data_dir.resolve())
        locks = [_collection_lock(f"{root}:{name}") for name in sorted(set(names))]
        acquired = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


def find_row(rows: List[Dict[str, Any]], record_id: int) -> Optional[Dict[str, Any]]:
    for row in rows:
        if row.get("id") == record_id:
            return row
    return None


def to_model(row: Dict[str, Any], factory, name: str):
    """Convert one raw row with ``factory``; a malformed row is logged and yields None."""
    try:
        return factory(row)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Skipping malformed {name} entry {row!r}: {e}")
        return None


def to_models(rows: List[Dict[str, Any]], factory, name: str) -> list:
    """Convert raw rows with ``factory``, skipping malformed ones."""
    items = []
    for row in rows:
        item = to_model(row, factory, name)
        if item is not None:
            items.append(item)
    return items


def initialize_database(data_dir: str | os.PathLike) -> CollectionStore:
    """Create the store for ``data_dir`` and make sure the directory exists."""
    store = CollectionStore(data_dir)
    store.initialize()
    return store
