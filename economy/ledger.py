"""
Ledger Store
Durable user -> counter mapping. One instance per namespace (tickets, account).
Values live on disk as decimal strings inside <root>/<tag>/ledger.json.
"""

import json
import logging
import os
import tempfile
import threading
import weakref
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

log = logging.getLogger("slots.ledger")

# ─── Constants ────────────────────────────────────────────────────────────────

LEDGER_FILE       = "ledger.json"
EXPORT_IDENTIFIER = "tree"


class LedgerError(Exception):
    pass


class LedgerCorruption(LedgerError):
    pass


@dataclass
class LedgerExport:
    identifier: str
    tag:        str
    pairs:      list[tuple[str, str]] = field(default_factory=list)

    def as_dict(self) -> dict[str, int]:
        return {k: int(v) for k, v in self.pairs}


# ══════════════════════════════════════════════════════════════════════════════
# DISK HELPERS
# ══════════════════════════════════════════════════════════════════════════════

def _fsync_dir(dir_path: Path):
    try:
        fd = os.open(str(dir_path), os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _atomic_write(path: Path, data: bytes):
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(path.parent)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def _parse_counter(tag: str, key: str, raw: str) -> int:
    # str.isdigit() accepts superscripts and other non-ASCII digits
    if not isinstance(raw, str) or not raw.isascii() or not raw.isdigit():
        log.error("ledger %s: value for %s is not an unsigned integer: %r", tag, key, raw)
        raise LedgerCorruption(f"{tag}: stored value for {key} is not an unsigned integer: {raw!r}")
    return int(raw)


# ══════════════════════════════════════════════════════════════════════════════
# STORE
# ══════════════════════════════════════════════════════════════════════════════

class LedgerStore:
    """
    Key/value counters for one namespace.

    `set` only touches memory; `flush` makes prior writes durable. Read-modify-write
    goes through `update`, which holds a per-key lock so two pulls by the same user
    cannot lose each other's write. There is no transaction spanning two stores.
    """

    def __init__(self, root, tag: str):
        self.root  = Path(root)
        self.tag   = tag
        self.path  = self.root / tag / LEDGER_FILE

        self._data:  dict[str, str] = {}
        self._dirty: bool           = False
        self._lock                  = threading.Lock()
        self._flush_lock            = threading.Lock()
        # Entries vanish once no thread holds or waits on the lock
        self._key_locks = weakref.WeakValueDictionary()
        self._load()

    @property
    def directory(self) -> Path:
        return self.path.parent

    def _load(self):
        self.directory.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            log.debug("ledger %s: starting empty at %s", self.tag, self.path)
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise LedgerCorruption(f"{self.tag}: {self.path} is not valid JSON") from e
        if not isinstance(data, dict) or not all(isinstance(v, str) for v in data.values()):
            raise LedgerCorruption(f"{self.tag}: {self.path} is not a mapping of strings")
        self._data = data
        log.debug("ledger %s: loaded %d keys", self.tag, len(data))

    def _key_lock(self, key: str) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    # ── reads / writes ────────────────────────────────────────────────────────

    def get_or_default(self, user, default: int) -> int:
        key = str(user)
        with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return default
        return _parse_counter(self.tag, key, raw)

    def set(self, user, value: int):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"ledger values must be unsigned integers, got {value!r}")
        with self._lock:
            self._data[str(user)] = str(value)
            self._dirty           = True

    def update(self, user, fn: Callable[[int], int | None], default: int) -> tuple[int, int]:
        """
        Atomically apply `fn` to the user's counter. `fn` returns the new value,
        or None to leave it untouched. Returns (old, new).
        """
        key = str(user)
        with self._key_lock(key):
            old = self.get_or_default(key, default)
            new = fn(old)
            if new is None:
                return old, old
            self.set(key, new)
            return old, new

    def increment(self, user, amount: int, default: int = 0) -> int:
        _, new = self.update(user, lambda cur: cur + amount, default)
        return new

    def take_one(self, user, default: int) -> int | None:
        """Spend one unit. Returns the remaining count, or None when already at zero."""
        old, new = self.update(user, lambda cur: cur - 1 if cur > 0 else None, default)
        return new if old > 0 else None

    def __contains__(self, user) -> bool:
        with self._lock:
            return str(user) in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    # ── durability ────────────────────────────────────────────────────────────

    def flush(self):
        # Readers and writers only wait for the snapshot, never for the disk
        with self._flush_lock:
            with self._lock:
                if not self._dirty and self.path.exists():
                    return
                payload     = json.dumps(self._data, sort_keys=True, indent=2).encode("utf-8")
                count       = len(self._data)
                self._dirty = False
            try:
                _atomic_write(self.path, payload)
            except OSError:
                with self._lock:
                    self._dirty = True
                raise
        log.debug("ledger %s: flushed %d keys", self.tag, count)

    def close(self):
        self.flush()

    def export(self) -> LedgerExport:
        with self._lock:
            pairs = sorted(self._data.items())
        return LedgerExport(EXPORT_IDENTIFIER, self.tag, pairs)
