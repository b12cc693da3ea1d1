from __future__ import annotations

import fcntl
import os
import re
import threading
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Callable, Dict, List, Optional, Protocol


KEY_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

# Receives the current value (None when missing) and returns the new one;
# returning None deletes the key.
Updater = Callable[[Optional[str]], Optional[str]]


def is_valid_key(key: str) -> bool:
    return bool(key) and KEY_RE.match(key) is not None


class KVStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def update(self, key: str, fn: Updater) -> Optional[str]: ...

    def keys(self) -> List[str]: ...


def atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = None
    try:
        tmp = NamedTemporaryFile("w", encoding="utf-8", dir=str(path.parent), delete=False)
        tmp.write(text)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp.close()
        os.replace(tmp.name, path)
    finally:
        if tmp is not None and os.path.exists(tmp.name):
            try:
                os.unlink(tmp.name)
            except OSError:
                pass


class _store_lock:
    """Context manager for file-based locking around store mutations."""
    def __init__(self, lock_path: Path):
        self._path = lock_path

    def __enter__(self):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._f = open(self._path, "w")
        fcntl.flock(self._f.fileno(), fcntl.LOCK_EX)
        return self

    def __exit__(self, *exc):
        fcntl.flock(self._f.fileno(), fcntl.LOCK_UN)
        self._f.close()
        return False


class FileKVStore:
    """One JSON file per key under ``root``.

    Writes go through a temp file and ``os.replace`` so readers never see a
    partial value. Mutations take an exclusive ``flock`` on ``root/.store.lock``,
    which also serializes writers across worker processes.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not is_valid_key(key):
            raise ValueError(f"Invalid key: {key!r}")
        return self.root / f"{key}.json"

    def _lock(self) -> _store_lock:
        return _store_lock(self.root / ".store.lock")

    @staticmethod
    def _read(p: Path) -> Optional[str]:
        if not p.exists():
            return None
        return p.read_text(encoding="utf-8")

    @staticmethod
    def _write(p: Path, value: Optional[str]) -> None:
        if value is None:
            if p.exists():
                p.unlink()
        else:
            atomic_write_text(p, value)

    def get(self, key: str) -> Optional[str]:
        return self._read(self._path(key))

    def put(self, key: str, value: str) -> None:
        p = self._path(key)
        with self._lock():
            self._write(p, value)

    def delete(self, key: str) -> None:
        p = self._path(key)
        with self._lock():
            self._write(p, None)

    def update(self, key: str, fn: Updater) -> Optional[str]:
        p = self._path(key)
        with self._lock():
            value = fn(self._read(p))
            self._write(p, value)
            return value

    def keys(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.json") if is_valid_key(p.stem))


class MemoryKVStore:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def update(self, key: str, fn: Updater) -> Optional[str]:
        with self._lock:
            value = fn(self._data.get(key))
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = value
            return value

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)
