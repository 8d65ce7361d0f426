"""
Durable key/value storage port.

`ResultCache` persists through this narrow interface (`get` / `set` / `remove` of raw
bytes) so a stricter backend can be swapped in without touching resolver or search code.

Implementations here are best-effort and non-transactional:
- `FileStorage` keeps one file per key under a base directory (keys are SHA-256 hashed to
  avoid filesystem path issues) and writes via temp file + atomic replace.
- `MemoryStorage` is a process-local dict, used by tests and `cache.storage: memory`.
"""

from __future__ import annotations

from hashlib import sha256
from pathlib import Path
from typing import Protocol


class Storage(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...

    def remove(self, key: str) -> None: ...


class FileStorage:
    """A filesystem-backed byte store keyed by string."""

    def __init__(self, base_dir: Path):
        self._base_dir = base_dir

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _key_path(self, key: str) -> Path:
        digest = sha256(key.encode("utf-8")).hexdigest()
        return self._base_dir / f"{digest}.bin"

    def get(self, key: str) -> bytes | None:
        path = self._key_path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def set(self, key: str, value: bytes) -> None:
        path = self._key_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_bytes(value)
        tmp.replace(path)

    def remove(self, key: str) -> None:
        self._key_path(key).unlink(missing_ok=True)


class MemoryStorage:
    """In-process byte store (no durability)."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)
