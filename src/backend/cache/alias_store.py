"""
Alias indirection table for the metadata cache.

Several URLs can name the same content item (share links, short links,
mobile URLs). Only the canonical URL's key holds the document; every other
key is an alias pointing at it. Backends:

- SymlinkAliasStore: the alias is a relative symlink next to the documents,
  so a plain file read through the alias key already yields the document.
- JsonIndexAliasStore: a JSON table {alias key: canonical key}, for file
  systems (or volumes) without symlink support.

Both are first-writer-wins: an existing alias is never repointed.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)


class AliasStore(ABC):
    """Persistent mapping alias key -> canonical key."""

    @abstractmethod
    def resolve(self, key: str) -> Optional[str]:
        """Return the canonical key `key` points at, or None if it is not an alias."""

    @abstractmethod
    def link(self, alias_key: str, canonical_key: str) -> bool:
        """
        Record an alias if none exists for `alias_key`.

        Returns:
            True if the alias was created, False if the key was already taken.
        """


class SymlinkAliasStore(AliasStore):
    def __init__(self, directory: Path):
        self._directory = Path(directory)

    def resolve(self, key: str) -> Optional[str]:
        path = self._directory / key
        if not path.is_symlink():
            return None
        return Path(os.readlink(path)).name

    def link(self, alias_key: str, canonical_key: str) -> bool:
        if alias_key == canonical_key:
            return False
        self._directory.mkdir(parents=True, exist_ok=True)
        try:
            # Relative target keeps the cache relocatable.
            os.symlink(canonical_key, self._directory / alias_key)
        except FileExistsError:
            return False
        return True


class JsonIndexAliasStore(AliasStore):
    """
    Alias table stored as a single JSON document.

    Writes are serialized within the process; the file is replaced atomically.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Alias index %s unreadable, starting empty: %s", self._path, exc)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): str(v) for k, v in raw.items()}

    def resolve(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def link(self, alias_key: str, canonical_key: str) -> bool:
        if alias_key == canonical_key:
            return False
        with self._lock:
            table = self._load()
            if alias_key in table:
                return False
            table[alias_key] = canonical_key
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(table, indent=2, sort_keys=True) + "\n", encoding="utf-8")
            tmp_path.replace(self._path)
            return True
