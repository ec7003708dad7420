"""
JSON-file persistence for GlobalSettings (`data/config.json`).

Reads never fail: a missing, unreadable or malformed file yields defaults so
the service can always start and be reconfigured over the API.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from .models import GlobalSettings


logger = logging.getLogger(__name__)

Mutator = Callable[[GlobalSettings], GlobalSettings]


class SettingsStore:
    def __init__(self, *, path: Path) -> None:
        self._path = path
        # Reentrant: update() calls load() and save() under the same lock
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_document(self) -> Optional[dict[str, Any]]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Cannot read settings %s, using defaults: %s", self._path, exc)
            return None
        try:
            document = json.loads(text)
        except ValueError as exc:
            logger.warning("Settings %s is not valid JSON, using defaults: %s", self._path, exc)
            return None
        if not isinstance(document, dict):
            logger.warning("Settings %s is not a JSON object, using defaults", self._path)
            return None
        return document

    def load(self) -> GlobalSettings:
        with self._lock:
            document = self._read_document()
        return GlobalSettings() if document is None else GlobalSettings.from_persist_dict(document)

    def save(self, settings: GlobalSettings) -> None:
        text = json.dumps(settings.to_persist_dict(), ensure_ascii=False, indent=2) + "\n"
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            staging = self._path.with_name(f".{self._path.name}.{os.getpid()}.tmp")
            staging.write_text(text, encoding="utf-8")
            os.replace(staging, self._path)

    def update(self, *, mutator: Mutator) -> GlobalSettings:
        """Load, apply `mutator`, save and return the new settings as one step."""
        with self._lock:
            updated = mutator(self.load())
            if not isinstance(updated, GlobalSettings):
                raise TypeError(f"settings mutator returned {type(updated).__name__}")
            self.save(updated)
        logger.info("Settings saved to %s", self._path)
        return updated

    def set_value(self, *, key: str, value: Any) -> GlobalSettings:
        if key not in {f.name for f in dataclasses.fields(GlobalSettings)}:
            raise KeyError(key)
        return self.update(mutator=lambda settings: dataclasses.replace(settings, **{key: value}))

    def clear_bot(self) -> GlobalSettings:
        return self.update(mutator=lambda settings: dataclasses.replace(settings, bot=None))
