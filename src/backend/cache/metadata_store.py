"""
On-disk store of raw metadata documents, one file per cache key.

Documents are written with create-if-absent semantics: the content is staged
in a temporary file and hard-linked into place, which fails atomically when
another writer (thread or process) got there first. The first writer wins and
readers never see a partially written document.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from src.shared.errors import UpstreamParseError

from .alias_store import AliasStore, SymlinkAliasStore


logger = logging.getLogger(__name__)


class MetadataStore:
    def __init__(self, directory: Path, *, aliases: Optional[AliasStore] = None):
        self._directory = Path(directory)
        self._aliases = aliases or SymlinkAliasStore(self._directory)

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def aliases(self) -> AliasStore:
        return self._aliases

    def path_for(self, key: str) -> Path:
        return self._directory / key

    def resolve(self, key: str) -> str:
        """Follow an alias to its canonical key (identity for non-aliases)."""
        return self._aliases.resolve(key) or key

    def exists(self, key: str) -> bool:
        return self.path_for(self.resolve(key)).is_file()

    def read_text(self, key: str) -> Optional[str]:
        path = self.path_for(self.resolve(key))
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def load(self, key: str) -> Optional[dict[str, Any]]:
        """
        Load and parse the document for `key`, following aliases.

        Returns:
            The parsed document, or None if nothing is stored under the key.

        Raises:
            UpstreamParseError: The stored document is not a JSON object.
        """
        text = self.read_text(key)
        if text is None:
            return None
        return parse_document(text, source=str(self.path_for(self.resolve(key))))

    def put_if_absent(self, key: str, text: str) -> bool:
        """
        Store a document unless one already exists under `key`.

        Returns:
            True if this call wrote the document.
        """
        final_path = self.path_for(key)
        if final_path.exists() or final_path.is_symlink():
            return False
        tmp_path = self._stage(text, final_path)
        try:
            os.link(tmp_path, final_path)
        except FileExistsError:
            logger.debug("Metadata for %s already written by another writer", key)
            return False
        finally:
            tmp_path.unlink(missing_ok=True)
        return True

    def replace(self, key: str, text: str) -> None:
        """Overwrite the document stored under `key` (explicit refresh)."""
        final_path = self.path_for(self.resolve(key))
        tmp_path = self._stage(text, final_path)
        try:
            os.replace(tmp_path, final_path)
        finally:
            tmp_path.unlink(missing_ok=True)

    def add_alias(self, alias_key: str, canonical_key: str) -> bool:
        created = self._aliases.link(alias_key, canonical_key)
        if not created:
            logger.debug("Alias %s already present, leaving it untouched", alias_key)
        return created

    def _stage(self, text: str, final_path: Path) -> Path:
        final_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path_str = tempfile.mkstemp(
            dir=str(final_path.parent),
            prefix=f".{final_path.name}.",
            suffix=".tmp",
        )
        tmp_path = Path(tmp_path_str)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        return tmp_path


def parse_document(text: str, *, source: str) -> dict[str, Any]:
    """
    Parse a raw metadata document.

    Raises:
        UpstreamParseError: Not valid JSON, or not a JSON object.
    """
    try:
        document = json.loads(text)
    except ValueError as exc:
        raise UpstreamParseError(f"malformed metadata from {source}: {exc}") from exc
    if not isinstance(document, dict):
        raise UpstreamParseError(f"malformed metadata from {source}: expected a JSON object")
    return document
