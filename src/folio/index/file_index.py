"""Persisted path -> content hash mapping."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from folio.utils.files import is_under

LOGGER = logging.getLogger(__name__)


class FileIndex:
    """In-memory ``{path or URL: sha256}`` map backed by a pretty-printed JSON file.

    The file carries no schema version; changing its format means a full reindex.
    """

    def __init__(self, index_path: Path) -> None:
        self.index_path = Path(index_path)
        self._entries: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def get(self, path: str) -> Optional[str]:
        return self._entries.get(path)

    def set(self, path: str, digest: str) -> None:
        self._entries[path] = digest

    def discard(self, path: str) -> None:
        self._entries.pop(path, None)

    def paths_under(self, directory: Path) -> List[str]:
        """Tracked local paths inside ``directory``; URLs never match."""
        return [path for path in self._entries if is_under(path, directory)]

    def load(self) -> None:
        """Read the JSON file; a missing or corrupt file leaves the index empty."""
        try:
            data = json.loads(self.index_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            LOGGER.info("No existing file index found, starting fresh.")
            self._entries = {}
            return
        except (OSError, ValueError) as exc:
            LOGGER.warning("Could not read file index %s (%s), starting fresh.", self.index_path, exc)
            self._entries = {}
            return

        if not isinstance(data, dict):
            LOGGER.warning("File index %s is not a JSON object, starting fresh.", self.index_path)
            self._entries = {}
            return
        self._entries = {str(key): str(value) for key, value in data.items()}
        LOGGER.info("File index loaded (%d entries).", len(self._entries))

    def save(self) -> None:
        """Write the index as JSON; last writer wins, errors propagate."""
        self.index_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.index_path.with_name(self.index_path.name + ".tmp")
        tmp_path.write_text(json.dumps(self._entries, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.index_path)
