"""JSON-file key/value store for scan checkpoints."""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from pantry_scanner.services.persistence import KeyValueStore

_logger = logging.getLogger(__name__)


@dataclass
class FileKeyValueStore(KeyValueStore):
    """Stores string values in a single JSON object on disk."""

    path: Path

    @classmethod
    def create(cls, path: str) -> "FileKeyValueStore":
        return cls(path=Path(path).expanduser())

    def get_item(self, key: str) -> str | None:
        """Return the stored value, if present."""
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        """Store a value under a key."""
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        """Remove a key if present."""
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)

    def _read(self) -> dict[str, object]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            _logger.warning("Ignoring unreadable store file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        staging = self.path.with_suffix(f"{self.path.suffix}.tmp")
        staging.write_text(json.dumps(data), encoding="utf-8")
        os.replace(staging, self.path)
