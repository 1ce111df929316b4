import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class LocalStorageError(Exception):
    """Raised when the backing file cannot be read or written"""
    pass


class LocalStorage:
    """
    Durable string key/value storage backed by a single JSON file.

    Every write replaces the whole file atomically (write to a temporary file in
    the same directory, then rename), so a reader never observes a half-written
    file. Only the process that owns a key should write it.
    """

    def __init__(self, path):
        self.path = Path(path).expanduser()

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise LocalStorageError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise LocalStorageError(f"Unexpected content in {self.path}")
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(data, f)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            raise LocalStorageError(f"Cannot write {self.path}: {e}") from e

    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value for key, or None when absent"""
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        """Store value under key"""
        try:
            data = self._read_all()
        except LocalStorageError:
            logger.warning(f"Discarding unreadable local storage at {self.path}")
            data = {}
        data[key] = value
        self._write_all(data)

    def remove_item(self, key: str) -> None:
        """Delete key if present"""
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)
