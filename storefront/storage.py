"""
Local persisted state: named string slots kept in one JSON file.
"""

import json
import logging
import os
import tempfile
import threading
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class LocalStorage:
    """
    Key/value slots persisted to a JSON document.

    With no path the slots live in memory only. Request handlers run on a
    thread pool, so every access goes through `lock`. Callers doing a
    read-modify-write over several slots hold it across the whole sequence.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self.lock = threading.RLock()
        self._slots: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path or not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read local storage %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        """Write the slots to a temp file and swap it in; caller holds the lock."""
        if not self.path:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".storage-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._slots, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        with self.lock:
            return self._slots.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self.lock:
            self._slots[key] = value
            self._save()

    def remove_item(self, key: str) -> None:
        with self.lock:
            if self._slots.pop(key, None) is not None:
                self._save()
