from __future__ import annotations

import logging
import os
import threading
from typing import Iterable

logger = logging.getLogger(__name__)


class CleanupList:
    """Append-only record of the temporary files created for one request."""

    def __init__(self) -> None:
        self._paths: list[str] = []
        self._lock = threading.Lock()
        self._drained = False

    def add(self, path: str) -> str:
        with self._lock:
            if self._drained:
                raise RuntimeError("Cleanup list already drained")
            self._paths.append(path)
        return path

    def extend(self, paths: Iterable[str]) -> None:
        for path in paths:
            self.add(path)

    def drain(self) -> list[str]:
        """Return every registered path. A second call returns nothing."""
        with self._lock:
            if self._drained:
                return []
            self._drained = True
            paths, self._paths = self._paths, []
            return paths

    @property
    def paths(self) -> list[str]:
        with self._lock:
            return list(self._paths)

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)


def cleanup_files(paths: Iterable[str]) -> None:
    """Delete every path, logging failures instead of raising them."""
    for path in paths:
        try:
            os.remove(path)
            logger.debug("Cleaned up file: %s", path)
        except FileNotFoundError:
            continue
        except OSError:
            logger.warning("Error deleting temp file %s", path, exc_info=True)
