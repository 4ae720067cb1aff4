"""Durable JSON-file store for the offline queue.

Features:
- File locking via filelock so two processes never interleave writes
- Atomic writes (temp+fsync+rename)
- Corrupt files are moved aside instead of blocking startup
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Union

from filelock import FileLock, Timeout
from pydantic import ValidationError

from netkeeper.core.errors.queue import QueueStoreError
from netkeeper.core.network.models import QueuedOperation

logger = logging.getLogger(__name__)

LOCK_ACQUISITION_TIMEOUT = 5  # seconds
SCHEMA_VERSION = 1


class FileQueueStore:
    """Persists queued operations as a JSON document.

    File layout::

        {"schema_version": 1, "operations": [{...QueuedOperation...}, ...]}
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self.lock_path = self.path.with_name(self.path.name + ".lock")

    def _ensure_dir(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> List[QueuedOperation]:
        """Load operations in stored (FIFO) order.

        Raises:
            QueueStoreError: If the lock cannot be acquired
        """
        if not self.path.exists():
            return []

        try:
            with FileLock(self.lock_path, timeout=LOCK_ACQUISITION_TIMEOUT):
                try:
                    data = json.loads(self.path.read_text())
                    raw_operations = data.get("operations", []) if isinstance(data, dict) else data
                    return [QueuedOperation.model_validate(item) for item in raw_operations]
                except (json.JSONDecodeError, ValidationError, AttributeError, TypeError) as e:
                    corrupt_path = self.path.with_name(self.path.name + ".corrupt")
                    logger.error("Offline queue file %s is corrupt (%s); moving it to %s", self.path, e, corrupt_path)
                    os.replace(self.path, corrupt_path)
                    return []
        except Timeout as e:
            raise QueueStoreError(f"Timed out waiting for queue lock: {self.lock_path}", path=str(self.path)) from e

    def save(self, operations: List[QueuedOperation]) -> None:
        """Write all operations atomically.

        Raises:
            QueueStoreError: If the lock cannot be acquired
            OSError: If the file cannot be written
        """
        self._ensure_dir()
        payload = {
            "schema_version": SCHEMA_VERSION,
            "operations": [op.model_dump(mode="json") for op in operations],
        }

        try:
            with FileLock(self.lock_path, timeout=LOCK_ACQUISITION_TIMEOUT):
                fd, temp_path = tempfile.mkstemp(
                    dir=self.path.parent,
                    prefix=f".{self.path.name}.",
                    suffix=".tmp",
                )
                try:
                    with os.fdopen(fd, "w") as f:
                        json.dump(payload, f, indent=2)
                        f.flush()
                        os.fsync(f.fileno())

                    os.replace(temp_path, self.path)
                    logger.debug("Saved %d queued operation(s) to %s", len(operations), self.path)

                except Exception:
                    try:
                        os.unlink(temp_path)
                    except OSError:
                        pass
                    raise
        except Timeout as e:
            raise QueueStoreError(f"Timed out waiting for queue lock: {self.lock_path}", path=str(self.path)) from e
