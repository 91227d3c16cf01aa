"""
JSON progress feed for a running import.

The writer side (:class:`JsonProgressSink`) is owned by the orchestrator and
is append-only; the read side (:func:`read_progress`) is what a poller calls
to show the operator the last known state.  The state is rewritten
atomically after every update so a reader never sees a half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

NOT_FOUND: Dict[str, str] = {"status": "notfound", "message": "No log found"}


class JsonProgressSink:
    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._state: Dict[str, Any] = {}
        self.init()

    def init(self) -> None:
        with self._lock:
            self._state = {
                "status": "processing",
                "message": "",
                "percentage": 0.0,
                "inProcess": "",
                "processList": [],
                "startedAt": time.time(),
                "updatedAt": time.time(),
            }
            self._save()

    def add_message(self, message: str, percentage: float = 0, persist: bool = False) -> None:
        """
        Record a progress step.

        ``percentage`` is a delta added to the running total (capped at 100).
        Persisted messages are appended to ``processList``; the others only
        replace the "currently running" line.
        """
        with self._lock:
            total = float(self._state.get("percentage", 0)) + float(percentage)
            self._state["percentage"] = round(max(0.0, min(100.0, total)), 2)
            self._state["message"] = message
            if persist:
                self._state["processList"].append({"message": message, "status": "ok"})
                self._state["inProcess"] = ""
            else:
                self._state["inProcess"] = message
            self._save()

    def success(self, message: str = "Import finished") -> None:
        with self._lock:
            self._state.update(status="success", message=message, percentage=100.0, inProcess="")
            self._state["processList"].append({"message": message, "status": "ok"})
            self._save()

    def error(self, message: str) -> None:
        with self._lock:
            self._state.update(status="error", message=message, inProcess="")
            self._state["processList"].append({"message": message, "status": "error"})
            self._save()

    def terminate(self) -> None:
        """Mark the feed as finished; later readers still see the final state."""
        with self._lock:
            self._state["finishedAt"] = time.time()
            if self._state.get("status") == "processing":
                self._state["status"] = "terminated"
            self._save()

    def get_json(self) -> Dict[str, Any]:
        with self._lock:
            return json.loads(json.dumps(self._state))

    def _save(self) -> None:
        self._state["updatedAt"] = time.time()
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".progress-", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._state, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


def read_progress(path: Optional[str]) -> Dict[str, Any]:
    """Return the last persisted progress state or the ``notfound`` state."""
    if not path or not os.path.exists(path):
        return dict(NOT_FOUND)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Unreadable progress file %s: %s", path, e)
        return dict(NOT_FOUND)
    return data if isinstance(data, dict) else dict(NOT_FOUND)
