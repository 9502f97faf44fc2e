"""
Versioned JSON snapshots for learned router state.

Snapshots are written to a temporary file next to the target and moved into
place with ``os.replace``, so a crash mid-write leaves the previous good
snapshot intact. Reads validate the major version before returning anything.
"""

import asyncio
import json
import logging
import os
import tempfile
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Set

from agent_router.errors import PersistenceError

logger = logging.getLogger(__name__)

MODEL_FORMAT_VERSION = "1.0.0"
SUPPORTED_MAJOR = "1."


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def write_snapshot(path: str | Path, payload: Dict[str, Any]) -> Path:
    """Atomically write ``payload`` as indented JSON to ``path``."""
    path = Path(path)
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            json.dump(payload, tmp, indent=2)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except (OSError, TypeError, ValueError) as exc:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceError(f"Failed to write snapshot {path}: {exc}") from exc
    return path


def read_snapshot(path: str | Path, major: str = SUPPORTED_MAJOR) -> Dict[str, Any]:
    """
    Read and validate a snapshot.

    Raises:
        PersistenceError: missing file, unreadable or malformed JSON, or a
            version that does not start with ``major``.
    """
    path = Path(path)
    if not path.exists():
        raise PersistenceError(f"No snapshot at {path}")
    try:
        with open(path, encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise PersistenceError(f"Snapshot {path} is unreadable: {exc}") from exc

    if not isinstance(payload, dict):
        raise PersistenceError(f"Snapshot {path} is not a JSON object")
    version = payload.get("version")
    if not isinstance(version, str) or not version.startswith(major):
        raise PersistenceError(f"Incompatible model version: {version!r}")
    return payload


async def save_snapshot(path: str | Path, payload: Dict[str, Any]) -> Path:
    return await asyncio.to_thread(write_snapshot, path, payload)


async def load_snapshot(path: str | Path, major: str = SUPPORTED_MAJOR) -> Dict[str, Any]:
    return await asyncio.to_thread(read_snapshot, path, major)


class AutoSaver:
    """
    Fire-and-forget snapshot writer.

    The payload is captured by the caller at scheduling time; only the file
    write happens in the background. Inside a running event loop the write is
    a task on that loop, otherwise it goes to a single-worker thread pool so
    writes from one engine never interleave.
    """

    def __init__(self, name: str = "router"):
        self.name = name
        self._executor: ThreadPoolExecutor | None = None
        self._futures: Set[Future] = set()
        self._tasks: Set[asyncio.Task] = set()
        self.saves_completed = 0
        self.saves_failed = 0

    def schedule(self, path: str | Path, payload: Dict[str, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(self._save_async(path, payload))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return

        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix=f"{self.name}-autosave"
            )
        future = self._executor.submit(self._save_sync, path, payload)
        self._futures.add(future)
        future.add_done_callback(self._futures.discard)

    def _save_sync(self, path, payload) -> bool:
        try:
            write_snapshot(path, payload)
        except PersistenceError as exc:
            self.saves_failed += 1
            logger.warning("[%s] Autosave failed: %s", self.name, exc)
            return False
        self.saves_completed += 1
        logger.debug("[%s] Autosaved snapshot to %s", self.name, path)
        return True

    async def _save_async(self, path, payload) -> bool:
        return await asyncio.to_thread(self._save_sync, path, payload)

    @property
    def pending(self) -> int:
        return len(self._futures) + len(self._tasks)

    def wait(self, timeout: float | None = None) -> None:
        """Block until background thread-pool saves have finished."""
        if self._futures:
            wait_futures(list(self._futures), timeout=timeout)

    async def drain(self) -> None:
        """Await saves scheduled on the running event loop."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
