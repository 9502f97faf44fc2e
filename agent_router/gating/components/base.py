"""
Shared lifecycle for the learning routers: snapshot save/restore and autosave.

Subclasses describe their learned state through ``_build_snapshot`` and
``_restore_snapshot``; this base decides when and how it hits the disk and
makes sure no persistence failure ever escapes to the caller.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from agent_router.errors import PersistenceError
from agent_router.persistence import (
    MODEL_FORMAT_VERSION,
    AutoSaver,
    load_snapshot,
    save_snapshot,
    utc_timestamp,
)

logger = logging.getLogger(__name__)


def snapshot_section(payload: Dict[str, Any], name: str, required: bool = False) -> Dict[str, Any]:
    """Return a top-level snapshot section, which must be a JSON object."""
    if name not in payload:
        if required:
            raise PersistenceError(f"Snapshot is missing '{name}'")
        return {}
    section = payload[name]
    if not isinstance(section, dict):
        raise PersistenceError(
            f"Snapshot section '{name}' must be an object, got {type(section).__name__}"
        )
    return section


class LearningRouter(ABC):
    """Base class for routers that learn online and snapshot to a local file."""

    log_name = "router"

    def __init__(self, model_path: Path, auto_save_interval: int):
        self.model_path = Path(model_path)
        self.auto_save_interval = auto_save_interval
        self._autosaver = AutoSaver(self.log_name)

    # -------------------- Subclass hooks -------------------- #
    @abstractmethod
    def _build_snapshot(self) -> Dict[str, Any]:
        """Learned state as plain data (without version / saved_at)."""

    @abstractmethod
    def _restore_snapshot(self, payload: Dict[str, Any]) -> None:
        """
        Validate ``payload`` fully, then replace in-memory state.
        Must raise PersistenceError before mutating anything.
        """

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        ...

    # -------------------- Persistence -------------------- #
    def snapshot(self) -> Dict[str, Any]:
        payload = {"version": MODEL_FORMAT_VERSION}
        payload.update(self._build_snapshot())
        payload.setdefault("metadata", {})["saved_at"] = utc_timestamp()
        return payload

    async def initialize(self) -> bool:
        """Best-effort restore of the last snapshot; starts fresh when there is none."""
        return await self.load_model()

    async def load_model(self, path: Optional[Path] = None) -> bool:
        path = Path(path or self.model_path)
        try:
            payload = await load_snapshot(path)
            self._restore_snapshot(payload)
        except PersistenceError as exc:
            if path.exists():
                logger.warning("[%s] Failed to load model: %s", self.log_name, exc)
            else:
                logger.debug("[%s] No snapshot at %s, starting fresh", self.log_name, path)
            return False
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("[%s] Malformed snapshot %s: %s", self.log_name, path, exc)
            return False
        logger.info("[%s] Model loaded from: %s", self.log_name, path)
        return True

    async def save_model(self, path: Optional[Path] = None) -> bool:
        path = Path(path or self.model_path)
        try:
            await save_snapshot(path, self.snapshot())
        except PersistenceError as exc:
            logger.warning("[%s] Failed to save model: %s", self.log_name, exc)
            return False
        logger.info("[%s] Model saved to: %s", self.log_name, path)
        return True

    def _maybe_autosave(self, update_count: int):
        if self.auto_save_interval > 0 and update_count % self.auto_save_interval == 0:
            self._autosaver.schedule(self.model_path, self.snapshot())

    def flush_autosave(self, timeout: Optional[float] = None):
        """Wait for background autosaves started outside an event loop."""
        self._autosaver.wait(timeout)

    def close(self):
        self._autosaver.close()
