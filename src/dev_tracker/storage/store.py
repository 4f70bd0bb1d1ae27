"""File-based tracker store with locking.

Stores the whole tracker state in a single YAML file (``tracker.yaml``)
inside the project's ``.dev_tracker/`` directory.  Reads and writes go
through :meth:`TrackerStore.transaction`, which holds an exclusive file lock
for its duration.  Fading flags and the Undo Record are never persisted.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional

from loguru import logger

from ..constants import LOCK_FILE, STATE_FILE, STATE_VERSION
from ..io_utils import FileLock, _atomic_write_yaml, _load_data_with_error
from ..workflow.model import TrackerState

if TYPE_CHECKING:
    from ..workflow.engine import TrackerEvent, WorkflowEngine


class StoreError(RuntimeError):
    """Raised when the state file exists but cannot be parsed."""


class TrackerStore:
    """Locked, file-backed store for :class:`TrackerState`.

    Parameters
    ----------
    state_dir:
        Path to the ``.dev_tracker/`` directory for the project.  It is only
        created on the first save.
    """

    def __init__(self, state_dir: Path) -> None:
        self.state_dir = state_dir
        self.path = state_dir / STATE_FILE
        self._lock = FileLock(state_dir / LOCK_FILE)

    # -- internal helpers ---------------------------------------------------

    def _load(self) -> Optional[TrackerState]:
        data, err = _load_data_with_error(self.path, {})
        if err:
            raise StoreError(err)
        if not data:
            return None
        return TrackerState.from_dict(data)

    def _save(self, state: TrackerState) -> None:
        payload: dict[str, Any] = {"version": STATE_VERSION, **state.to_dict()}
        _atomic_write_yaml(self.path, payload)

    # -- public API ---------------------------------------------------------

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[TrackerState]:
        """Return the saved state, or ``None`` when nothing usable is stored.

        A corrupt file is logged and treated as missing; it is left on disk
        untouched until the next successful save replaces it.
        """
        if not self.exists():
            return None
        try:
            with self._lock:
                return self._load()
        except StoreError as exc:
            logger.error("Ignoring unreadable tracker state: {}", exc)
            return None

    def save(self, state: TrackerState) -> None:
        with self._lock:
            self._save(state)

    @contextmanager
    def transaction(self) -> Iterator[TrackerState]:
        """Acquire the lock, load state, yield it, and save on clean exit.

        Usage::

            with store.transaction() as state:
                state.backlog.clear()
                # automatically saved on exit
        """
        with self._lock:
            state = self._load() or TrackerState()
            yield state
            self._save(state)


def attach_store(engine: "WorkflowEngine", store: TrackerStore) -> Callable[[], None]:
    """Persist a fresh snapshot after every engine event.

    Save failures are logged and swallowed: local state stays authoritative.
    Returns the unsubscribe callable.
    """

    def _persist(event: "TrackerEvent") -> None:
        try:
            store.save(engine.state)
        except Exception as exc:
            logger.error("Failed to persist tracker state after {}: {}", event.type, exc)

    return engine.subscribe(_persist)
