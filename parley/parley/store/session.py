from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable

from pydantic import ValidationError as SchemaError

from ..errors import PersistenceError
from .ids import IdSource
from .models import Snapshot

logger = logging.getLogger(__name__)

Mutator = Callable[[Snapshot], Snapshot]


class JsonStore:
    """Sole owner of the persisted document.

    The document is kept in memory and mirrored to a single JSON file.  Every
    change goes through :meth:`commit`, which runs the mutator on a private
    copy while holding the commit lock, replaces the file atomically and only
    then publishes the new state to readers.  Readers get deep copies and
    never take the lock once the document is loaded.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self.ids = IdSource()
        self._state: Snapshot | None = None
        self._lock = asyncio.Lock()
        # Set when an unreadable document could not be moved aside.
        self._read_only = False

    async def snapshot(self) -> Snapshot:
        state = await self._current()
        return state.model_copy(deep=True)

    async def commit(self, mutator: Mutator) -> Snapshot:
        async with self._lock:
            if self._state is None:
                self._state = self._load()
            if self._read_only:
                raise PersistenceError("store is read-only: unreadable document in place")
            working = self._state.model_copy(deep=True)
            updated = mutator(working)
            updated.version = self._state.version + 1
            document = json.dumps(
                updated.model_dump(mode="json", by_alias=True), indent=2
            )
            await asyncio.to_thread(self._write, document)
            self._state = updated
            logger.debug("store commit version=%s path=%s", updated.version, self.path)
            return updated.model_copy(deep=True)

    async def _current(self) -> Snapshot:
        if self._state is not None:
            return self._state
        async with self._lock:
            if self._state is None:
                self._state = self._load()
            return self._state

    def _load(self) -> Snapshot:
        if not self.path.exists():
            logger.info("store %s not found, starting empty", self.path)
            return Snapshot()
        try:
            raw = self.path.read_text(encoding="utf-8")
            state = Snapshot.model_validate(json.loads(raw))
        except (OSError, ValueError, SchemaError) as exc:
            # Keep the unreadable file; the next commit must not overwrite it.
            quarantined = self._quarantine()
            if quarantined is None:
                self._read_only = True
                logger.error(
                    "store %s unreadable (%s) and could not be moved aside; "
                    "refusing writes",
                    self.path,
                    exc,
                )
                return Snapshot()
            logger.error(
                "store %s unreadable (%s); moved to %s and starting empty",
                self.path,
                exc,
                quarantined,
            )
            return Snapshot()
        self.ids.observe(state.max_id())
        logger.info(
            "store loaded path=%s version=%s servers=%s dms=%s",
            self.path,
            state.version,
            len(state.servers),
            len(state.dms),
        )
        return state

    def _quarantine(self) -> Path | None:
        stem = f"{self.path.name}.corrupt-{int(time.time() * 1000)}"
        target = self.path.with_name(stem)
        counter = 1
        while target.exists():
            target = self.path.with_name(f"{stem}-{counter}")
            counter += 1
        try:
            os.replace(self.path, target)
        except OSError as exc:
            logger.error("store unable to move %s aside: %s", self.path, exc)
            return None
        return target

    def _write(self, document: str) -> None:
        directory = self.path.parent
        tmp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(document)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
            logger.error("store write failed path=%s: %s", self.path, exc)
            raise PersistenceError("failed to persist changes") from exc


_store: JsonStore | None = None


def init_store(path: str | os.PathLike[str]) -> JsonStore:
    """Create the process-wide store for ``path``.

    Calling it again with the same path returns the existing store; a new
    path replaces it.
    """

    global _store
    if _store is not None and _store.path == Path(path):
        return _store
    _store = JsonStore(path)
    return _store


def get_store() -> JsonStore:
    if _store is None:
        raise RuntimeError("Store not initialized")
    return _store
