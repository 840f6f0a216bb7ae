"""Durable storage for the working context.

Two tiers: a process-local memory cache and a JSON file. Reads self-heal to
a default context; writes surface failures as ContextPersistenceError.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from .errors import ContextPersistenceError, ContextValidationError
from .models import ContextSerializer, WorkingContext, create_default_context

logger = logging.getLogger("orchestr8r.persistence")


class PersistenceManager:
    """Load and persist exactly one WorkingContext."""

    def __init__(self, path: Path | str, *, enable_memory_cache: bool = True):
        self._path = Path(path)
        self._enable_memory_cache = enable_memory_cache
        self._cache: Optional[WorkingContext] = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def cached(self) -> Optional[WorkingContext]:
        """The memory-tier value, if any."""
        return self._cache

    def clear_cache(self) -> None:
        self._cache = None

    def exists(self) -> bool:
        """True once a durable record has been written."""
        return self._path.is_file()

    async def load(self, *, use_cache: bool = True) -> WorkingContext:
        """Return the stored context, or a fresh default when none is usable.

        Never raises: a missing, unreadable, malformed or non-conforming
        record is replaced by a default context.
        """
        if use_cache and self._enable_memory_cache and self._cache is not None:
            return self._cache

        try:
            text = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No context record at {self._path}, using default context")
            return create_default_context()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read context record {self._path}: {e}")
            return create_default_context()

        try:
            context = ContextSerializer.deserialize(text)
        except ContextValidationError as e:
            logger.warning(f"Discarding invalid context record {self._path}: {e}")
            return create_default_context()

        if self._enable_memory_cache:
            self._cache = context
        return context

    async def persist(self, context: WorkingContext) -> None:
        """Write ``context`` to the cache and then durably to disk.

        The cache is updated before the disk write, so a failed write leaves
        memory ahead of the durable record until the next successful write.
        """
        if self._enable_memory_cache:
            self._cache = context
        payload = ContextSerializer.serialize(context)
        try:
            await asyncio.to_thread(self._write_atomic, payload)
        except OSError as e:
            logger.error(f"Context persistence error for {self._path}: {e}")
            raise ContextPersistenceError(f"Failed to persist context: {e}", context=context.to_dict()) from e

    def _write_atomic(self, payload: str) -> None:
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
