"""
Module: retry_queue.py
Description: Durable queue of failed batches awaiting retry.

Holds RetryEntry items in insertion order. Every mutation (enqueue,
drain) rewrites the whole JSON file, so a crash loses at most the
mutation in progress. Loads lazily on first use.

Key Components:
- RetryQueue.enqueue(): append a failed batch
- RetryQueue.drain_all(): take every entry, leaving an empty queue
- RetryQueue.restore(): put back entries a sweep could not finish
- RetryQueue.load()/save(): JSON mirror of {batch, attemptCount, lastAttempt}

Dependencies: pydantic, pathlib, typing
"""

from pathlib import Path
from typing import Iterable, List, Tuple

from pydantic import TypeAdapter, ValidationError

from adcider_attribution.errors import PersistenceError
from adcider_attribution.models.batch import RetryEntry
from adcider_attribution.storage.json_file import JsonFileStore
from adcider_attribution.utils.logger import get_logger

logger = get_logger(__name__)

_entries_adapter = TypeAdapter(List[RetryEntry])


class RetryQueue:
    """
    Ordered, persisted list of failed batches.

    Example:
        >>> queue = RetryQueue(Path("/tmp/adcider_retry_queue.json"))
        >>> await queue.enqueue(RetryEntry(batch=batch))
        >>> entries = await queue.drain_all()
    """

    def __init__(self, path: Path):
        self._store = JsonFileStore(path)
        self._entries: List[RetryEntry] = []
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._store.path

    @property
    def entries(self) -> Tuple[RetryEntry, ...]:
        self._ensure_loaded()
        return tuple(self._entries)

    @property
    def is_empty(self) -> bool:
        self._ensure_loaded()
        return not self._entries

    def __len__(self) -> int:
        self._ensure_loaded()
        return len(self._entries)

    def load(self) -> List[RetryEntry]:
        """
        Replace the in-memory queue with the persisted one.

        Returns:
            The loaded entries; empty if the file is missing or invalid
        """
        data = self._store.read()
        entries: List[RetryEntry] = []
        if data is not None:
            try:
                entries = _entries_adapter.validate_python(data)
            except ValidationError as e:
                logger.warning(
                    "Retry queue file is invalid, starting empty",
                    path=str(self.path),
                    errors=e.error_count()
                )

        self._entries = entries
        self._loaded = True
        logger.debug("Loaded retry queue", items=len(entries))
        return list(entries)

    async def save(self) -> bool:
        """
        Overwrite the persisted queue with the in-memory one.

        Returns:
            True if the queue was written, False if persisting failed
        """
        try:
            await self._store.write_async(
                _entries_adapter.dump_python(self._entries, mode="json", by_alias=True)
            )
        except PersistenceError as e:
            logger.error(
                "Failed to save retry queue",
                path=str(self.path),
                error=str(e)
            )
            return False

        logger.debug("Saved retry queue", items=len(self._entries))
        return True

    async def enqueue(self, entry: RetryEntry) -> None:
        if not isinstance(entry, RetryEntry):
            raise ValueError("entry must be a RetryEntry instance")

        self._ensure_loaded()
        self._entries.append(entry)
        await self.save()

    async def drain_all(self) -> List[RetryEntry]:
        """
        Atomically empty the queue.

        Entries enqueued after this call form a fresh queue and are not
        part of the returned list.
        """
        self._ensure_loaded()
        drained, self._entries = self._entries, []
        await self.save()
        return drained

    async def restore(self, entries: Iterable[RetryEntry]) -> None:
        """
        Append drained entries back to the persisted queue.

        If the queue was reset, the entries are merged into the file and
        the in-memory queue stays unloaded, so the next load() sees them.
        """
        entries = list(entries)
        if not entries:
            return

        was_loaded = self._loaded
        self._ensure_loaded()
        self._entries.extend(entries)
        await self.save()
        if not was_loaded:
            self.reset()
        logger.info("Restored retry queue entries", items=len(entries))

    def reset(self) -> None:
        """Drop in-memory entries without touching the file."""
        self._entries = []
        self._loaded = False

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()
