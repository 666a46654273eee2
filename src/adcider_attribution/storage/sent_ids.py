"""
Module: sent_ids.py
Description: Durable ledger of delivered transaction ids.

The ledger is the deduplication source for outgoing batches: a
transaction whose id is recorded here is never sent again. The in-memory
set is authoritative; the JSON file is a mirror written after every
change and read once per process lifetime.
"""

from pathlib import Path
from typing import Iterable, Set

from adcider_attribution.errors import PersistenceError
from adcider_attribution.storage.json_file import JsonFileStore
from adcider_attribution.utils.logger import get_logger

logger = get_logger(__name__)


class SentIdLedger:
    """Set of transaction ids confirmed delivered, mirrored to a JSON array."""

    def __init__(self, path: Path):
        self._store = JsonFileStore(path)
        self._ids: Set[str] = set()
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._store.path

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self) -> Set[str]:
        """
        Replace the in-memory set with the persisted one.

        A missing or malformed file yields an empty ledger.
        """
        data = self._store.read()
        if isinstance(data, list) and all(isinstance(item, str) for item in data):
            self._ids = set(data)
        else:
            if data is not None:
                logger.warning(
                    "Sent transaction ids file has unexpected shape, starting empty",
                    path=str(self.path)
                )
            self._ids = set()

        self._loaded = True
        logger.debug("Loaded sent transaction ids", count=len(self._ids))
        return set(self._ids)

    def ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def contains(self, transaction_id: str) -> bool:
        self.ensure_loaded()
        return transaction_id in self._ids

    async def mark_delivered(self, transaction_ids: Iterable[str]) -> None:
        """
        Record ids as delivered and persist the full ledger.

        The ids count as delivered for this process even if persisting fails.
        """
        self.ensure_loaded()
        self._ids.update(transaction_ids)
        await self.save()

    async def save(self) -> bool:
        """
        Overwrite the persisted ledger with the in-memory set.

        Returns:
            True if the ledger was written, False if persisting failed
        """
        try:
            await self._store.write_async(sorted(self._ids))
        except PersistenceError as e:
            logger.error(
                "Failed to save sent transaction IDs",
                path=str(self.path),
                error=str(e)
            )
            return False
        return True

    def reset(self) -> None:
        """Drop the in-memory ledger; the next lookup reloads it from disk."""
        self._ids = set()
        self._loaded = False

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, transaction_id: str) -> bool:
        return self.contains(transaction_id)
