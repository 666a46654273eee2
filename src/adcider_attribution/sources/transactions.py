"""
Module: sources/transactions.py
Description: Purchase transaction producer.

Subscribes to an async stream of purchase transactions and queues each
one for the installation as it arrives. A malformed item is logged and
skipped; the subscription keeps running.
"""

import asyncio
from typing import Any, AsyncIterator, Callable, Dict, Optional, Union

from pydantic import ValidationError

from adcider_attribution.delivery.engine import BatchingEngine
from adcider_attribution.models.transaction import TransactionRecord
from adcider_attribution.storage.installation_id import InstallationIdStore
from adcider_attribution.utils.logger import get_logger

logger = get_logger(__name__)

TransactionUpdate = Union[TransactionRecord, Dict[str, Any]]
TransactionStream = Callable[[], AsyncIterator[TransactionUpdate]]


class TransactionObserver:
    """
    Forwards every transaction update to the batching engine.

    Example:
        >>> async def updates():
        ...     async for tx in store.transaction_updates():
        ...         yield tx
        >>> observer = TransactionObserver(engine, identity, updates)
        >>> await observer.start()
    """

    def __init__(
        self,
        engine: BatchingEngine,
        identity: InstallationIdStore,
        stream: Optional[TransactionStream] = None
    ):
        self.engine = engine
        self.identity = identity
        self.stream = stream
        self.uid = ""
        self._listener: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._listener is not None and not self._listener.done()

    async def start(self) -> None:
        logger.info("Starting TransactionObserver")
        self.uid = self.identity.get_uid()

        if self.stream is None:
            logger.info("No transaction stream configured")
            return

        self._listener = asyncio.ensure_future(self._observe())

    async def stop(self) -> None:
        logger.info("Stopping TransactionObserver")
        if self._listener is not None and not self._listener.done():
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
        self._listener = None

    async def _observe(self) -> None:
        logger.info("Starting transaction observation")
        try:
            async for update in self.stream():
                try:
                    await self.handle_transaction(update)
                except ValidationError as e:
                    logger.error(
                        "Failed to process transaction update",
                        error=str(e),
                        error_type=type(e).__name__
                    )
        except Exception as e:
            logger.error(
                "Transaction stream failed",
                error=str(e),
                error_type=type(e).__name__
            )
            return
        logger.info("Transaction stream finished")

    async def handle_transaction(self, update: TransactionUpdate) -> None:
        """
        Queue one transaction update.

        Raises:
            ValidationError: If a dict update is not a valid transaction
        """
        record = (
            update if isinstance(update, TransactionRecord)
            else TransactionRecord.model_validate(update)
        )
        logger.debug(
            "Queuing transaction",
            transaction_id=record.transaction_id,
            uid=self.uid
        )
        await self.engine.queue_attribution(self.uid, None, [record])
