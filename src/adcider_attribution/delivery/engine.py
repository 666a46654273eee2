"""
Module: delivery/engine.py
Description: Batching, deduplication and retry engine.

Accumulates attribution fragments into a pending batch, filters out
transactions already delivered, pushes the batch to the collector and
parks failed batches in a durable retry queue that is swept on an
exponential backoff schedule.

Key Components:
- BatchingEngine.queue_attribution(): merge a fragment and trigger a flush
- BatchingEngine.run_sweep(): retry every queued batch once
- BatchingEngine.cleanup(): drop in-memory state and cancel the timer

Concurrency: all engine state lives on one asyncio event loop and is
mutated only while holding self._lock. The lock is never held while a
batch is on the wire: state is snapshotted under the lock, the send runs
unlocked, and the result is applied after re-acquiring it. cleanup()
bumps an epoch so results of sends that straddle it are discarded.

Dependencies: asyncio, pydantic models, storage, push client
"""

import asyncio
from typing import Awaitable, Iterable, List, Optional, Protocol, Set

from adcider_attribution.delivery.retry import ExponentialJitterBackoff
from adcider_attribution.errors import ConfigurationError
from adcider_attribution.models.batch import AttributionBatch, PendingBatch, RetryEntry
from adcider_attribution.models.transaction import TransactionRecord
from adcider_attribution.storage.retry_queue import RetryQueue
from adcider_attribution.storage.sent_ids import SentIdLedger
from adcider_attribution.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class DeliveryClient(Protocol):
    """What the engine needs from a transport."""

    def configure(self, api_key: str) -> None: ...

    async def send(self, batch: AttributionBatch) -> bool: ...


class BatchingEngine:
    """
    Orchestrates delivery of attribution batches.

    Attributes:
        client: Transport used for every send
        sent_ids: Ledger of delivered transaction ids
        retry_queue: Durable queue of failed batches
        backoff: Policy giving the delay before each retry sweep
        max_attempts: Retries allowed per failed batch
        bundle_id: Bundle identifier reported with every batch

    Example:
        >>> engine = BatchingEngine(client, SentIdLedger(ids_path), RetryQueue(queue_path))
        >>> await engine.start()
        >>> await engine.queue_attribution(uid, "token", [])
    """

    def __init__(
        self,
        client: DeliveryClient,
        sent_ids: SentIdLedger,
        retry_queue: RetryQueue,
        backoff: Optional[ExponentialJitterBackoff] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        bundle_id: Optional[str] = None
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.client = client
        self.sent_ids = sent_ids
        self.retry_queue = retry_queue
        self.backoff = backoff or ExponentialJitterBackoff()
        self.max_attempts = max_attempts
        self.bundle_id = bundle_id

        self._lock = asyncio.Lock()
        self._pending = PendingBatch()
        self._retry_scheduled = False
        self._retry_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._epoch = 0

    @property
    def pending(self) -> PendingBatch:
        """Copy of the batch being assembled."""
        return self._pending.model_copy(deep=True)

    @property
    def retry_scheduled(self) -> bool:
        return self._retry_scheduled

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def configure(self, api_key: str) -> None:
        """
        Set the credential used for delivery. Safe to call repeatedly.

        Raises:
            ConfigurationError: If api_key is empty
        """
        if not api_key or not isinstance(api_key, str) or not api_key.strip():
            raise ConfigurationError("API key cannot be empty")
        self.client.configure(api_key)

    async def start(self) -> None:
        """Load work left by a previous process and schedule its retry."""
        async with self._lock:
            self.retry_queue.load()
            self._schedule_retry_if_needed()

    async def queue_attribution(
        self,
        uid: str,
        apple_attribution_token: Optional[str] = None,
        transactions: Iterable[TransactionRecord] = ()
    ) -> None:
        """
        Merge a fragment into the pending batch and trigger a flush.

        Returns once the merge is done; the flush runs as a separate task
        and its outcome is not reported back.

        Args:
            uid: Installation identifier
            apple_attribution_token: Attribution token, if one was fetched
            transactions: Transactions to report

        Raises:
            ConfigurationError: If uid is empty
        """
        if not uid or not isinstance(uid, str):
            raise ConfigurationError("uid must be a non-empty string")

        records = list(transactions)
        async with self._lock:
            self._pending.merge(uid, apple_attribution_token, records)

        self._spawn(self._try_send_batch())

    async def run_sweep(self) -> None:
        """
        Retry every queued batch once.

        The queue is drained up front, so batches that fail during the
        sweep (including fresh ones from concurrent flushes) land in a
        new queue and get their own schedule. If cleanup() or cancellation
        interrupts the sweep, the entries it has not finished go back to
        the persisted queue.
        """
        async with self._lock:
            self._cancel_retry_timer()
            self._retry_scheduled = False
            epoch = self._epoch
            entries = await self.retry_queue.drain_all()

        logger.info("Processing retry queue", requests=len(entries))

        index = 0
        try:
            for index, entry in enumerate(entries):
                async with self._lock:
                    if epoch != self._epoch:
                        unfinished, index = entries[index:], len(entries)
                        await self._restore_unfinished(unfinished)
                        return
                    if entry.attempt_count >= self.max_attempts:
                        logger.warning(
                            "Max retry attempts reached",
                            uid=entry.batch.uid,
                            attempts=entry.attempt_count
                        )
                        continue
                    batch = self._without_delivered(entry.batch)

                if batch is None:
                    logger.debug("Retry batch already delivered", uid=entry.batch.uid)
                    continue

                attempt = entry.attempt_count + 1
                logger.info("Retrying batch", uid=batch.uid, attempt=attempt)
                success = await self.client.send(batch)

                async with self._lock:
                    failed_entry = None
                    if not success and attempt < self.max_attempts:
                        failed_entry = entry.next_attempt(batch)

                    if epoch != self._epoch:
                        unfinished = entries[index + 1:]
                        if failed_entry is not None:
                            unfinished = [failed_entry] + unfinished
                        index = len(entries)
                        await self._restore_unfinished(unfinished)
                        return

                    if success:
                        logger.info("Retry successful", uid=batch.uid, attempt=attempt)
                        await self._record_delivered(batch)
                    elif failed_entry is None:
                        logger.warning(
                            "Max retry attempts reached",
                            uid=batch.uid,
                            attempts=attempt
                        )
                    else:
                        logger.warning(
                            "Retry failed, will try again later",
                            uid=batch.uid,
                            attempt=attempt
                        )
                        await self.retry_queue.enqueue(failed_entry)
        except asyncio.CancelledError:
            async with self._lock:
                await self._restore_unfinished(entries[index:])
            raise

        async with self._lock:
            if epoch == self._epoch:
                self._schedule_retry_if_needed()

    async def cleanup(self) -> None:
        """
        Drop all in-memory state and cancel any scheduled sweep.

        Persisted files are left alone so undelivered work survives into
        the next start(). Sends already in flight finish, but their
        results are ignored.
        """
        async with self._lock:
            logger.info("Cleaning up batching engine")
            self._epoch += 1
            self._cancel_retry_timer()
            self._retry_scheduled = False
            self._pending.clear()
            self.retry_queue.reset()
            self.sent_ids.reset()
            logger.debug("Batching engine cleanup completed")

    async def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for in-flight flushes and sweeps, including any they spawn.

        Returns:
            True if everything finished, False if the timeout expired
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            _, pending = await asyncio.wait(set(self._tasks), timeout=remaining)
            if pending and remaining is not None and loop.time() >= deadline:
                return False
        return True

    async def cancel_pending(self) -> None:
        """Cancel in-flight flushes and sweeps and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _try_send_batch(self) -> None:
        async with self._lock:
            epoch = self._epoch
            batch = self._build_batch()
        if batch is None:
            return

        success = await self.client.send(batch)

        async with self._lock:
            if epoch != self._epoch:
                logger.debug("Discarding delivery result after cleanup", uid=batch.uid)
                return

            if success:
                logger.debug(
                    "Successfully sent batch",
                    uid=batch.uid,
                    transactions=len(batch.transactions)
                )
                await self._record_delivered(batch)
            else:
                logger.warning(
                    "Failed to send batch, queuing for retry",
                    uid=batch.uid,
                    transactions=len(batch.transactions)
                )
                await self.retry_queue.enqueue(RetryEntry(batch=batch, attempt_count=0))
                self._schedule_retry_if_needed()

    def _build_batch(self) -> Optional[AttributionBatch]:
        # Caller holds the lock
        pending = self._pending
        if not pending.uid or pending.is_empty:
            return None

        self.sent_ids.ensure_loaded()
        new_transactions = [
            tx for tx in pending.transactions
            if not self.sent_ids.contains(tx.transaction_id)
        ]
        if len(new_transactions) != len(pending.transactions):
            # Delivered transactions can never be sent again
            pending.transactions = list(new_transactions)
        if not new_transactions and pending.apple_attribution_token is None:
            return None

        return AttributionBatch(
            uid=pending.uid,
            bundle_id=self.bundle_id,
            apple_attribution_token=pending.apple_attribution_token,
            transactions=new_transactions
        )

    def _without_delivered(self, batch: AttributionBatch) -> Optional[AttributionBatch]:
        # Caller holds the lock
        self.sent_ids.ensure_loaded()
        remaining = [
            tx for tx in batch.transactions
            if not self.sent_ids.contains(tx.transaction_id)
        ]
        if len(remaining) == len(batch.transactions):
            return batch

        filtered = batch.model_copy(update={"transactions": remaining})
        return None if filtered.is_empty else filtered

    async def _record_delivered(self, batch: AttributionBatch) -> None:
        # Caller holds the lock
        ids = batch.transaction_ids
        if ids:
            await self.sent_ids.mark_delivered(ids)
        self._pending.discard(batch)

    async def _restore_unfinished(self, entries: List[RetryEntry]) -> None:
        # Caller holds the lock
        if not entries:
            return
        logger.info("Sweep interrupted, keeping unfinished retries", requests=len(entries))
        await self.retry_queue.restore(entries)

    def _schedule_retry_if_needed(self) -> None:
        # Caller holds the lock
        if self._retry_scheduled or self.retry_queue.is_empty:
            return

        self._retry_scheduled = True
        delay = self.backoff.delay(0)

        logger.info(
            "Scheduling retry",
            delay_seconds=round(delay, 2),
            requests=len(self.retry_queue)
        )

        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(delay, self._on_retry_timer)

    def _on_retry_timer(self) -> None:
        self._retry_handle = None
        self._spawn(self.run_sweep())

    def _cancel_retry_timer(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Background delivery task failed",
                error=str(error),
                error_type=type(error).__name__
            )
