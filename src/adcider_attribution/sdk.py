"""
Module: sdk.py
Description: Entry point of the AdCider Attribution SDK.

Wires settings, storage, the delivery client and the batching engine
together and runs them on a dedicated event-loop thread. Calls from any
application thread are handed to that loop and return immediately.
"""

import asyncio
import threading
from concurrent.futures import Future
from typing import Iterable, Optional

from adcider_attribution.config.settings import Settings, settings as default_settings
from adcider_attribution.delivery.engine import BatchingEngine, DeliveryClient
from adcider_attribution.delivery.push import AttributionDeliveryClient
from adcider_attribution.delivery.retry import ExponentialJitterBackoff
from adcider_attribution.errors import ConfigurationError, InitializationError
from adcider_attribution.models.transaction import TransactionRecord
from adcider_attribution.sources.attribution import AttributionManager, AttributionTokenSource
from adcider_attribution.sources.transactions import TransactionObserver, TransactionStream
from adcider_attribution.storage.installation_id import InstallationIdStore
from adcider_attribution.storage.retry_queue import RetryQueue
from adcider_attribution.storage.sent_ids import SentIdLedger
from adcider_attribution.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


class AdCiderAttribution:
    """
    Attribution SDK instance.

    One instance is meant to live for the whole process: initialize() at
    startup, deinitialize() at shutdown. Re-initializing after
    deinitialize() is allowed.

    Example:
        >>> sdk = AdCiderAttribution(token_source=my_token_source)
        >>> sdk.initialize(api_key="ak_live_123")
        >>> sdk.report_transactions([record])
        >>> sdk.deinitialize()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        token_source: Optional[AttributionTokenSource] = None,
        transaction_stream: Optional[TransactionStream] = None,
        delivery_client: Optional[DeliveryClient] = None
    ):
        self.settings = settings or default_settings
        self.token_source = token_source
        self.transaction_stream = transaction_stream
        self.identity = InstallationIdStore(
            self.settings.storage_dir,
            service=self.settings.keychain_service
        )

        self._delivery_client = delivery_client
        self._state_lock = threading.Lock()
        self._initialized = False
        self._api_key: Optional[str] = None
        self._debug_logging = False

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self.engine: Optional[BatchingEngine] = None
        self.attribution_manager: Optional[AttributionManager] = None
        self.transaction_observer: Optional[TransactionObserver] = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key

    @property
    def debug_logging_enabled(self) -> bool:
        return self._debug_logging

    def initialize(self, api_key: str, enable_debug_logging: bool = False) -> None:
        """
        Start the SDK.

        Args:
            api_key: API key for the collector
            enable_debug_logging: Log at DEBUG level instead of the configured level

        Raises:
            InitializationError: If the SDK is already initialized
            ConfigurationError: If api_key is empty
        """
        with self._state_lock:
            if self._initialized:
                raise InitializationError("SDK already initialized")
            if not api_key or not isinstance(api_key, str) or not api_key.strip():
                raise ConfigurationError("API key cannot be empty")

            configure_logging("DEBUG" if enable_debug_logging else self.settings.log_level)
            logger.info("Initializing AdCider Attribution SDK", version=self.settings.sdk_version)

            self._build_components()
            self.engine.configure(api_key)

            self._loop = asyncio.new_event_loop()
            self._thread = threading.Thread(
                target=self._run_loop,
                name="adcider-attribution",
                daemon=True
            )
            self._thread.start()

            try:
                self._submit(self._start()).result(timeout=self.settings.shutdown_timeout)
            except Exception:
                self._stop_loop()
                raise

            self._initialized = True
            self._api_key = api_key
            self._debug_logging = enable_debug_logging
            logger.info("AdCider Attribution SDK initialized successfully")

    def deinitialize(self) -> None:
        """Stop producers, drop in-memory state and stop the loop thread."""
        with self._state_lock:
            if not self._initialized:
                return

            logger.info("Shutting down AdCider Attribution SDK")
            try:
                # _stop waits up to shutdown_timeout for in-flight sends
                self._submit(self._stop()).result(timeout=self.settings.shutdown_timeout + 5)
            except Exception as e:
                logger.error(
                    "SDK shutdown did not complete cleanly",
                    error=str(e),
                    error_type=type(e).__name__
                )
            finally:
                self._stop_loop()
                self._initialized = False
                self._api_key = None
                self._debug_logging = False

    def queue_attribution(
        self,
        uid: str,
        apple_attribution_token: Optional[str] = None,
        transactions: Iterable[TransactionRecord] = ()
    ) -> None:
        """
        Hand a fragment to the engine without waiting for it.

        Safe to call from any thread.

        Raises:
            InitializationError: If the SDK is not initialized
        """
        if not self._initialized:
            raise InitializationError("SDK is not initialized")

        future = self._submit(
            self.engine.queue_attribution(uid, apple_attribution_token, list(transactions))
        )
        future.add_done_callback(self._log_submission_failure)

    def report_transactions(self, transactions: Iterable[TransactionRecord]) -> None:
        """Queue transactions for this installation. Safe to call from any thread."""
        self.queue_attribution(self.identity.get_uid(), None, transactions)

    def _build_components(self) -> None:
        client = self._delivery_client or AttributionDeliveryClient(
            backend_url=self.settings.backend_url,
            timeout_seconds=self.settings.request_timeout,
            user_agent=self.settings.user_agent
        )
        self.engine = BatchingEngine(
            client=client,
            sent_ids=SentIdLedger(self.settings.sent_ids_path),
            retry_queue=RetryQueue(self.settings.retry_queue_path),
            backoff=ExponentialJitterBackoff(
                base=self.settings.retry_base_delay,
                maximum=self.settings.retry_max_delay
            ),
            max_attempts=self.settings.max_retry_attempts,
            bundle_id=self.settings.bundle_id
        )
        self.attribution_manager = AttributionManager(
            self.engine, self.identity, self.token_source
        )
        self.transaction_observer = TransactionObserver(
            self.engine, self.identity, self.transaction_stream
        )

    async def _start(self) -> None:
        await self.engine.start()
        await self.attribution_manager.start()
        await self.transaction_observer.start()

    async def _stop(self) -> None:
        await self.transaction_observer.stop()
        await self.attribution_manager.stop()
        await self.engine.cleanup()
        if not await self.engine.join(timeout=self.settings.shutdown_timeout):
            logger.warning("Cancelling deliveries still in flight", tasks=self.engine.in_flight)
            await self.engine.cancel_pending()

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _submit(self, coro) -> Future:
        loop = self._loop
        if loop is None:
            coro.close()
            raise InitializationError("SDK is not initialized")
        return asyncio.run_coroutine_threadsafe(coro, loop)

    def _stop_loop(self) -> None:
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread is not None:
            self._thread.join(timeout=self.settings.shutdown_timeout)
        if not self._loop.is_running():
            self._loop.close()
        self._loop = None
        self._thread = None

    @staticmethod
    def _log_submission_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(
                "Failed to queue attribution",
                error=str(error),
                error_type=type(error).__name__
            )
