"""
Module: sources/attribution.py
Description: Attribution token producer.

Fetches the platform attribution token once per start and queues it for
the installation. Token lookup is platform specific, so it is delegated
to an injected AttributionTokenSource; without one the SDK simply
reports no token.
"""

import asyncio
from typing import Optional, Protocol

from adcider_attribution.delivery.engine import BatchingEngine
from adcider_attribution.storage.installation_id import InstallationIdStore
from adcider_attribution.utils.logger import get_logger

logger = get_logger(__name__)


class AttributionTokenSource(Protocol):
    """One-shot platform attribution token lookup."""

    async def fetch_token(self) -> Optional[str]: ...


class UnavailableTokenSource:
    """Token source for platforms without attribution services."""

    async def fetch_token(self) -> Optional[str]:
        logger.error(
            "Failed to fetch attribution token",
            error="Attribution services are not available on this platform"
        )
        return None


class AttributionManager:
    """Queues the installation's attribution token when the SDK starts."""

    def __init__(
        self,
        engine: BatchingEngine,
        identity: InstallationIdStore,
        token_source: Optional[AttributionTokenSource] = None
    ):
        self.engine = engine
        self.identity = identity
        self.token_source = token_source or UnavailableTokenSource()
        self.uid = ""
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Resolve the installation id and report the token in the background."""
        logger.info("Starting AttributionManager")
        self.uid = self.identity.get_uid()
        logger.debug("Generated/retrieved installation id", uid=self.uid)
        self._task = asyncio.ensure_future(self.report_token())

    async def stop(self) -> None:
        logger.info("Stopping AttributionManager")
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def report_token(self) -> Optional[str]:
        """
        Fetch the token and queue it for delivery.

        Returns:
            The token that was queued, or None if none was available
        """
        token = await self.fetch_token()
        if token:
            logger.info("Attribution token fetched successfully")
            await self.engine.queue_attribution(self.uid, token, [])
        else:
            logger.info("No attribution token available")
        return token

    async def fetch_token(self) -> Optional[str]:
        try:
            return await self.token_source.fetch_token()
        except Exception as e:
            logger.error(
                "Failed to fetch attribution token",
                error=str(e),
                error_type=type(e).__name__
            )
            return None
