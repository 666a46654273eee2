"""
Module: push.py
Description: Push attribution batches to the collector.

Implements one HTTP POST per batch with timeout handling. Every failure
mode (timeout, network error, non-2xx status, unencodable payload) is
reported uniformly as False so the engine can queue the batch for retry.
"""

from typing import Dict, Optional

import httpx

from adcider_attribution.errors import ConfigurationError
from adcider_attribution.models.batch import AttributionBatch
from adcider_attribution.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_USER_AGENT = "AdCiderAttribution/1.0"


class AttributionDeliveryClient:
    """
    HTTP client for pushing attribution batches.

    A batch is either wholly delivered (2xx) or wholly failed; there is no
    partial success.
    """

    def __init__(
        self,
        backend_url: str,
        timeout_seconds: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        api_key: Optional[str] = None
    ):
        """
        Initialize push delivery client.

        Args:
            backend_url: Collector endpoint receiving batches
            timeout_seconds: HTTP timeout in seconds
            user_agent: User-Agent header value
            api_key: Optional key sent as X-API-KEY

        Raises:
            ValueError: If backend_url is invalid
        """
        if not backend_url or not isinstance(backend_url, str):
            raise ValueError("backend_url must be a non-empty string")
        if not backend_url.startswith(('http://', 'https://')):
            raise ValueError("backend_url must be a valid HTTP/HTTPS URL")

        self.backend_url = backend_url
        self.user_agent = user_agent
        self.timeout = httpx.Timeout(timeout_seconds)
        self._api_key = api_key

        logger.debug(
            "Delivery client initialized",
            backend_url=backend_url,
            timeout_seconds=timeout_seconds
        )

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key

    def configure(self, api_key: str) -> None:
        """
        Set the API key sent with every batch.

        Raises:
            ConfigurationError: If api_key is empty
        """
        if not api_key or not isinstance(api_key, str) or not api_key.strip():
            raise ConfigurationError("API key cannot be empty")

        self._api_key = api_key
        logger.info("Delivery client configured", backend_url=self.backend_url)

    def build_headers(self) -> Dict[str, str]:
        headers = {
            'Content-Type': 'application/json',
            'User-Agent': self.user_agent,
        }
        if self._api_key:
            headers['X-API-KEY'] = self._api_key
        return headers

    async def send(self, batch: AttributionBatch) -> bool:
        """
        Deliver a batch via HTTP POST.

        Args:
            batch: Batch to deliver

        Returns:
            True if the collector answered 2xx, False otherwise
        """
        try:
            payload = batch.to_wire()
        except Exception as e:
            logger.error(
                "Failed to encode request",
                uid=getattr(batch, "uid", None),
                error=str(e),
                error_type=type(e).__name__
            )
            return False

        logger.debug(
            "Sending attribution batch",
            uid=batch.uid,
            backend_url=self.backend_url,
            payload=payload
        )

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    self.backend_url,
                    json=payload,
                    headers=self.build_headers()
                )

                response.raise_for_status()

                logger.info(
                    "Request succeeded",
                    uid=batch.uid,
                    status_code=response.status_code,
                    transactions=len(batch.transactions)
                )

                return True

            except httpx.TimeoutException:
                logger.warning(
                    "Attribution delivery timeout",
                    uid=batch.uid,
                    backend_url=self.backend_url
                )
                return False

            except httpx.HTTPStatusError as e:
                logger.error(
                    "Server returned error status",
                    uid=batch.uid,
                    status_code=e.response.status_code,
                    response=e.response.text[:500]  # Truncate large responses
                )
                return False

            except httpx.HTTPError as e:
                logger.error(
                    "Network request failed",
                    uid=batch.uid,
                    error=str(e),
                    error_type=type(e).__name__
                )
                return False
