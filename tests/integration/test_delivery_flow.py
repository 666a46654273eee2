"""
Module: test_delivery_flow.py
Description: Integration tests for the batching engine over real HTTP.

Wires BatchingEngine to AttributionDeliveryClient with pytest-httpx
standing in for the collector, so failures travel the full path from
HTTP status to retry queue and back.
"""

import json

import pytest

from adcider_attribution.delivery.engine import BatchingEngine
from adcider_attribution.delivery.push import AttributionDeliveryClient

pytestmark = pytest.mark.integration


@pytest.fixture
def http_engine(test_settings, sent_ids, retry_queue, backoff):
    engine = BatchingEngine(
        client=AttributionDeliveryClient(
            backend_url=test_settings.backend_url,
            timeout_seconds=5.0
        ),
        sent_ids=sent_ids,
        retry_queue=retry_queue,
        backoff=backoff,
        max_attempts=3,
        bundle_id=test_settings.bundle_id
    )
    engine.configure("ak_test_123")
    return engine


class TestDeliveryFlow:
    """End-to-end delivery through the HTTP client."""

    @pytest.mark.asyncio
    async def test_server_error_then_retry_success(
        self, http_engine, httpx_mock, test_settings, sample_transactions
    ):
        url = test_settings.backend_url
        httpx_mock.add_response(url=url, method="POST", status_code=500, text="internal error")
        httpx_mock.add_response(url=url, method="POST", status_code=200)

        try:
            await http_engine.queue_attribution("u1", "T", sample_transactions)
            await http_engine.join()

            assert len(http_engine.retry_queue) == 1
            assert http_engine.retry_scheduled
            assert len(http_engine.sent_ids) == 0

            await http_engine.run_sweep()
        finally:
            await http_engine.cleanup()
            await http_engine.cancel_pending()

        first, second = httpx_mock.get_requests()
        assert json.loads(first.content) == json.loads(second.content)
        assert second.headers["X-API-KEY"] == "ak_test_123"

        persisted = json.loads(test_settings.sent_ids_path.read_text())
        assert persisted == sorted(tx.transaction_id for tx in sample_transactions)
        assert json.loads(test_settings.retry_queue_path.read_text()) == []

    @pytest.mark.asyncio
    async def test_delivered_transactions_not_resent(
        self, http_engine, httpx_mock, test_settings, transaction_factory
    ):
        url = test_settings.backend_url
        httpx_mock.add_response(url=url, method="POST", status_code=200)
        httpx_mock.add_response(url=url, method="POST", status_code=200)

        try:
            await http_engine.queue_attribution("u1", None, [transaction_factory("t1")])
            await http_engine.join()
            await http_engine.queue_attribution(
                "u1", None, [transaction_factory("t1"), transaction_factory("t2")]
            )
            await http_engine.join()
        finally:
            await http_engine.cleanup()
            await http_engine.cancel_pending()

        bodies = [json.loads(request.content) for request in httpx_mock.get_requests()]
        assert [[tx["transactionId"] for tx in body["transactions"]] for body in bodies] == [
            ["t1"],
            ["t2"],
        ]
