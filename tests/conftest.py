"""
Module: conftest.py
Description: Shared pytest fixtures for attribution SDK tests.

Provides test settings pointing at a temporary storage directory,
sample transactions, a scripted delivery client standing in for the
collector, and a batching engine wired to all of them.
"""

import asyncio
import random
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

import pytest
import pytest_asyncio

from adcider_attribution.config.settings import Settings
from adcider_attribution.delivery.engine import BatchingEngine
from adcider_attribution.delivery.retry import ExponentialJitterBackoff
from adcider_attribution.models.batch import AttributionBatch
from adcider_attribution.models.transaction import TransactionRecord
from adcider_attribution.storage.retry_queue import RetryQueue
from adcider_attribution.storage.sent_ids import SentIdLedger


class ScriptedDeliveryClient:
    """
    Delivery client double.

    Returns scripted results in order, then the default. Every batch it
    is asked to send is recorded. When gate is set, sends block until
    the gate event is released.
    """

    def __init__(self, results: Optional[List[bool]] = None, default: bool = True):
        self.results = list(results or [])
        self.default = default
        self.sent: List[AttributionBatch] = []
        self.api_key: Optional[str] = None
        self.gate: Optional[asyncio.Event] = None

    def configure(self, api_key: str) -> None:
        self.api_key = api_key

    async def send(self, batch: AttributionBatch) -> bool:
        self.sent.append(batch)
        if self.gate is not None:
            await self.gate.wait()
        return self.results.pop(0) if self.results else self.default

    @property
    def sent_ids(self) -> List[str]:
        return [tid for batch in self.sent for tid in batch.transaction_ids]


def make_transaction(transaction_id: str, **overrides) -> TransactionRecord:
    """Build a TransactionRecord with realistic defaults."""
    fields = {
        "transaction_id": transaction_id,
        "product_id": "com.example.app.coins_100",
        "purchase_date": datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc),
        "quantity": 1,
        "price": Decimal("0.99"),
        "currency_code": "USD",
        "classification": "consumable",
    }
    fields.update(overrides)
    return TransactionRecord(**fields)


@pytest.fixture
def test_settings(tmp_path):
    """
    Provide test configuration settings.

    Storage lives under the per-test tmp_path; .env loading is disabled
    for predictable tests.
    """
    return Settings(
        _env_file=None,
        storage_dir=tmp_path / "adcider",
        backend_url="https://collector.test/app-api/attribution",
        bundle_id="com.example.app",
        log_level="DEBUG",
        shutdown_timeout=2.0,
    )


@pytest.fixture
def transaction_factory():
    """Provide make_transaction for tests that need their own ids."""
    return make_transaction


@pytest.fixture
def sample_transaction():
    return make_transaction("2000000512345678")


@pytest.fixture
def sample_transactions():
    return [make_transaction(f"20000005{n:08d}") for n in range(1, 4)]


@pytest.fixture
def delivery_client():
    return ScriptedDeliveryClient()


@pytest.fixture
def sent_ids(test_settings):
    return SentIdLedger(test_settings.sent_ids_path)


@pytest.fixture
def retry_queue(test_settings):
    return RetryQueue(test_settings.retry_queue_path)


@pytest.fixture
def backoff():
    """Deterministic backoff long enough that sweeps only run when a test calls them."""
    return ExponentialJitterBackoff(base=600.0, maximum=3600.0, rng=random.Random(7))


@pytest_asyncio.fixture
async def engine(delivery_client, sent_ids, retry_queue, backoff, test_settings):
    """
    Provide a BatchingEngine wired to the scripted client and temp storage.

    Teardown cancels the retry timer and any task still running.
    """
    engine = BatchingEngine(
        client=delivery_client,
        sent_ids=sent_ids,
        retry_queue=retry_queue,
        backoff=backoff,
        max_attempts=3,
        bundle_id=test_settings.bundle_id,
    )
    engine.configure("ak_test_123")

    yield engine

    await engine.cleanup()
    await engine.cancel_pending()
