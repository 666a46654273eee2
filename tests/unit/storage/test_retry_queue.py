"""
Module: test_retry_queue.py
Description: Unit tests for the durable retry queue.
"""

import json

import pytest

from adcider_attribution.models.batch import AttributionBatch, RetryEntry
from adcider_attribution.storage.retry_queue import RetryQueue


@pytest.fixture
def entries(transaction_factory):
    return [
        RetryEntry(
            batch=AttributionBatch(
                uid="u1",
                bundle_id="com.example.app",
                apple_attribution_token="T" if n == 0 else None,
                transactions=[transaction_factory(f"tx-{n}")]
            ),
            attempt_count=n
        )
        for n in range(3)
    ]


class TestRetryQueue:
    """Test cases for RetryQueue."""

    @pytest.mark.asyncio
    async def test_starts_empty(self, tmp_path):
        queue = RetryQueue(tmp_path / "queue.json")

        assert queue.is_empty
        assert len(queue) == 0
        assert await queue.drain_all() == []

    @pytest.mark.asyncio
    async def test_enqueue_preserves_order(self, tmp_path, entries):
        queue = RetryQueue(tmp_path / "queue.json")
        for entry in entries:
            await queue.enqueue(entry)

        assert list(queue.entries) == entries

    @pytest.mark.asyncio
    async def test_reload_in_fresh_instance(self, tmp_path, entries):
        path = tmp_path / "queue.json"
        queue = RetryQueue(path)
        for entry in entries:
            await queue.enqueue(entry)

        reloaded = RetryQueue(path).load()
        assert reloaded == entries

    @pytest.mark.asyncio
    async def test_file_format(self, tmp_path, entries):
        path = tmp_path / "queue.json"
        await RetryQueue(path).enqueue(entries[0])

        data = json.loads(path.read_text())
        assert len(data) == 1
        assert set(data[0]) == {"batch", "attemptCount", "lastAttempt"}
        assert data[0]["batch"]["uid"] == "u1"
        assert data[0]["batch"]["appleAttributionToken"] == "T"
        assert data[0]["batch"]["transactions"][0]["transactionId"] == "tx-0"
        assert data[0]["batch"]["transactions"][0]["price"] == 0.99

    @pytest.mark.asyncio
    async def test_drain_all_empties_and_persists(self, tmp_path, entries):
        path = tmp_path / "queue.json"
        queue = RetryQueue(path)
        for entry in entries:
            await queue.enqueue(entry)

        drained = await queue.drain_all()

        assert drained == entries
        assert queue.is_empty
        assert json.loads(path.read_text()) == []

    @pytest.mark.asyncio
    async def test_enqueue_after_drain_forms_new_queue(self, tmp_path, entries):
        queue = RetryQueue(tmp_path / "queue.json")
        await queue.enqueue(entries[0])
        await queue.drain_all()

        await queue.enqueue(entries[1])

        assert list(queue.entries) == [entries[1]]

    def test_corrupt_file_loads_empty(self, tmp_path):
        path = tmp_path / "queue.json"
        path.write_text("garbage")

        assert RetryQueue(path).load() == []

    def test_invalid_entries_load_empty(self, tmp_path):
        path = tmp_path / "queue.json"
        path.write_text(json.dumps([{"batch": {"uid": ""}, "attemptCount": -1}]))

        queue = RetryQueue(path)
        assert queue.load() == []
        assert queue.is_empty

    @pytest.mark.asyncio
    async def test_enqueue_rejects_other_types(self, tmp_path):
        with pytest.raises(ValueError, match="RetryEntry"):
            await RetryQueue(tmp_path / "queue.json").enqueue({"batch": {}})

    @pytest.mark.asyncio
    async def test_reset_keeps_file(self, tmp_path, entries):
        path = tmp_path / "queue.json"
        queue = RetryQueue(path)
        await queue.enqueue(entries[0])

        queue.reset()

        assert path.exists()
        assert list(queue.entries) == [entries[0]]


class TestRetryQueueRestore:
    """Test cases for putting drained entries back."""

    @pytest.mark.asyncio
    async def test_restore_after_reset_merges_into_file(self, tmp_path, entries):
        path = tmp_path / "queue.json"
        queue = RetryQueue(path)
        for entry in entries:
            await queue.enqueue(entry)
        drained = await queue.drain_all()
        await queue.enqueue(entries[0].next_attempt())
        queue.reset()

        await queue.restore(drained[1:])

        reloaded = RetryQueue(path).load()
        assert [e.attempt_count for e in reloaded] == [1, 1, 2]
        assert list(queue.entries) == reloaded

    @pytest.mark.asyncio
    async def test_restore_into_loaded_queue(self, tmp_path, entries):
        queue = RetryQueue(tmp_path / "queue.json")
        drained = await queue.drain_all()
        assert drained == []

        await queue.restore(entries)

        assert list(queue.entries) == entries
        assert RetryQueue(queue.path).load() == entries

    @pytest.mark.asyncio
    async def test_restore_nothing_leaves_file_alone(self, tmp_path):
        queue = RetryQueue(tmp_path / "queue.json")

        await queue.restore([])

        assert not queue.path.exists()
