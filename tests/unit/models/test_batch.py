"""
Module: test_batch.py
Description: Unit tests for AttributionBatch, PendingBatch and RetryEntry.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from adcider_attribution.models.batch import AttributionBatch, PendingBatch, RetryEntry


class TestAttributionBatch:
    """Test cases for the outgoing payload model."""

    def test_uid_required(self):
        with pytest.raises(ValidationError):
            AttributionBatch(uid="")

    def test_is_empty(self, sample_transaction):
        assert AttributionBatch(uid="u1").is_empty
        assert not AttributionBatch(uid="u1", apple_attribution_token="T").is_empty
        assert not AttributionBatch(uid="u1", transactions=[sample_transaction]).is_empty

    def test_to_wire(self, sample_transactions):
        batch = AttributionBatch(
            uid="u1",
            bundle_id="com.example.app",
            transactions=sample_transactions
        )

        wire = batch.to_wire()
        assert list(wire) == ["uid", "bundleId", "appleAttributionToken", "transactions"]
        assert wire["appleAttributionToken"] is None
        assert [tx["transactionId"] for tx in wire["transactions"]] == batch.transaction_ids


class TestPendingBatch:
    """Test cases for fragment merging and post-delivery discard."""

    def test_merge_overwrites_uid_and_appends(self, transaction_factory):
        pending = PendingBatch()
        pending.merge("u1", "T1", [transaction_factory("a")])
        pending.merge("u2", None, [transaction_factory("b")])

        assert pending.uid == "u2"
        assert pending.apple_attribution_token == "T1"
        assert [tx.transaction_id for tx in pending.transactions] == ["a", "b"]

    def test_merge_token_overwrites_when_given(self):
        pending = PendingBatch()
        pending.merge("u1", "T1", [])
        pending.merge("u1", "T2", [])

        assert pending.apple_attribution_token == "T2"

    def test_discard_removes_only_sent_fragments(self, transaction_factory):
        pending = PendingBatch()
        pending.merge("u1", "T", [transaction_factory("a"), transaction_factory("b")])
        sent = AttributionBatch(uid="u1", apple_attribution_token="T", transactions=[transaction_factory("a")])

        pending.discard(sent)

        assert pending.apple_attribution_token is None
        assert [tx.transaction_id for tx in pending.transactions] == ["b"]
        assert pending.uid == "u1"

    def test_discard_keeps_newer_token(self):
        pending = PendingBatch()
        pending.merge("u1", "T2", [])

        pending.discard(AttributionBatch(uid="u1", apple_attribution_token="T1"))

        assert pending.apple_attribution_token == "T2"

    def test_discard_everything_clears_uid(self, sample_transaction):
        pending = PendingBatch()
        pending.merge("u1", "T", [sample_transaction])

        pending.discard(AttributionBatch(uid="u1", apple_attribution_token="T", transactions=[sample_transaction]))

        assert pending.is_empty
        assert pending.uid is None


class TestRetryEntry:
    """Test cases for the persisted retry entry."""

    def test_defaults(self):
        entry = RetryEntry(batch=AttributionBatch(uid="u1", apple_attribution_token="T"))

        assert entry.attempt_count == 0
        assert entry.last_attempt.tzinfo is not None

    def test_attempt_count_non_negative(self):
        with pytest.raises(ValidationError):
            RetryEntry(batch=AttributionBatch(uid="u1"), attempt_count=-1)

    def test_next_attempt(self, sample_transaction):
        earlier = datetime(2024, 1, 1, tzinfo=timezone.utc)
        entry = RetryEntry(
            batch=AttributionBatch(uid="u1", transactions=[sample_transaction]),
            attempt_count=1,
            last_attempt=earlier
        )

        retried = entry.next_attempt()

        assert retried.attempt_count == 2
        assert retried.last_attempt > earlier
        assert retried.batch == entry.batch
        assert entry.attempt_count == 1

    def test_json_aliases(self):
        entry = RetryEntry(
            batch=AttributionBatch(uid="u1", apple_attribution_token="T"),
            attempt_count=2,
            last_attempt=datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
        )

        data = entry.model_dump(mode="json", by_alias=True)
        assert data["attemptCount"] == 2
        assert data["lastAttempt"] == "2024-06-01T08:00:00Z"
        assert data["batch"]["appleAttributionToken"] == "T"

        assert RetryEntry.model_validate(data) == entry
