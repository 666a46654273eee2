"""
Module: batch.py
Description: Batch models for attribution delivery.

Defines the outgoing AttributionBatch payload, the mutable PendingBatch
the engine assembles between flushes, and the persisted RetryEntry.

Key Components:
- AttributionBatch: immutable wire payload {uid, bundleId, appleAttributionToken, transactions}
- PendingBatch: fragments accumulated before the next flush
- RetryEntry: a failed batch with its attempt counter

Dependencies: pydantic, datetime, typing
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from adcider_attribution.models.transaction import TransactionRecord


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttributionBatch(BaseModel):
    """
    One outgoing payload: an installation id, an optional attribution
    token and zero or more transactions.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    uid: str = Field(..., min_length=1, description="Installation identifier")
    bundle_id: Optional[str] = Field(default=None, alias="bundleId")
    apple_attribution_token: Optional[str] = Field(default=None, alias="appleAttributionToken")
    transactions: List[TransactionRecord] = Field(default_factory=list)

    @property
    def transaction_ids(self) -> List[str]:
        return [tx.transaction_id for tx in self.transactions]

    @property
    def is_empty(self) -> bool:
        """True when there is neither a token nor a transaction to send."""
        return self.apple_attribution_token is None and not self.transactions

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to the JSON body posted to the collector."""
        return self.model_dump(mode="json", by_alias=True)


class PendingBatch(BaseModel):
    """
    Fragments queued since the last successful flush.

    Owned exclusively by the batching engine and never persisted.
    """

    uid: Optional[str] = None
    apple_attribution_token: Optional[str] = None
    transactions: List[TransactionRecord] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.apple_attribution_token is None and not self.transactions

    def merge(
        self,
        uid: str,
        apple_attribution_token: Optional[str],
        transactions: Iterable[TransactionRecord]
    ) -> None:
        """
        Merge a fragment: uid overwrites, the token overwrites only when
        given, transactions append.
        """
        self.uid = uid
        if apple_attribution_token is not None:
            self.apple_attribution_token = apple_attribution_token
        self.transactions.extend(transactions)

    def discard(self, batch: AttributionBatch) -> None:
        """
        Remove what a delivered batch carried.

        Fragments merged after the batch was built stay pending. The uid is
        kept while anything is left to send.
        """
        if (
            batch.apple_attribution_token is not None
            and self.apple_attribution_token == batch.apple_attribution_token
        ):
            self.apple_attribution_token = None

        sent = set(batch.transaction_ids)
        if sent:
            self.transactions = [
                tx for tx in self.transactions if tx.transaction_id not in sent
            ]

        if self.is_empty:
            self.uid = None

    def clear(self) -> None:
        self.uid = None
        self.apple_attribution_token = None
        self.transactions = []


class RetryEntry(BaseModel):
    """
    A batch whose delivery failed, awaiting the next retry sweep.

    Attributes:
        batch: Snapshot of the batch at failure time
        attempt_count: Failed retries so far, not counting the initial send
        last_attempt: Time of the most recent failed attempt
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    batch: AttributionBatch
    attempt_count: int = Field(default=0, ge=0, alias="attemptCount")
    last_attempt: datetime = Field(default_factory=utcnow, alias="lastAttempt")

    def next_attempt(self, batch: Optional[AttributionBatch] = None) -> "RetryEntry":
        """Return a copy recording one more failed attempt made just now."""
        return RetryEntry(
            batch=batch if batch is not None else self.batch,
            attempt_count=self.attempt_count + 1,
            last_attempt=utcnow()
        )
