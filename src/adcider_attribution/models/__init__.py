"""
Module: models
Description: Package initialization for Pydantic data models.

This package contains all data models used by the attribution SDK:
- TransactionRecord: one purchase event
- AttributionBatch: outgoing delivery payload
- PendingBatch: fragments awaiting the next flush
- RetryEntry: persisted failed batch

All models are exported here for convenient importing.
"""

from .batch import AttributionBatch, PendingBatch, RetryEntry
from .transaction import ProductType, TransactionRecord, classify_transaction_type

__all__ = [
    "AttributionBatch",
    "PendingBatch",
    "RetryEntry",
    "ProductType",
    "TransactionRecord",
    "classify_transaction_type",
]
