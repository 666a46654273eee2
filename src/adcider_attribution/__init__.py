"""
AdCider Attribution SDK.

Reports app installs and in-app purchases to the AdCider collector with
durable, deduplicated, retried delivery.
"""

from .errors import AdCiderError, ConfigurationError, InitializationError, PersistenceError
from .models import (
    AttributionBatch,
    ProductType,
    RetryEntry,
    TransactionRecord,
    classify_transaction_type,
)
from .sdk import AdCiderAttribution

__version__ = "1.0.0"

__all__ = [
    "AdCiderAttribution",
    "AdCiderError",
    "AttributionBatch",
    "ConfigurationError",
    "InitializationError",
    "PersistenceError",
    "ProductType",
    "RetryEntry",
    "TransactionRecord",
    "classify_transaction_type",
]
