"""
Module: transaction.py
Description: Purchase transaction record reported to the collector.

Defines the immutable TransactionRecord and the helper that derives the
transaction classification from a product's type.

Key Components:
- TransactionRecord: one purchase event, wire-compatible via camelCase aliases
- ProductType: kinds of in-app products
- classify_transaction_type(): product kind to classification string

Dependencies: pydantic, datetime, decimal, enum, typing
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

# Exact in memory; a JSON number on the wire. Shortest float repr keeps
# every price of up to 15 significant digits unchanged.
Price = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class ProductType(str, Enum):
    """Kinds of in-app products a transaction can be for."""

    CONSUMABLE = "consumable"
    NON_CONSUMABLE = "non_consumable"
    AUTO_RENEWABLE = "auto_renewable"
    NON_RENEWABLE = "non_renewable"


def classify_transaction_type(
    product_type: Optional[ProductType],
    has_introductory_offer: bool = False
) -> str:
    """
    Classify a transaction by the product it purchased.

    Args:
        product_type: Product kind, or None when the product is unknown
        has_introductory_offer: Whether the subscription starts with an
            introductory offer

    Returns:
        One of consumable, non-consumable, subscription, trial or unknown

    Example:
        >>> classify_transaction_type(ProductType.AUTO_RENEWABLE, has_introductory_offer=True)
        'trial'
    """
    if product_type is None:
        return "unknown"
    if product_type == ProductType.CONSUMABLE:
        return "consumable"
    if product_type == ProductType.NON_CONSUMABLE:
        return "non-consumable"
    if product_type in (ProductType.AUTO_RENEWABLE, ProductType.NON_RENEWABLE):
        return "trial" if has_introductory_offer else "subscription"
    return "unknown"


class TransactionRecord(BaseModel):
    """
    One purchase transaction event.

    Only transaction_id carries meaning for delivery: it is the
    deduplication key. Every other field is passed through to the
    collector unmodified, whitespace included.

    Attributes:
        transaction_id: Unique transaction identifier
        product_id: Purchased product identifier
        purchase_date: When the purchase happened
        quantity: Purchased quantity
        price: Price paid, if known
        currency_code: ISO 4217 currency code, if known
        original_transaction_id: Identifier of the original purchase for renewals
        app_account_token: Account token attached by the app at purchase
        is_upgraded: Whether the subscription was upgraded
        revocation_date: When the purchase was revoked, if it was
        revocation_reason: Human-readable revocation reason
        classification: consumable, non-consumable, subscription, trial or unknown
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    transaction_id: str = Field(..., alias="transactionId", min_length=1)
    product_id: str = Field(..., alias="productID")
    purchase_date: datetime = Field(..., alias="purchaseDate")
    quantity: int = Field(default=1, ge=0)
    price: Optional[Price] = None
    currency_code: Optional[str] = Field(default=None, alias="currencyCode")
    original_transaction_id: Optional[str] = Field(default=None, alias="originalTransactionID")
    app_account_token: Optional[str] = Field(default=None, alias="appAccountToken")
    is_upgraded: bool = Field(default=False, alias="isUpgraded")
    revocation_date: Optional[datetime] = Field(default=None, alias="revocationDate")
    revocation_reason: Optional[str] = Field(default=None, alias="revocationReason")
    classification: str = Field(default="unknown", alias="type")
