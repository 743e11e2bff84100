from datetime import datetime

import pymongo
from beanie import Document, PydanticObjectId
from pydantic import Field
from pymongo import IndexModel


class CreditLedgerEntry(Document):
    """Append-only record of one balance change."""
    user_id: PydanticObjectId
    amount: int  # positive = credit, negative = debit
    balance_after: int
    reason: str  # purchase, remove_background, upscale, refund, signup_bonus
    reference_type: str | None = None  # project, polar_order
    reference_id: str | None = None
    idempotency_key: str | None = None
    status: str = "applied"  # keyed credits stay "pending" until the balance has moved
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "credit_ledger"
        keep_nulls = False  # unset idempotency_key must stay out of the sparse unique index
        indexes = [
            [("user_id", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)],
            IndexModel([("idempotency_key", pymongo.ASCENDING)], unique=True, sparse=True),
        ]
