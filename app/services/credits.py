"""Credits ledger: guarded debits, idempotent credits, append-only history."""

from dataclasses import dataclass
from typing import Any

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import Inc, Push
from pymongo.errors import DuplicateKeyError

from app.core.config import get_settings
from app.core.exceptions import InsufficientCreditsError, InvalidAmountError, UserNotFoundError
from app.core.logging import get_logger
from app.core.pagination import paginate
from app.models.credit_ledger import CreditLedgerEntry
from app.models.user import User

log = get_logger(__name__)

REASONS = ("purchase", "remove_background", "upscale", "refund", "signup_bonus")

# Keyed credits remembered on the user document; only a claim this far back could be replayed
APPLIED_KEYS_KEPT = 500


@dataclass
class LedgerResult:
    entry: CreditLedgerEntry
    balance: int
    duplicate: bool = False


def _check_amount(amount: Any) -> int:
    # bool is an int subclass; True must not pass as 1 credit
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount)
    return amount


def _check_reason(reason: str) -> None:
    if reason not in REASONS:
        raise ValueError(f"Invalid ledger reason: {reason}")


async def get_balance(user_id: PydanticObjectId) -> int:
    user = await User.get(user_id)
    if not user:
        raise UserNotFoundError(user_id)
    return user.credits


async def debit(
    user_id: PydanticObjectId,
    amount: int,
    reason: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
) -> LedgerResult:
    """
    Subtract amount if and only if the balance covers it.
    The check and the decrement are a single conditional update on the user document,
    so overlapping debits for one user cannot overdraw it.
    """
    amount = _check_amount(amount)
    _check_reason(reason)
    updated = await User.find_one(User.id == user_id, User.credits >= amount).update(
        Inc({User.credits: -amount}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated is None:
        user = await User.get(user_id)
        if not user:
            raise UserNotFoundError(user_id)
        log.warning("credits_insufficient", user_id=str(user_id), required=amount, balance=user.credits)
        raise InsufficientCreditsError(amount, user.credits)

    entry = CreditLedgerEntry(
        user_id=user_id,
        amount=-amount,
        balance_after=updated.credits,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    await entry.insert()
    log.info("credits_debited", user_id=str(user_id), amount=amount, reason=reason, balance=updated.credits)
    return LedgerResult(entry=entry, balance=updated.credits)


async def _apply_claim(entry: CreditLedgerEntry) -> LedgerResult:
    """
    Move the balance for a pending keyed entry, then mark it applied.
    The $inc records the key on the user in the same update, so it lands at most once per key
    however many times this runs.
    """
    key = entry.idempotency_key
    updated = await User.find_one(
        User.id == entry.user_id,
        {"applied_credit_keys": {"$ne": key}},
    ).update(
        Inc({User.credits: entry.amount}),
        Push({User.applied_credit_keys: {"$each": [key], "$slice": -APPLIED_KEYS_KEPT}}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated is None:
        # Balance already moved by an earlier attempt that died before marking the entry
        balance = await get_balance(entry.user_id)
        log.info("credits_claim_recovered", user_id=str(entry.user_id), idempotency_key=key, balance=balance)
    else:
        balance = updated.credits
        log.info("credits_added", user_id=str(entry.user_id), amount=entry.amount, reason=entry.reason, balance=balance)

    entry.balance_after = balance
    entry.status = "applied"
    await entry.save()
    return LedgerResult(entry=entry, balance=balance, duplicate=updated is None)


async def credit(
    user_id: PydanticObjectId,
    amount: int,
    reason: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    idempotency_key: str | None = None,
) -> LedgerResult:
    """
    Add amount to the balance.
    With an idempotency_key the ledger entry is inserted first as a pending claim (unique index
    on the key). A replay of an applied claim returns it flagged duplicate without touching the
    balance; a replay of a pending one finishes it.
    """
    amount = _check_amount(amount)
    _check_reason(reason)
    if not await User.get(user_id):
        raise UserNotFoundError(user_id)

    if not idempotency_key:
        updated = await User.find_one(User.id == user_id).update(
            Inc({User.credits: amount}),
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        if updated is None:
            raise UserNotFoundError(user_id)
        entry = CreditLedgerEntry(
            user_id=user_id,
            amount=amount,
            balance_after=updated.credits,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        await entry.insert()
        log.info("credits_added", user_id=str(user_id), amount=amount, reason=reason, balance=updated.credits)
        return LedgerResult(entry=entry, balance=updated.credits)

    entry = await CreditLedgerEntry.find_one(CreditLedgerEntry.idempotency_key == idempotency_key)
    if entry is None:
        entry = CreditLedgerEntry(
            user_id=user_id,
            amount=amount,
            balance_after=0,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
            idempotency_key=idempotency_key,
            status="pending",
        )
        try:
            await entry.insert()
        except DuplicateKeyError:
            # Concurrent delivery of the same event claimed the key first
            entry = await CreditLedgerEntry.find_one(CreditLedgerEntry.idempotency_key == idempotency_key)

    if entry.status == "applied":
        log.info("credits_duplicate", user_id=str(user_id), idempotency_key=idempotency_key)
        return LedgerResult(entry=entry, balance=await get_balance(entry.user_id), duplicate=True)
    return await _apply_claim(entry)


async def list_entries(user_id: PydanticObjectId, limit: int = 50, offset: int = 0) -> list[CreditLedgerEntry]:
    """Ledger entries for user, newest first."""
    limit, offset = paginate(limit, offset)
    return (
        await CreditLedgerEntry.find(CreditLedgerEntry.user_id == user_id, {"status": {"$ne": "pending"}})
        .sort(-CreditLedgerEntry.created_at, -CreditLedgerEntry.id)
        .skip(offset)
        .limit(limit)
        .to_list()
    )


def get_pricing() -> dict[str, int]:
    s = get_settings()
    return {
        "remove_background": s.credits_per_background_removal,
        "upscale": s.credits_per_upscale,
        "object_crop": 0,
    }
