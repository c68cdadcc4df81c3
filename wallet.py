"""
Wallet balances for users and shops.

The `balance` field on a user or shop document is the materialized total;
every change to it goes through _apply() which does a single `$inc` and
appends a signed entry to the `transaction` collection. Debits carry a
`balance >= amount` filter so two concurrent debits can never overdraw.
"""
import logging
import math
from typing import Optional

from fastapi import HTTPException
from pymongo import ReturnDocument

import database
from schemas import Transaction

logger = logging.getLogger(__name__)

ACCOUNT_COLLECTIONS = {"user": "user", "shop": "shop"}


def _require_positive(amount: float) -> None:
    if amount is None or not math.isfinite(amount) or amount <= 0:
        raise HTTPException(status_code=400, detail="Amount must be greater than 0")


def _record(account_type: str, account_id: str, amount: float, kind: str,
            balance_after: float, reference: Optional[str] = None) -> str:
    entry = Transaction(
        account_type=account_type,
        account_id=account_id,
        amount=amount,
        kind=kind,
        reference=reference,
        balance_after=balance_after,
    )
    return database.create_document("transaction", entry)


def _apply(account_type: str, account_id: str, amount: float, kind: str,
           reference: Optional[str] = None) -> float:
    """Add a signed amount to an account balance. Returns the new balance."""
    coll = database.get_db()[ACCOUNT_COLLECTIONS[account_type]]
    _id = database.oid(account_id)
    filt = {"_id": _id}
    if amount < 0:
        filt["balance"] = {"$gte": -amount}
    doc = coll.find_one_and_update(
        filt,
        {"$inc": {"balance": amount}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        if coll.count_documents({"_id": _id}, limit=1) == 0:
            raise HTTPException(status_code=404, detail=f"{account_type.capitalize()} not found")
        logger.warning("Rejected %s of %s on %s %s: insufficient balance", kind, -amount, account_type, account_id)
        raise HTTPException(status_code=400, detail="Insufficient balance")
    balance = doc.get("balance", 0)
    _record(account_type, account_id, amount, kind, balance, reference)
    logger.info("%s %s %s: %+.2f -> balance %.2f", kind, account_type, account_id, amount, balance)
    return balance


def get_balance(account_type: str, account_id: str) -> float:
    doc = database.get_db()[ACCOUNT_COLLECTIONS[account_type]].find_one(
        {"_id": database.oid(account_id)}, {"balance": 1}
    )
    if not doc:
        raise HTTPException(status_code=404, detail=f"{account_type.capitalize()} not found")
    return doc.get("balance", 0)


def deposit(shop_id: str, amount: float) -> float:
    _require_positive(amount)
    return _apply("shop", shop_id, amount, "deposit")


def withdraw(shop_id: str, amount: float) -> float:
    _require_positive(amount)
    return _apply("shop", shop_id, -amount, "withdraw")


def debit_user(user_id: str, amount: float, reference: Optional[str] = None) -> float:
    _require_positive(amount)
    return _apply("user", user_id, -amount, "order_payment", reference)


def credit_user(user_id: str, amount: float, kind: str = "order_refund", reference: Optional[str] = None) -> float:
    _require_positive(amount)
    return _apply("user", user_id, amount, kind, reference)


def history(account_type: str, account_id: str, limit: int = 50):
    return database.get_documents(
        "transaction",
        {"account_type": account_type, "account_id": account_id},
        limit=limit,
        sort=[("created_at", -1)],
    )
