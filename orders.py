"""
Order lifecycle.

Orders for coin shops live in the `order` collection and orders for
full-service shops in `orderformerchant`. Every lookup by id probes both, and
every list view queries both and merges newest first.

Status flow:

    decision -> rider_coming -> at_shop -> in_progress -> out_for_delivery
             -> deliverying -> completed

`cancelled` can be set by the customer. Each transition is one conditional
find_one_and_update filtered on the statuses it may start from, so a repeated
request finds nothing to change instead of double-applying.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from fastapi import HTTPException
from pymongo import ReturnDocument

import database
import wallet
from schemas import Order, OrderForMerchant, OrderItem

logger = logging.getLogger(__name__)

ORDER_COLLECTIONS = ("order", "orderformerchant")
COLLECTION_BY_SHOP_TYPE = {"coin": "order", "full": "orderformerchant"}
MODEL_BY_SHOP_TYPE = {"coin": Order, "full": OrderForMerchant}

TERMINAL_STATUSES = {"completed", "cancelled"}
MERCHANT_ACCEPT_FROM = {"rider_coming", "at_shop"}
MERCHANT_TARGET_STATUSES = {"at_shop", "out_for_delivery", "in_progress", "deliverying", "completed"}

MERCHANT_PENDING = ["decision", "rider_coming"]
MERCHANT_CURRENT = ["at_shop", "in_progress", "out_for_delivery", "deliverying"]
MERCHANT_HISTORY = ["completed", "cancelled"]

# position in the forward flow; out_for_delivery and deliverying are the same leg
STATUS_RANK = {
    "decision": 0,
    "rider_coming": 1,
    "at_shop": 2,
    "in_progress": 3,
    "out_for_delivery": 4,
    "deliverying": 4,
    "completed": 5,
}

HISTORY_LIMIT = 20


def _collection(name: str):
    return database.get_db()[name]


def _merge_newest_first(docs: Iterable[dict], limit: Optional[int] = None) -> List[dict]:
    merged = sorted(docs, key=lambda d: d.get("created_at"), reverse=True)
    if limit:
        merged = merged[:limit]
    return [database.serialize_doc(d) for d in merged]


def _find_in_both(filt: dict, limit: Optional[int] = None) -> List[dict]:
    docs = []
    for name in ORDER_COLLECTIONS:
        cursor = _collection(name).find(filt).sort("created_at", -1)
        if limit:
            cursor = cursor.limit(limit)
        docs.extend(cursor)
    return _merge_newest_first(docs, limit)


def locate_order(order_id: str) -> Tuple[str, dict]:
    """Return (collection name, raw document) or raise 404."""
    _id = database.oid(order_id)
    for name in ORDER_COLLECTIONS:
        doc = _collection(name).find_one({"_id": _id})
        if doc:
            return name, doc
    raise HTTPException(status_code=404, detail="Order not found")


def _transition(name: str, doc: dict, allowed_from: Iterable[str], update: dict) -> dict:
    update = {**update, "updated_at": datetime.now(timezone.utc)}
    updated = _collection(name).find_one_and_update(
        {"_id": doc["_id"], "status": {"$in": list(allowed_from)}},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        logger.warning("Order %s: status %s -> %s rejected", doc["_id"], doc.get("status"), update.get("status"))
        raise HTTPException(
            status_code=400,
            detail=f"Order cannot move from '{doc.get('status')}' to '{update.get('status')}'",
        )
    logger.info("Order %s: %s -> %s", doc["_id"], doc.get("status"), updated.get("status"))
    return database.serialize_doc(updated)


# ----------------------- Create -----------------------
def create_order(user: dict, shop_id: str, items: List[OrderItem], payment_method: str = "cash") -> dict:
    """Price the items against the shop, take wallet payment and insert the order.

    `user` is the serialized user document of the caller.
    """
    if not items:
        raise HTTPException(status_code=400, detail="Order has no items")
    shop = _collection("shop").find_one({"_id": database.oid(shop_id)})
    if not shop:
        raise HTTPException(status_code=404, detail="Shop not found")

    shop_type = shop.get("type", "coin")
    service_total = round(sum(i.price * i.quantity for i in items), 2)
    delivery_fee = float(shop.get("delivery_fee", 0))
    total = round(service_total + delivery_fee, 2)
    if not math.isfinite(total):
        raise HTTPException(status_code=400, detail="Order total is out of range")

    model = MODEL_BY_SHOP_TYPE.get(shop_type, Order)
    order = model(
        user_id=user["id"],
        user_display_name=user.get("display_name") or "Unknown User",
        user_address=user.get("address") or "No address set",
        shop_id=shop_id,
        shop_name=shop.get("name", ""),
        shop_type=shop_type,
        items=items,
        service_total=service_total,
        delivery_fee=delivery_fee,
        total=total,
        payment_method=payment_method or "cash",
        status="decision",
    )

    paid = order.payment_method == "wallet" and total > 0
    if paid:
        wallet.debit_user(user["id"], total, reference=f"shop:{shop_id}")

    name = COLLECTION_BY_SHOP_TYPE.get(shop_type, "order")
    try:
        order_id = database.create_document(name, order)
    except Exception:
        if paid:
            logger.error("Order insert failed after wallet debit, refunding %.2f to user %s", total, user["id"])
            wallet.credit_user(user["id"], total, reference=f"shop:{shop_id}")
        raise

    logger.info("Created order %s in %s for user %s (total %.2f, %s)",
                order_id, name, user["id"], total, order.payment_method)
    return database.serialize_doc(_collection(name).find_one({"_id": database.oid(order_id)}))


# ----------------------- Reads -----------------------
def get_order(order_id: str, user: dict) -> dict:
    """Customers only see their own orders. Riders and merchants work every order."""
    _, doc = locate_order(order_id)
    if user.get("role", "user") == "user" and doc.get("user_id") != user["id"]:
        raise HTTPException(status_code=403, detail="Order does not belong to this user")
    return database.serialize_doc(doc)


def get_active_order(user_id: str) -> Optional[dict]:
    found = _find_in_both({"user_id": user_id, "status": {"$nin": sorted(TERMINAL_STATUSES)}}, limit=1)
    return found[0] if found else None


def get_order_history(user_id: str) -> List[dict]:
    return _find_in_both({"user_id": user_id}, limit=HISTORY_LIMIT)


def get_pending_orders() -> List[dict]:
    """Orders waiting for a rider to pick them up."""
    return _find_in_both({"status": "decision"})


def get_merchant_orders(shop_id: str, statuses: List[str]) -> List[dict]:
    return _find_in_both({"shop_id": shop_id, "status": {"$in": statuses}})


# ----------------------- Transitions -----------------------
def rider_accept_order(order_id: str, rider_id: str) -> dict:
    name, doc = locate_order(order_id)
    return _transition(name, doc, ["decision"], {"status": "rider_coming", "rider_id": rider_id})


def _check_shop(doc: dict, shop_id: str) -> None:
    if doc.get("shop_id") != shop_id:
        logger.warning("Order %s belongs to shop %s, not %s", doc["_id"], doc.get("shop_id"), shop_id)
        raise HTTPException(status_code=403, detail="Order does not belong to this shop")


def merchant_accept_order(order_id: str, shop_id: str) -> dict:
    name, doc = locate_order(order_id)
    _check_shop(doc, shop_id)
    return _transition(name, doc, MERCHANT_ACCEPT_FROM, {"status": "at_shop"})


def merchant_update_order_status(order_id: str, shop_id: str, status: str) -> dict:
    if status not in MERCHANT_TARGET_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status '{status}'")
    name, doc = locate_order(order_id)
    _check_shop(doc, shop_id)
    # never backwards, never out of a terminal status
    allowed_from = [s for s, rank in STATUS_RANK.items()
                    if s not in TERMINAL_STATUSES and rank <= STATUS_RANK[status]]
    if doc.get("status") == status:
        allowed_from.append(status)
    return _transition(name, doc, allowed_from, {"status": status})


def update_order_status(order_id: str, user_id: str, status: str) -> dict:
    """Customer-side overwrite of the status of one of their own orders."""
    name, doc = locate_order(order_id)
    if doc.get("user_id") != user_id:
        raise HTTPException(status_code=403, detail="Order does not belong to this user")
    updated = _collection(name).find_one_and_update(
        {"_id": doc["_id"]},
        {"$set": {"status": status, "updated_at": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Order %s: customer set status %s -> %s", doc["_id"], doc.get("status"), status)
    return database.serialize_doc(updated)
