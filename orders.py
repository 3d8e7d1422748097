"""
Checkout and the order lifecycle.

Order status is a small state machine:

    PENDING -> CONFIRMED -> PROCESSING -> SHIPPED -> DELIVERED
       \\            \\
        +------------+--> CANCELLED

Every status change is a conditional update on the status the caller saw,
so two racing updates can't both apply and a cancelled order gives its stock
back exactly once.

Checkout reserves stock for all lines first and then writes the order. If
the write fails the reservations are released, so an order never exists
without its stock having been taken and stock is never taken for an order
that doesn't exist.
"""
import logging
import uuid
from collections import OrderedDict
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from bson.objectid import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

import inventory
from database import create_document, find_by_id, get_documents, to_object_id, utcnow
from errors import BookUnavailable, InsufficientStock, InvalidTransition, NotFoundError, OrderNotCancellable
from pricing import calculate_totals, line_total, to_money
from schemas import Address, Order as OrderSchema, OrderItem, StatusEntry

logger = logging.getLogger(__name__)

DEFAULT_DELIVERY_DAYS = 7


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

CANCELLABLE = {OrderStatus.PENDING, OrderStatus.CONFIRMED}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in TRANSITIONS[current]


# ----------------------- Checkout -----------------------

def _fold_lines(items: Iterable[Tuple[str, int]]) -> "OrderedDict[str, int]":
    lines: "OrderedDict[str, int]" = OrderedDict()
    for book_id, quantity in items:
        lines[book_id] = lines.get(book_id, 0) + quantity
    return lines


def _price_lines(db: Database, lines: "OrderedDict[str, int]") -> List[OrderItem]:
    order_items = []
    for book_id, quantity in lines.items():
        book = find_by_id(db, "book", book_id)
        if not book or book.get("status") != "ACTIVE":
            raise BookUnavailable(book_id)
        if book.get("stock", 0) < quantity:
            raise InsufficientStock(book_id, book.get("stock", 0), book.get("title"))
        order_items.append(OrderItem(
            book_id=str(book["_id"]),
            title=book["title"],
            quantity=quantity,
            price=float(to_money(book["price"])),
            total_price=float(line_total(book["price"], quantity)),
        ))
    return order_items


def create_order(
    db: Database,
    user_id: str,
    items: Iterable[Tuple[str, int]],
    shipping_address: Address,
    payment_method: str,
    billing_address: Optional[Address] = None,
    discount: float = 0,
    notes: Optional[str] = None,
    payment_intent_id: Optional[str] = None,
    clear_cart: bool = False,
    idempotency_key: Optional[str] = None,
) -> Tuple[dict, bool]:
    """Place an order. Returns (order, created).

    created is False when idempotency_key matches an order this user already
    placed; that order is returned untouched and no stock moves.
    """
    if idempotency_key:
        key = f"{user_id}:{idempotency_key}"
        existing = db["order"].find_one({"idempotency_key": key})
        if existing:
            logger.info("Replaying order %s for idempotency key %s", existing["_id"], idempotency_key)
            return existing, False
    else:
        key = f"{user_id}:{uuid.uuid4().hex}"

    order_items = _price_lines(db, _fold_lines(items))
    totals = calculate_totals(((item.price, item.quantity) for item in order_items), discount)
    order = OrderSchema(
        user_id=user_id,
        items=order_items,
        subtotal=float(totals.subtotal),
        tax=float(totals.tax),
        shipping=float(totals.shipping),
        discount=float(totals.discount),
        total_amount=float(totals.total),
        status=OrderStatus.PENDING.value,
        status_history=[StatusEntry(status=OrderStatus.PENDING.value, timestamp=utcnow(), note="Order placed")],
        payment_method=payment_method,
        payment_intent_id=payment_intent_id,
        shipping_address=shipping_address,
        billing_address=billing_address or shipping_address,
        notes=notes,
        idempotency_key=key,
    )

    reserved = inventory.reserve(db, [(item.book_id, item.quantity) for item in order_items])
    try:
        order_id = create_document(db, "order", order)
    except Exception:
        logger.warning("Order write failed for user %s, releasing reserved stock", user_id)
        inventory.release(db, reserved)
        if idempotency_key:
            existing = db["order"].find_one({"idempotency_key": key})
            if existing:
                return existing, False
        raise

    if clear_cart:
        db["cart"].update_one(
            {"user_id": user_id},
            {"$set": {"items": [], "total_items": 0, "total_price": 0, "updated_at": utcnow()}},
        )

    logger.info("Order %s placed by user %s for %.2f", order_id, user_id, totals.total)
    return db["order"].find_one({"_id": ObjectId(order_id)}), True


# ----------------------- Lifecycle -----------------------

def _apply_transition(db: Database, order: dict, new: OrderStatus, note: str = "",
                      extra: Optional[dict] = None) -> dict:
    now = utcnow()
    updated = db["order"].find_one_and_update(
        {"_id": order["_id"], "status": order["status"]},
        {
            "$set": {"status": new.value, "updated_at": now, **(extra or {})},
            "$push": {"status_history": {"status": new.value, "timestamp": now, "note": note or ""}},
        },
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        fresh = db["order"].find_one({"_id": order["_id"]})
        raise InvalidTransition(fresh["status"] if fresh else order["status"], new.value)
    logger.info("Order %s: %s -> %s", order["_id"], order["status"], new.value)
    return updated


def update_status(db: Database, order: dict, new_status: OrderStatus, note: str = "") -> dict:
    current = OrderStatus(order["status"])
    if not can_transition(current, new_status):
        raise InvalidTransition(current.value, new_status.value)
    if new_status is OrderStatus.CANCELLED:
        return cancel_order(db, order, note)

    extra = {}
    if new_status is OrderStatus.DELIVERED:
        extra["actual_delivery"] = utcnow()
    return _apply_transition(db, order, new_status, note, extra)


def cancel_order(db: Database, order: dict, reason: str = "") -> dict:
    if OrderStatus(order["status"]) not in CANCELLABLE:
        raise OrderNotCancellable(order["status"])

    extra = {"cancellation_reason": reason or None}
    if order.get("payment_status") == "PAID":
        extra["payment_status"] = "REFUNDED"
    try:
        updated = _apply_transition(db, order, OrderStatus.CANCELLED, reason, extra)
    except InvalidTransition as exc:
        raise OrderNotCancellable(exc.current)

    inventory.release(db, [(item["book_id"], item["quantity"]) for item in order["items"]])
    logger.info("Order %s cancelled, stock restored for %d line(s)", order["_id"], len(order["items"]))
    return updated


def add_tracking(db: Database, order: dict, tracking_number: str,
                 estimated_delivery: Optional[datetime] = None) -> dict:
    current = OrderStatus(order["status"])
    if not can_transition(current, OrderStatus.SHIPPED):
        raise InvalidTransition(current.value, OrderStatus.SHIPPED.value)
    eta = estimated_delivery or utcnow() + timedelta(days=DEFAULT_DELIVERY_DAYS)
    return _apply_transition(
        db, order, OrderStatus.SHIPPED, f"Tracking number {tracking_number}",
        {"tracking_number": tracking_number, "estimated_delivery": eta},
    )


# ----------------------- Access -----------------------

def get_order(db: Database, order_id: str) -> dict:
    order = find_by_id(db, "order", order_id)
    if not order:
        raise NotFoundError("Order", order_id)
    return order


def seller_book_ids(db: Database, seller_id: str) -> List[str]:
    return [str(b["_id"]) for b in db["book"].find({"seller_id": seller_id}, {"_id": 1})]


def sells_in_order(db: Database, order: dict, seller_id: str) -> bool:
    ids = [to_object_id(item["book_id"]) for item in order["items"]]
    return db["book"].find_one({"_id": {"$in": ids}, "seller_id": seller_id}) is not None


def can_manage(db: Database, order: dict, user: dict) -> bool:
    """Admins manage every order, sellers the orders holding their books."""
    if user.get("role") == "ADMIN":
        return True
    return user.get("role") == "SELLER" and sells_in_order(db, order, user["id"])


def can_view(order: dict, user: dict) -> bool:
    return user.get("role") == "ADMIN" or order["user_id"] == user["id"]


# ----------------------- Queries -----------------------

def build_filter(status: Optional[str] = None, payment_status: Optional[str] = None,
                 user_id: Optional[str] = None, start_date: Optional[datetime] = None,
                 end_date: Optional[datetime] = None) -> dict:
    filt = {}
    if status:
        filt["status"] = status
    if payment_status:
        filt["payment_status"] = payment_status
    if user_id:
        filt["user_id"] = user_id
    if start_date and end_date:
        filt["created_at"] = {"$gte": start_date, "$lte": end_date}
    return filt


def list_orders(db: Database, filt: dict, skip: int = 0, limit: int = 20) -> Tuple[list, int]:
    orders = get_documents(db, "order", filt, sort=[("created_at", DESCENDING)], skip=skip, limit=limit)
    return orders, db["order"].count_documents(filt)


def orders_for_seller(db: Database, seller_id: str, skip: int = 0, limit: int = 10) -> Tuple[list, int]:
    filt = {"items.book_id": {"$in": seller_book_ids(db, seller_id)}}
    return list_orders(db, filt, skip, limit)


def order_stats(db: Database, filt: dict) -> dict:
    totals = list(db["order"].aggregate([
        {"$match": filt},
        {"$group": {
            "_id": None,
            "total_orders": {"$sum": 1},
            "total_revenue": {"$sum": "$total_amount"},
            "average_order_value": {"$avg": "$total_amount"},
        }},
    ]))
    items = list(db["order"].aggregate([
        {"$match": filt},
        {"$unwind": "$items"},
        {"$group": {"_id": None, "total_items": {"$sum": "$items.quantity"}}},
    ]))
    breakdown = db["order"].aggregate([
        {"$match": filt},
        {"$group": {"_id": "$status", "count": {"$sum": 1}}},
    ])
    recent = get_documents(db, "order", filt, sort=[("created_at", DESCENDING)], limit=5)

    stats = totals[0] if totals and totals[0].get("total_orders") else {}
    return {
        "total_orders": stats.get("total_orders", 0),
        "total_revenue": float(to_money(stats.get("total_revenue") or 0)),
        "average_order_value": float(to_money(stats.get("average_order_value") or 0)),
        "total_items": items[0]["total_items"] if items else 0,
        "status_breakdown": {row["_id"]: row["count"] for row in breakdown if row["count"]},
        "recent_orders": recent,
    }
