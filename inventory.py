"""
Stock reconciliation.

Every write to Book.stock goes through adjust_stock(). It applies the change
as one conditional update (a decrement only matches while enough copies are
left, so two buyers can't both take the last one) and then brings status in
line with the new count.
"""
import logging
from typing import Iterable, List, Tuple

from pymongo import ReturnDocument
from pymongo.database import Database

from database import to_object_id, utcnow
from errors import BookUnavailable, InsufficientStock, NotFoundError

logger = logging.getLogger(__name__)

Line = Tuple[str, int]


def sync_status(db: Database, book_oid) -> dict:
    """ACTIVE <-> OUT_OF_STOCK follow stock == 0. INACTIVE is left alone."""
    books = db["book"]
    books.update_one(
        {"_id": book_oid, "stock": {"$lte": 0}, "status": "ACTIVE"},
        {"$set": {"status": "OUT_OF_STOCK"}},
    )
    books.update_one(
        {"_id": book_oid, "stock": {"$gt": 0}, "status": "OUT_OF_STOCK"},
        {"$set": {"status": "ACTIVE"}},
    )
    return books.find_one({"_id": book_oid})


def adjust_stock(db: Database, book_id: str, delta: int, sales_delta: int = 0,
                 require_active: bool = False) -> dict:
    """Add delta to a book's stock (negative to take copies) and return the book.

    sales_delta moves sales_count in the same update. With require_active
    the change is refused for INACTIVE books.
    """
    oid = to_object_id(book_id)
    query = {"_id": oid}
    if delta < 0:
        query["stock"] = {"$gte": -delta}
    if require_active:
        query["status"] = {"$ne": "INACTIVE"}

    inc = {"stock": delta}
    if sales_delta:
        inc["sales_count"] = sales_delta
    updated = db["book"].find_one_and_update(
        query,
        {"$inc": inc, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        current = db["book"].find_one({"_id": oid})
        if current is None:
            raise NotFoundError("Book", book_id)
        if require_active and current.get("status") == "INACTIVE":
            raise BookUnavailable(book_id)
        raise InsufficientStock(book_id, current.get("stock", 0), current.get("title"))

    logger.debug("Stock of book %s moved by %d to %d", book_id, delta, updated["stock"])
    return sync_status(db, oid)


def reserve(db: Database, lines: Iterable[Line]) -> List[Line]:
    """Take stock for every (book_id, quantity) line or for none of them."""
    reserved: List[Line] = []
    try:
        for book_id, quantity in lines:
            adjust_stock(db, book_id, -quantity, sales_delta=quantity, require_active=True)
            reserved.append((book_id, quantity))
    except Exception:
        if reserved:
            logger.warning("Reservation failed, releasing %d reserved line(s)", len(reserved))
            release(db, reserved)
        raise
    return reserved


def release(db: Database, lines: Iterable[Line]) -> None:
    """Put reserved or sold copies back and undo their sales count."""
    for book_id, quantity in lines:
        adjust_stock(db, book_id, quantity, sales_delta=-quantity)
