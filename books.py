import logging
import re
from typing import Optional

from bson.objectid import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import inventory
from database import find_by_id, create_document, utcnow
from errors import ConflictError, NotFoundError
from schemas import Book as BookSchema

logger = logging.getLogger(__name__)


def slugify(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]", "-", title.lower())
    return re.sub(r"-+", "-", slug).strip("-")


def discount_percent(price: float, original_price: Optional[float]) -> int:
    if not original_price or not price or original_price <= price:
        return 0
    return round((original_price - price) / original_price * 100)


def get_book(db: Database, book_id: str) -> dict:
    book = find_by_id(db, "book", book_id)
    if not book:
        raise NotFoundError("Book", book_id)
    return book


def can_edit(book: dict, user: dict) -> bool:
    return user.get("role") == "ADMIN" or book.get("seller_id") == user["id"]


def create_book(db: Database, seller_id: str, data: dict) -> dict:
    stock = data.get("stock", 0)
    book = BookSchema(
        **data,
        seller_id=seller_id,
        slug=slugify(data["title"]),
        discount=discount_percent(data["price"], data.get("original_price")),
        status="ACTIVE" if stock > 0 else "OUT_OF_STOCK",
    )
    try:
        book_id = create_document(db, "book", book)
    except DuplicateKeyError:
        raise ConflictError("Book with this ISBN already exists", field="isbn")
    logger.info("Seller %s listed book %s", seller_id, book_id)
    return db["book"].find_one({"_id": ObjectId(book_id)})


def update_book(db: Database, book: dict, changes: dict) -> dict:
    """Apply seller edits. A new stock figure goes through the stock reconciler."""
    new_stock = changes.pop("stock", None)
    if "title" in changes:
        changes["slug"] = slugify(changes["title"])
    if "price" in changes or "original_price" in changes:
        changes["discount"] = discount_percent(
            changes.get("price", book["price"]),
            changes.get("original_price", book.get("original_price")),
        )
    changes["updated_at"] = utcnow()
    db["book"].update_one({"_id": book["_id"]}, {"$set": changes})

    book_id = str(book["_id"])
    if new_stock is not None and new_stock != book.get("stock", 0):
        return inventory.adjust_stock(db, book_id, new_stock - book.get("stock", 0))
    return inventory.sync_status(db, book["_id"])


def deactivate(db: Database, book: dict) -> None:
    db["book"].update_one({"_id": book["_id"]}, {"$set": {"status": "INACTIVE", "updated_at": utcnow()}})
    logger.info("Book %s deactivated", book["_id"])


def record_view(db: Database, book: dict) -> None:
    db["book"].update_one({"_id": book["_id"]}, {"$inc": {"view_count": 1}})


def search_filter(q: Optional[str] = None, category: Optional[str] = None, format: Optional[str] = None,
                  min_price: Optional[float] = None, max_price: Optional[float] = None,
                  in_stock: bool = False, seller_id: Optional[str] = None, status: Optional[str] = "ACTIVE") -> dict:
    filt = {}
    if status:
        filt["status"] = status
    if q:
        pattern = {"$regex": re.escape(q), "$options": "i"}
        filt["$or"] = [{"title": pattern}, {"description": pattern}, {"tags": pattern}]
    if category:
        filt["category"] = category
    if format:
        filt["format"] = format
    if min_price is not None or max_price is not None:
        filt["price"] = {}
        if min_price is not None:
            filt["price"]["$gte"] = min_price
        if max_price is not None:
            filt["price"]["$lte"] = max_price
    if in_stock:
        filt["stock"] = {"$gt": 0}
    if seller_id:
        filt["seller_id"] = seller_id
    return filt
