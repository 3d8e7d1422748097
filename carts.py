"""
Shopping carts.

A cart belongs either to a signed-in user or to an anonymous session id.
Line items snapshot the catalog price when they are added; validate_items()
reports drift against the catalog without changing the cart. Each mutation
rewrites the whole cart, so two concurrent writes to one cart end with the
last one.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from bson.objectid import ObjectId
from pymongo.database import Database

from database import create_document, find_by_id, serialize_doc, to_object_id, utcnow
from errors import NotFoundError, OutOfStock, ValidationError
from pricing import FREE_SHIPPING_THRESHOLD, calculate_totals, line_total, to_money
from schemas import MAX_ITEM_QUANTITY, Cart as CartSchema

logger = logging.getLogger(__name__)

CART_TTL = timedelta(days=30)
BOOK_FIELDS = ("title", "author", "price", "thumbnail", "stock", "status")


@dataclass(frozen=True)
class CartOwner:
    user_id: Optional[str] = None
    session_id: Optional[str] = None

    @classmethod
    def resolve(cls, user: Optional[dict], session_id: Optional[str]) -> "CartOwner":
        owner = cls(user_id=user["id"] if user else None, session_id=session_id or None)
        if not owner.user_id and not owner.session_id:
            raise ValidationError("User ID or session ID required")
        return owner

    @property
    def query(self) -> dict:
        if self.user_id:
            return {"user_id": self.user_id}
        return {"session_id": self.session_id}


def _find_line(items: list, book_id: str) -> Optional[dict]:
    for item in items:
        if item["book_id"] == book_id:
            return item
    return None


def _available_book(db: Database, book_id: str) -> dict:
    book = find_by_id(db, "book", book_id)
    if not book or book.get("status") != "ACTIVE":
        raise NotFoundError("Book", book_id, "Book not found or unavailable")
    return book


def _save(db: Database, cart: dict) -> dict:
    items = cart.get("items", [])
    cart["total_items"] = sum(item["quantity"] for item in items)
    cart["total_price"] = float(sum((line_total(i["price"], i["quantity"]) for i in items), to_money(0)))
    cart["updated_at"] = utcnow()
    if items:
        cart["expires_at"] = cart["updated_at"] + CART_TTL
    db["cart"].update_one(
        {"_id": cart["_id"]},
        {"$set": {
            "items": items,
            "total_items": cart["total_items"],
            "total_price": cart["total_price"],
            "expires_at": cart.get("expires_at"),
            "updated_at": cart["updated_at"],
        }},
    )
    return cart


def find_cart(db: Database, owner: CartOwner) -> Optional[dict]:
    return db["cart"].find_one(owner.query)


def find_or_create(db: Database, owner: CartOwner) -> dict:
    cart = find_cart(db, owner)
    if cart:
        return cart

    if owner.user_id and owner.session_id:
        # first cart action after login: the anonymous cart becomes the user's
        session_cart = db["cart"].find_one({"session_id": owner.session_id})
        if session_cart:
            db["cart"].update_one(
                {"_id": session_cart["_id"]},
                {"$set": {"user_id": owner.user_id, "session_id": None}},
            )
            return db["cart"].find_one({"_id": session_cart["_id"]})

    doc = CartSchema(user_id=owner.user_id, session_id=None if owner.user_id else owner.session_id)
    doc.expires_at = utcnow() + CART_TTL
    cart_id = create_document(db, "cart", doc)
    return db["cart"].find_one({"_id": ObjectId(cart_id)})


def require_cart(db: Database, owner: CartOwner) -> dict:
    cart = find_cart(db, owner)
    if not cart:
        raise NotFoundError("Cart")
    return cart


def add_item(db: Database, owner: CartOwner, book_id: str, quantity: int) -> dict:
    book = _available_book(db, book_id)
    book_id = str(book["_id"])
    cart = find_or_create(db, owner)
    items = cart.setdefault("items", [])

    line = _find_line(items, book_id)
    wanted = quantity + (line["quantity"] if line else 0)
    if wanted > book.get("stock", 0):
        raise OutOfStock(book_id, book.get("stock", 0))
    if wanted > MAX_ITEM_QUANTITY:
        raise ValidationError(f"Quantity per item cannot exceed {MAX_ITEM_QUANTITY}")

    if line:
        line["quantity"] = wanted
        line["price"] = book["price"]
    else:
        items.append({"book_id": book_id, "quantity": quantity, "price": book["price"], "added_at": utcnow()})
    return _save(db, cart)


def update_item(db: Database, owner: CartOwner, book_id: str, quantity: int) -> dict:
    """Set a line's quantity; 0 removes the line."""
    cart = require_cart(db, owner)
    line = _find_line(cart.get("items", []), book_id)
    if not line:
        raise NotFoundError("Item", book_id, "Item not found in cart")
    if quantity == 0:
        return remove_item(db, owner, book_id)

    book = _available_book(db, book_id)
    if book.get("stock", 0) < quantity:
        raise OutOfStock(book_id, book.get("stock", 0))
    line["quantity"] = quantity
    return _save(db, cart)


def remove_item(db: Database, owner: CartOwner, book_id: str) -> dict:
    cart = require_cart(db, owner)
    cart["items"] = [item for item in cart.get("items", []) if item["book_id"] != book_id]
    return _save(db, cart)


def clear(db: Database, owner: CartOwner) -> dict:
    cart = require_cart(db, owner)
    cart["items"] = []
    return _save(db, cart)


def _merged_quantity(db: Database, book_id: str, combined: int) -> int:
    cap = MAX_ITEM_QUANTITY
    try:
        book = db["book"].find_one({"_id": to_object_id(book_id)})
    except ValidationError:
        book = None
    if book and book.get("stock", 0) > 0:
        cap = min(cap, book["stock"])
    return min(combined, cap)


def merge(db: Database, user_id: str, session_id: str) -> Optional[dict]:
    """Fold the session cart into the user's cart after login.

    Lines for the same book add up. Every resulting line is capped at the
    per-line limit and at the book's current stock; the user's cart keeps
    its price snapshot. The session cart is deleted afterwards. Returns None
    when there was nothing to merge.
    """
    session_cart = db["cart"].find_one({"session_id": session_id})
    if not session_cart or not session_cart.get("items"):
        return None

    user_cart = db["cart"].find_one({"user_id": user_id})
    if not user_cart:
        db["cart"].update_one(
            {"_id": session_cart["_id"]},
            {"$set": {"user_id": user_id, "session_id": None}},
        )
        session_cart["user_id"] = user_id
        session_cart["session_id"] = None
        return _save(db, session_cart)

    items = user_cart.setdefault("items", [])
    for other in session_cart["items"]:
        line = _find_line(items, other["book_id"])
        if line:
            line["quantity"] = _merged_quantity(db, other["book_id"], line["quantity"] + other["quantity"])
        else:
            items.append({**other, "quantity": _merged_quantity(db, other["book_id"], other["quantity"])})
    _save(db, user_cart)
    db["cart"].delete_one({"_id": session_cart["_id"]})
    logger.info("Merged session cart %s into cart of user %s", session_id, user_id)
    return user_cart


def validate_items(db: Database, cart: dict) -> List[dict]:
    """Report lines whose book is gone, short on stock, or repriced."""
    issues = []
    for item in cart.get("items", []):
        try:
            book = find_by_id(db, "book", item["book_id"])
        except ValidationError:
            book = None
        if not book or book.get("status") != "ACTIVE":
            issues.append({"book_id": item["book_id"], "issue": "Book no longer available"})
        elif book.get("stock", 0) < item["quantity"]:
            issues.append({
                "book_id": item["book_id"],
                "issue": f"Only {book['stock']} items in stock, but {item['quantity']} requested",
            })
        elif to_money(book["price"]) != to_money(item["price"]):
            issues.append({
                "book_id": item["book_id"],
                "issue": "Price has changed",
                "old_price": item["price"],
                "new_price": book["price"],
            })
    return issues


def summary(cart: dict) -> dict:
    items = cart.get("items", [])
    totals = calculate_totals((item["price"], item["quantity"]) for item in items)
    return {
        **totals.as_dict(),
        "item_count": sum(item["quantity"] for item in items),
        "free_shipping_eligible": totals.free_shipping,
        "free_shipping_threshold": float(FREE_SHIPPING_THRESHOLD),
    }


def populate(db: Database, cart: Optional[dict]) -> Optional[dict]:
    """Serialized cart with a short book record attached to each line."""
    if cart is None:
        return None
    out = serialize_doc(cart)
    ids = []
    for item in out.get("items", []):
        if ObjectId.is_valid(item["book_id"]):
            ids.append(ObjectId(item["book_id"]))
    books = {str(b["_id"]): b for b in db["book"].find({"_id": {"$in": ids}})}
    for item in out.get("items", []):
        book = books.get(item["book_id"])
        item["book"] = {k: book.get(k) for k in BOOK_FIELDS} if book else None
    return out
