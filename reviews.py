"""
Book reviews and the rating cached on each book.

Whenever a review is created, edited or deactivated the parent book's
average_rating and review_count are recomputed from the active reviews.
The recompute is read-aggregate-write without a lock, so a burst of writes
on one book may briefly leave a stale count; the next write corrects it.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

from bson.objectid import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, find_by_id, get_documents, to_object_id, utcnow
from errors import ConflictError, NotFoundError
from schemas import Review as ReviewSchema

logger = logging.getLogger(__name__)

DUPLICATE_REVIEW = "You have already reviewed this book"


def round_rating(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def refresh_book_rating(db: Database, book_id: str) -> dict:
    stats = list(db["review"].aggregate([
        {"$match": {"book_id": book_id, "is_active": True}},
        {"$group": {"_id": None, "average": {"$avg": "$rating"}, "count": {"$sum": 1}}},
    ]))
    # an empty match may still come back as one group row with count 0
    row = stats[0] if stats and stats[0].get("count") else None
    rating = {
        "average_rating": round_rating(row["average"]) if row else 0.0,
        "review_count": row["count"] if row else 0,
    }
    db["book"].update_one({"_id": to_object_id(book_id)}, {"$set": rating})
    return rating


def has_purchased(db: Database, user_id: str, book_id: str) -> bool:
    """True if the user has an order for the book that wasn't cancelled."""
    order = db["order"].find_one({
        "user_id": user_id,
        "items.book_id": book_id,
        "status": {"$ne": "CANCELLED"},
    })
    return order is not None


def create_review(db: Database, user_id: str, book_id: str, rating: int, title: str, comment: str) -> dict:
    book = find_by_id(db, "book", book_id)
    if not book or book.get("status") == "INACTIVE":
        raise NotFoundError("Book", book_id)
    book_id = str(book["_id"])

    if db["review"].find_one({"book_id": book_id, "user_id": user_id}):
        raise ConflictError(DUPLICATE_REVIEW)

    review = ReviewSchema(
        book_id=book_id,
        user_id=user_id,
        rating=rating,
        title=title,
        comment=comment,
        verified=has_purchased(db, user_id, book_id),
    )
    try:
        review_id = create_document(db, "review", review)
    except DuplicateKeyError:
        raise ConflictError(DUPLICATE_REVIEW)

    refresh_book_rating(db, book_id)
    return db["review"].find_one({"_id": ObjectId(review_id)})


def get_review(db: Database, review_id: str, active_only: bool = True) -> dict:
    review = find_by_id(db, "review", review_id)
    if not review or (active_only and not review.get("is_active")):
        raise NotFoundError("Review", review_id)
    return review


def update_review(db: Database, review: dict, changes: dict) -> dict:
    if changes:
        changes["updated_at"] = utcnow()
        review = db["review"].find_one_and_update(
            {"_id": review["_id"]},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        refresh_book_rating(db, review["book_id"])
    return review


def delete_review(db: Database, review: dict) -> None:
    db["review"].update_one({"_id": review["_id"]}, {"$set": {"is_active": False, "updated_at": utcnow()}})
    refresh_book_rating(db, review["book_id"])
    logger.info("Review %s deactivated", review["_id"])


def vote(db: Database, review_id: str, field: str) -> dict:
    """Bump the helpful or not_helpful counter of an active review."""
    review = db["review"].find_one_and_update(
        {"_id": to_object_id(review_id), "is_active": True},
        {"$inc": {field: 1}},
        return_document=ReturnDocument.AFTER,
    )
    if not review:
        raise NotFoundError("Review", review_id)
    return review


def flag_review(db: Database, review: dict, reason: str, moderator_id: str) -> dict:
    return db["review"].find_one_and_update(
        {"_id": review["_id"]},
        {"$set": {
            "flagged": True,
            "flagged_reason": reason,
            "moderated_at": utcnow(),
            "moderated_by": moderator_id,
        }},
        return_document=ReturnDocument.AFTER,
    )


def book_stats(db: Database, book_id: str) -> dict:
    distribution = {str(star): 0 for star in range(1, 6)}
    rows = db["review"].aggregate([
        {"$match": {"book_id": book_id, "is_active": True}},
        {"$group": {"_id": "$rating", "count": {"$sum": 1}}},
    ])
    total = 0
    weighted = 0
    for row in rows:
        if row["_id"] is None or not row["count"]:
            continue
        distribution[str(row["_id"])] = row["count"]
        total += row["count"]
        weighted += row["_id"] * row["count"]
    return {
        "average_rating": round_rating(weighted / total) if total else 0.0,
        "total_reviews": total,
        "rating_distribution": distribution,
    }


def review_filter(book_id: Optional[str] = None, user_id: Optional[str] = None, rating: Optional[int] = None,
                  verified: Optional[bool] = None, flagged: Optional[bool] = None) -> dict:
    filt = {"is_active": True}
    if book_id:
        filt["book_id"] = book_id
    if user_id:
        filt["user_id"] = user_id
    if rating:
        filt["rating"] = rating
    if verified:
        filt["verified"] = True
    if flagged:
        filt["flagged"] = True
    return filt


SORTS = {
    "newest": [("created_at", -1)],
    "helpful": [("helpful", -1), ("created_at", -1)],
    "rating": [("rating", -1), ("created_at", -1)],
    "rating_asc": [("rating", 1), ("created_at", -1)],
}


def list_reviews(db: Database, filt: dict, sort: str = "newest", skip: int = 0, limit: int = 10) -> Tuple[list, int]:
    reviews = get_documents(db, "review", filt, sort=SORTS.get(sort, SORTS["newest"]), skip=skip, limit=limit)
    return reviews, db["review"].count_documents(filt)
