import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import books
import carts
import database
import inventory
import orders
import reviews
from auth import get_current_user, get_optional_user, hash_password, is_admin, require_roles, token_for
from database import create_document, get_db, page_window, pagination, serialize_doc, utcnow
from errors import (
    ERROR_STATUS_CODES,
    AuthenticationError,
    AuthorizationError,
    BookstoreError,
    NotFoundError,
    error_payload,
)
from orders import OrderStatus
from schemas import MAX_ITEM_QUANTITY, Address, BookFormat, User as UserSchema

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

APP_ENV = os.getenv("APP_ENV", "production")


@asynccontextmanager
async def lifespan(app: FastAPI):
    database.init_db()
    yield
    database.close_db()


app = FastAPI(title="Bookstore API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.getenv("FRONTEND_URL", "*")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------- Errors -----------------------
@app.exception_handler(BookstoreError)
async def bookstore_error_handler(request: Request, exc: BookstoreError) -> JSONResponse:
    """Map BookstoreError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    return JSONResponse(status_code=status_code, content=error_payload(exc))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err["loc"] if part != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"message": "Validation Error", "errors": errors})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError) -> JSONResponse:
    key_value = (exc.details or {}).get("keyValue") or {}
    return JSONResponse(
        status_code=400,
        content={"message": "Duplicate field value", "field": next(iter(key_value), None), "error_type": "ConflictError"},
    )


@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"message": "Internal server error"}
    if APP_ENV == "development":
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# ----------------------- Models -----------------------
class SignupBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Literal["BUYER", "SELLER"] = "BUYER"
    store_name: Optional[str] = None


class LoginBody(BaseModel):
    email: EmailStr
    password: str


class BookCreateBody(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=10)
    isbn: str = Field(..., min_length=10, max_length=17)
    author: str = Field(..., min_length=1)
    publisher: Optional[str] = None
    category: str = Field(..., min_length=1)
    format: BookFormat = "PAPERBACK"
    language: str = "English"
    pages: Optional[int] = Field(None, ge=1)
    published_year: Optional[int] = Field(None, ge=1000)
    tags: List[str] = []
    thumbnail: Optional[str] = None
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    stock: int = Field(0, ge=0)


class BookUpdateBody(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=10)
    author: Optional[str] = None
    publisher: Optional[str] = None
    category: Optional[str] = None
    format: Optional[BookFormat] = None
    language: Optional[str] = None
    pages: Optional[int] = Field(None, ge=1)
    tags: Optional[List[str]] = None
    thumbnail: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    status: Optional[Literal["ACTIVE", "INACTIVE"]] = None


class StockBody(BaseModel):
    quantity: int = Field(..., ge=1)
    operation: Literal["increase", "decrease"]


class CartItemBody(BaseModel):
    book_id: str
    quantity: int = Field(1, ge=1, le=MAX_ITEM_QUANTITY)
    session_id: Optional[str] = Field(None, min_length=1)


class CartUpdateBody(BaseModel):
    quantity: int = Field(..., ge=0, le=MAX_ITEM_QUANTITY)
    session_id: Optional[str] = Field(None, min_length=1)


class CartMergeBody(BaseModel):
    session_id: str = Field(..., min_length=1)


class OrderLineBody(BaseModel):
    book_id: str
    quantity: int = Field(..., ge=1)


class OrderCreateBody(BaseModel):
    items: List[OrderLineBody] = Field(..., min_length=1)
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment_method: str = Field(..., min_length=1)
    payment_intent_id: Optional[str] = None
    discount: float = Field(0, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)
    clear_cart: bool = False


class StatusBody(BaseModel):
    status: OrderStatus
    note: Optional[str] = Field(None, max_length=500)


class TrackingBody(BaseModel):
    tracking_number: str = Field(..., min_length=1)
    estimated_delivery: Optional[datetime] = None


class CancelBody(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ReviewCreateBody(BaseModel):
    book_id: str
    rating: int = Field(..., ge=1, le=5)
    title: str = Field(..., min_length=1, max_length=100)
    comment: str = Field(..., min_length=10, max_length=2000)


class ReviewUpdateBody(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    comment: Optional[str] = Field(None, min_length=10, max_length=2000)


class FlagBody(BaseModel):
    reason: str = Field(..., min_length=1)


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Bookstore API running"}


@app.get("/api/health")
def health():
    response = {
        "status": "OK",
        "message": "Bookstore API is running",
        "timestamp": utcnow().isoformat(),
        "database": "Disconnected",
    }
    try:
        if database.db is not None:
            database.db.list_collection_names()
            response["database"] = "Connected"
    except Exception as e:
        response["database"] = f"Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
def _public_user(user: dict) -> dict:
    return {k: user.get(k) for k in ("id", "name", "email", "role", "store_name")}


@app.post("/api/auth/signup", status_code=201)
def signup(body: SignupBody, db: Database = Depends(get_db)):
    if db["user"].find_one({"email": body.email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    user = UserSchema(
        name=body.name,
        email=body.email,
        password_hash=hash_password(body.password),
        role=body.role,
        store_name=body.store_name,
    )
    user_id = create_document(db, "user", user)
    created = {"id": user_id, "name": body.name, "email": body.email, "role": body.role, "store_name": body.store_name}
    return {"message": "User registered successfully", "token": token_for(created), "user": created}


@app.post("/api/auth/login")
def login(body: LoginBody, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": body.email})
    if not user or user.get("password_hash") != hash_password(body.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="User account is deactivated")
    suser = serialize_doc(user)
    return {"message": "Login successful", "token": token_for(suser), "user": _public_user(suser)}


@app.get("/api/auth/me")
def me(user=Depends(get_current_user)):
    return {"user": _public_user(user)}


# ----------------------- Books -----------------------
@app.get("/api/books")
def list_books(
    q: Optional[str] = None,
    category: Optional[str] = None,
    format: Optional[BookFormat] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    in_stock: bool = False,
    seller_id: Optional[str] = None,
    sort: Literal["newest", "price_asc", "price_desc", "popular", "rating"] = "newest",
    page: int = 1,
    limit: int = 20,
    user=Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    # sellers browsing their own shelf also see unavailable books
    own_shelf = seller_id is not None and user is not None and (is_admin(user) or user["id"] == seller_id)
    filt = books.search_filter(q, category, format, min_price, max_price, in_stock, seller_id,
                               status=None if own_shelf else "ACTIVE")
    sorts = {
        "newest": [("created_at", -1)],
        "price_asc": [("price", 1)],
        "price_desc": [("price", -1)],
        "popular": [("sales_count", -1)],
        "rating": [("average_rating", -1)],
    }
    page, limit, skip = page_window(page, limit)
    items = database.get_documents(db, "book", filt, sort=sorts[sort], skip=skip, limit=limit)
    total = db["book"].count_documents(filt)
    return {"books": serialize_doc(items), "pagination": pagination(page, limit, total)}


@app.get("/api/books/{book_id}")
def get_book(book_id: str, user=Depends(get_optional_user), db: Database = Depends(get_db)):
    book = books.get_book(db, book_id)
    if book.get("status") == "INACTIVE" and not (user and books.can_edit(book, user)):
        raise NotFoundError("Book", book_id)
    books.record_view(db, book)
    book["view_count"] = book.get("view_count", 0) + 1
    return {"book": serialize_doc(book)}


@app.post("/api/books", status_code=201)
def create_book(body: BookCreateBody, user=Depends(require_roles("SELLER", "ADMIN")), db: Database = Depends(get_db)):
    book = books.create_book(db, user["id"], body.model_dump())
    return {"message": "Book created successfully", "book": serialize_doc(book)}


@app.put("/api/books/{book_id}")
def update_book(book_id: str, body: BookUpdateBody, user=Depends(get_current_user), db: Database = Depends(get_db)):
    book = books.get_book(db, book_id)
    if not books.can_edit(book, user):
        raise AuthorizationError("Not authorized to update this book")
    updated = books.update_book(db, book, body.model_dump(exclude_none=True))
    return {"message": "Book updated successfully", "book": serialize_doc(updated)}


@app.delete("/api/books/{book_id}")
def delete_book(book_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    book = books.get_book(db, book_id)
    if not books.can_edit(book, user):
        raise AuthorizationError("Not authorized to delete this book")
    books.deactivate(db, book)
    return {"message": "Book deleted successfully"}


@app.post("/api/books/{book_id}/stock")
def adjust_book_stock(book_id: str, body: StockBody, user=Depends(get_current_user), db: Database = Depends(get_db)):
    book = books.get_book(db, book_id)
    if not books.can_edit(book, user):
        raise AuthorizationError("Not authorized to update this book")
    delta = body.quantity if body.operation == "increase" else -body.quantity
    updated = inventory.adjust_stock(db, book_id, delta)
    logger.info("User %s changed stock of book %s by %d", user["id"], book_id, delta)
    return {"message": "Stock updated successfully", "stock": updated["stock"], "status": updated["status"]}


# ----------------------- Cart -----------------------
@app.get("/api/cart")
def get_cart(session_id: Optional[str] = None, user=Depends(get_optional_user), db: Database = Depends(get_db)):
    owner = carts.CartOwner.resolve(user, session_id)
    cart = carts.find_or_create(db, owner)
    issues = carts.validate_items(db, cart)
    return {"cart": carts.populate(db, cart), "issues": issues or None}


@app.post("/api/cart/items")
def add_cart_item(body: CartItemBody, user=Depends(get_optional_user), db: Database = Depends(get_db)):
    owner = carts.CartOwner.resolve(user, body.session_id)
    cart = carts.add_item(db, owner, body.book_id, body.quantity)
    return {"message": "Item added to cart", "cart": carts.populate(db, cart)}


@app.put("/api/cart/items/{book_id}")
def update_cart_item(book_id: str, body: CartUpdateBody, user=Depends(get_optional_user), db: Database = Depends(get_db)):
    owner = carts.CartOwner.resolve(user, body.session_id)
    cart = carts.update_item(db, owner, book_id, body.quantity)
    message = "Item removed from cart" if body.quantity == 0 else "Cart updated"
    return {"message": message, "cart": carts.populate(db, cart)}


@app.delete("/api/cart/items/{book_id}")
def remove_cart_item(book_id: str, session_id: Optional[str] = None, user=Depends(get_optional_user),
                     db: Database = Depends(get_db)):
    owner = carts.CartOwner.resolve(user, session_id)
    cart = carts.remove_item(db, owner, book_id)
    return {"message": "Item removed from cart", "cart": carts.populate(db, cart)}


@app.delete("/api/cart")
def clear_cart(session_id: Optional[str] = None, user=Depends(get_optional_user), db: Database = Depends(get_db)):
    owner = carts.CartOwner.resolve(user, session_id)
    carts.clear(db, owner)
    return {"message": "Cart cleared successfully"}


@app.post("/api/cart/merge")
def merge_cart(body: CartMergeBody, user=Depends(get_optional_user), db: Database = Depends(get_db)):
    if not user:
        raise AuthenticationError()
    cart = carts.merge(db, user["id"], body.session_id)
    if cart is None:
        return {"message": "No session cart to merge"}
    return {"message": "Cart merged successfully", "cart": carts.populate(db, cart)}


@app.get("/api/cart/validate")
def validate_cart(session_id: Optional[str] = None, user=Depends(get_optional_user), db: Database = Depends(get_db)):
    cart = carts.require_cart(db, carts.CartOwner.resolve(user, session_id))
    issues = carts.validate_items(db, cart)
    return {
        "valid": not issues,
        "issues": issues,
        "cart": {"total_items": cart.get("total_items", 0), "total_price": cart.get("total_price", 0)},
    }


@app.get("/api/cart/summary")
def cart_summary(session_id: Optional[str] = None, user=Depends(get_optional_user), db: Database = Depends(get_db)):
    cart = carts.require_cart(db, carts.CartOwner.resolve(user, session_id))
    return {"summary": carts.summary(cart)}


# ----------------------- Orders -----------------------
@app.post("/api/orders", status_code=201)
def create_order(
    body: OrderCreateBody,
    response: Response,
    idempotency_key: Optional[str] = Header(None),
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if body.discount and not is_admin(user):
        raise AuthorizationError("Only admins can apply a discount")
    order, created = orders.create_order(
        db,
        user["id"],
        [(line.book_id, line.quantity) for line in body.items],
        body.shipping_address,
        body.payment_method,
        billing_address=body.billing_address,
        discount=body.discount,
        notes=body.notes,
        payment_intent_id=body.payment_intent_id,
        clear_cart=body.clear_cart,
        idempotency_key=idempotency_key,
    )
    if not created:
        response.status_code = 200
        return {"message": "Order already placed", "order": serialize_doc(order)}
    return {"message": "Order created successfully", "order": serialize_doc(order)}


@app.get("/api/orders")
def list_orders(
    status: Optional[OrderStatus] = None,
    payment_status: Optional[str] = None,
    user_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
    user=Depends(require_roles("ADMIN")),
    db: Database = Depends(get_db),
):
    filt = orders.build_filter(status.value if status else None, payment_status, user_id, start_date, end_date)
    page, limit, skip = page_window(page, limit)
    items, total = orders.list_orders(db, filt, skip, limit)
    return {"orders": serialize_doc(items), "pagination": pagination(page, limit, total)}


@app.get("/api/orders/stats/summary")
def order_stats(
    status: Optional[OrderStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    user=Depends(require_roles("ADMIN")),
    db: Database = Depends(get_db),
):
    filt = orders.build_filter(status.value if status else None, start_date=start_date, end_date=end_date)
    return serialize_doc(orders.order_stats(db, filt))


@app.get("/api/orders/user/{user_id}")
def user_orders(user_id: str, page: int = 1, limit: int = 10, user=Depends(get_current_user),
                db: Database = Depends(get_db)):
    if not is_admin(user) and user["id"] != user_id:
        raise AuthorizationError()
    page, limit, skip = page_window(page, limit)
    items, total = orders.list_orders(db, {"user_id": user_id}, skip, limit)
    return {"orders": serialize_doc(items), "pagination": pagination(page, limit, total)}


@app.get("/api/orders/seller/{seller_id}")
def seller_orders(seller_id: str, page: int = 1, limit: int = 10, user=Depends(get_current_user),
                  db: Database = Depends(get_db)):
    if not is_admin(user) and user["id"] != seller_id:
        raise AuthorizationError()
    page, limit, skip = page_window(page, limit)
    items, total = orders.orders_for_seller(db, seller_id, skip, limit)
    return {"orders": serialize_doc(items), "pagination": pagination(page, limit, total)}


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    order = orders.get_order(db, order_id)
    if not orders.can_view(order, user):
        raise AuthorizationError()
    return {"order": serialize_doc(order)}


@app.put("/api/orders/{order_id}/status")
def update_order_status(order_id: str, body: StatusBody, user=Depends(get_current_user),
                        db: Database = Depends(get_db)):
    order = orders.get_order(db, order_id)
    if not orders.can_manage(db, order, user):
        raise AuthorizationError()
    updated = orders.update_status(db, order, body.status, body.note or "")
    return {
        "message": "Order status updated successfully",
        "order": serialize_doc({
            "_id": updated["_id"],
            "status": updated["status"],
            "status_history": updated["status_history"],
        }),
    }


@app.put("/api/orders/{order_id}/tracking")
def add_order_tracking(order_id: str, body: TrackingBody, user=Depends(get_current_user),
                       db: Database = Depends(get_db)):
    order = orders.get_order(db, order_id)
    if not orders.can_manage(db, order, user):
        raise AuthorizationError()
    updated = orders.add_tracking(db, order, body.tracking_number, body.estimated_delivery)
    return serialize_doc({
        "message": "Tracking information added successfully",
        "tracking_number": updated["tracking_number"],
        "estimated_delivery": updated["estimated_delivery"],
        "status": updated["status"],
    })


@app.put("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, body: Optional[CancelBody] = None, user=Depends(get_current_user),
                 db: Database = Depends(get_db)):
    order = orders.get_order(db, order_id)
    if not orders.can_view(order, user):
        raise AuthorizationError()
    reason = body.reason if body and body.reason else ""
    updated = orders.cancel_order(db, order, reason)
    return {"message": "Order cancelled successfully", "order": serialize_doc(updated)}


# ----------------------- Reviews -----------------------
@app.get("/api/reviews")
def list_all_reviews(
    book_id: Optional[str] = None,
    user_id: Optional[str] = None,
    rating: Optional[int] = Query(None, ge=1, le=5),
    verified: bool = False,
    flagged: bool = False,
    page: int = 1,
    limit: int = 20,
    user=Depends(require_roles("ADMIN")),
    db: Database = Depends(get_db),
):
    filt = reviews.review_filter(book_id, user_id, rating, verified, flagged)
    page, limit, skip = page_window(page, limit)
    items, total = reviews.list_reviews(db, filt, skip=skip, limit=limit)
    return {"reviews": serialize_doc(items), "pagination": pagination(page, limit, total)}


@app.get("/api/reviews/book/{book_id}")
def book_reviews(
    book_id: str,
    rating: Optional[int] = Query(None, ge=1, le=5),
    verified: bool = False,
    sort: Literal["newest", "helpful", "rating"] = "newest",
    order: Literal["asc", "desc"] = "desc",
    page: int = 1,
    limit: int = 10,
    db: Database = Depends(get_db),
):
    book = books.get_book(db, book_id)
    book_id = str(book["_id"])
    if sort == "rating" and order == "asc":
        sort = "rating_asc"
    filt = reviews.review_filter(book_id, rating=rating, verified=verified)
    page, limit, skip = page_window(page, limit)
    items, total = reviews.list_reviews(db, filt, sort, skip, limit)
    return {
        "reviews": serialize_doc(items),
        "pagination": pagination(page, limit, total),
        "stats": reviews.book_stats(db, book_id),
    }


@app.get("/api/reviews/user/{user_id}")
def user_reviews(user_id: str, page: int = 1, limit: int = 10, db: Database = Depends(get_db)):
    page, limit, skip = page_window(page, limit)
    items, total = reviews.list_reviews(db, reviews.review_filter(user_id=user_id), skip=skip, limit=limit)
    return {"reviews": serialize_doc(items), "pagination": pagination(page, limit, total)}


@app.post("/api/reviews", status_code=201)
def create_review(body: ReviewCreateBody, user=Depends(get_current_user), db: Database = Depends(get_db)):
    review = reviews.create_review(db, user["id"], body.book_id, body.rating, body.title.strip(), body.comment.strip())
    return {"message": "Review created successfully", "review": serialize_doc(review)}


@app.get("/api/reviews/{review_id}")
def get_review(review_id: str, db: Database = Depends(get_db)):
    return {"review": serialize_doc(reviews.get_review(db, review_id))}


@app.put("/api/reviews/{review_id}")
def update_review(review_id: str, body: ReviewUpdateBody, user=Depends(get_current_user),
                  db: Database = Depends(get_db)):
    review = reviews.get_review(db, review_id, active_only=False)
    if not is_admin(user) and review["user_id"] != user["id"]:
        raise AuthorizationError("Not authorized to update this review")
    updated = reviews.update_review(db, review, body.model_dump(exclude_none=True))
    return {"message": "Review updated successfully", "review": serialize_doc(updated)}


@app.delete("/api/reviews/{review_id}")
def delete_review(review_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    review = reviews.get_review(db, review_id, active_only=False)
    if not is_admin(user) and review["user_id"] != user["id"]:
        raise AuthorizationError("Not authorized to delete this review")
    reviews.delete_review(db, review)
    return {"message": "Review deleted successfully"}


@app.post("/api/reviews/{review_id}/helpful")
def mark_helpful(review_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    review = reviews.vote(db, review_id, "helpful")
    return {"message": "Review marked as helpful", "helpful": review["helpful"]}


@app.post("/api/reviews/{review_id}/not-helpful")
def mark_not_helpful(review_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    review = reviews.vote(db, review_id, "not_helpful")
    return {"message": "Review marked as not helpful", "not_helpful": review["not_helpful"]}


@app.post("/api/reviews/{review_id}/flag")
def flag_review(review_id: str, body: FlagBody, user=Depends(require_roles("ADMIN")), db: Database = Depends(get_db)):
    review = reviews.get_review(db, review_id, active_only=False)
    reviews.flag_review(db, review, body.reason, user["id"])
    return {"message": "Review flagged successfully"}


# ----------------------- Seed Demo Data -----------------------
DEMO_BOOKS = [
    {
        "title": "The Pragmatic Programmer",
        "description": "From journeyman to master: practical advice for working developers.",
        "isbn": "9780135957059",
        "author": "David Thomas",
        "publisher": "Addison-Wesley",
        "category": "Technology",
        "format": "PAPERBACK",
        "published_year": 2019,
        "tags": ["programming", "career"],
        "price": 39.99,
        "original_price": 49.99,
        "stock": 25,
    },
    {
        "title": "Dune",
        "description": "A desert planet, a noble family, and the spice that controls the universe.",
        "isbn": "9780441172719",
        "author": "Frank Herbert",
        "publisher": "Ace",
        "category": "Science Fiction",
        "format": "PAPERBACK",
        "published_year": 1965,
        "tags": ["classic", "space"],
        "price": 10.99,
        "stock": 40,
    },
    {
        "title": "Sapiens",
        "description": "A brief history of humankind from the Stone Age to the present.",
        "isbn": "9780062316097",
        "author": "Yuval Noah Harari",
        "publisher": "Harper",
        "category": "History",
        "format": "HARDCOVER",
        "published_year": 2015,
        "tags": ["history", "anthropology"],
        "price": 24.99,
        "original_price": 35.0,
        "stock": 15,
    },
    {
        "title": "The Hobbit",
        "description": "Bilbo Baggins is swept into a quest to reclaim a dwarven kingdom.",
        "isbn": "9780547928227",
        "author": "J.R.R. Tolkien",
        "publisher": "Mariner Books",
        "category": "Fantasy",
        "format": "PAPERBACK",
        "published_year": 1937,
        "tags": ["classic", "adventure"],
        "price": 12.5,
        "stock": 30,
    },
    {
        "title": "Thinking, Fast and Slow",
        "description": "How two systems of thought shape our judgments and decisions.",
        "isbn": "9780374533557",
        "author": "Daniel Kahneman",
        "publisher": "Farrar, Straus and Giroux",
        "category": "Psychology",
        "format": "EBOOK",
        "published_year": 2011,
        "tags": ["psychology", "economics"],
        "price": 14.99,
        "stock": 100,
    },
]


@app.post("/api/seed")
def seed(db: Database = Depends(get_db)):
    if db["book"].count_documents({}) > 0:
        return {"seeded": False, "message": "Books already exist"}
    if db["user"].count_documents({"role": "ADMIN"}) == 0:
        admin = UserSchema(name="Admin", email="admin@bookstore.com", password_hash=hash_password("admin123"), role="ADMIN")
        create_document(db, "user", admin)
    seller = db["user"].find_one({"email": "seller@bookstore.com"})
    if seller:
        seller_id = str(seller["_id"])
    else:
        seller_doc = UserSchema(
            name="Demo Seller",
            email="seller@bookstore.com",
            password_hash=hash_password("seller123"),
            role="SELLER",
            store_name="Demo Books",
        )
        seller_id = create_document(db, "user", seller_doc)
    for data in DEMO_BOOKS:
        books.create_book(db, seller_id, dict(data))
    return {"seeded": True, "message": "Demo data created", "books": db["book"].count_documents({})}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
