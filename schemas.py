"""
Database Schemas for the Bookstore

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.

- User -> "user"
- Book -> "book"
- Cart -> "cart"
- Order -> "order"
- Review -> "review"

References between collections are stored as string ids.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Role = Literal["BUYER", "SELLER", "ADMIN"]
BookFormat = Literal["HARDCOVER", "PAPERBACK", "EBOOK", "AUDIOBOOK"]
BookStatus = Literal["ACTIVE", "INACTIVE", "OUT_OF_STOCK"]
PaymentStatus = Literal["PENDING", "PAID", "FAILED", "REFUNDED"]

MAX_ITEM_QUANTITY = 10


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="Salted password hash")
    role: Role = "BUYER"
    is_active: bool = True
    store_name: Optional[str] = Field(None, description="Seller storefront name")


class Book(BaseModel):
    title: str
    description: str
    isbn: str
    author: str
    publisher: Optional[str] = None
    category: str
    format: BookFormat = "PAPERBACK"
    language: str = "English"
    pages: Optional[int] = Field(None, ge=1)
    published_year: Optional[int] = None
    tags: List[str] = []
    thumbnail: Optional[str] = None
    seller_id: str
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    discount: int = Field(0, ge=0, le=100, description="Percent off original_price")
    stock: int = Field(0, ge=0)
    status: BookStatus = "ACTIVE"
    slug: str = ""
    sales_count: int = 0
    view_count: int = 0
    average_rating: float = 0
    review_count: int = 0


class CartItem(BaseModel):
    book_id: str
    quantity: int = Field(..., ge=1, le=MAX_ITEM_QUANTITY)
    price: float = Field(..., ge=0, description="Catalog price when the item was added")
    added_at: Optional[datetime] = None


class Cart(BaseModel):
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    items: List[CartItem] = []
    total_items: int = 0
    total_price: float = 0
    expires_at: Optional[datetime] = None


class Address(BaseModel):
    name: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    phone: Optional[str] = None


class OrderItem(BaseModel):
    book_id: str
    title: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    total_price: float = Field(..., ge=0)


class StatusEntry(BaseModel):
    status: str
    timestamp: datetime
    note: str = ""


class Order(BaseModel):
    user_id: str
    items: List[OrderItem]
    subtotal: float
    tax: float
    shipping: float
    discount: float = 0
    total_amount: float
    status: str = "PENDING"
    status_history: List[StatusEntry] = []
    payment_status: PaymentStatus = "PENDING"
    payment_method: str
    payment_intent_id: Optional[str] = None
    shipping_address: Address
    billing_address: Address
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    idempotency_key: str


class Review(BaseModel):
    book_id: str
    user_id: str
    rating: int = Field(..., ge=1, le=5)
    title: str = Field(..., min_length=1, max_length=100)
    comment: str = Field(..., min_length=10, max_length=2000)
    helpful: int = 0
    not_helpful: int = 0
    verified: bool = False
    is_active: bool = True
    flagged: bool = False
    flagged_reason: Optional[str] = None
    moderated_at: Optional[datetime] = None
    moderated_by: Optional[str] = None
