"""Custom exceptions for the bookstore API."""


class BookstoreError(Exception):
    """Base exception for all bookstore errors."""

    pass


class ValidationError(BookstoreError):
    """Raised when input is well-formed JSON but breaks a business rule."""

    def __init__(self, message: str, errors: list | None = None):
        self.errors = errors
        super().__init__(message)


class AuthenticationError(BookstoreError):
    """Raised when a request needs a user and none could be resolved."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AuthorizationError(BookstoreError):
    """Raised when the user lacks the role or ownership for an action."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFoundError(BookstoreError):
    """Raised when an entity doesn't exist."""

    def __init__(self, entity: str, entity_id: str | None = None, message: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} not found")


class ConflictError(BookstoreError):
    """Raised when a unique field already exists (ISBN, email, review per book)."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class BookUnavailable(BookstoreError):
    """Raised when a book is missing or not ACTIVE at checkout time."""

    def __init__(self, book_id: str, message: str | None = None):
        self.book_id = book_id
        super().__init__(message or f"Book {book_id} is not available")


class InsufficientStock(BookstoreError):
    """Raised when an order asks for more copies than are in stock."""

    def __init__(self, book_id: str, available: int, title: str | None = None):
        self.book_id = book_id
        self.available = available
        name = title or book_id
        super().__init__(f"Insufficient stock for {name}. Only {available} available.")


class OutOfStock(BookstoreError):
    """Raised when a cart line would exceed the book's current stock."""

    def __init__(self, book_id: str, available: int):
        self.book_id = book_id
        self.available = available
        super().__init__(f"Only {available} items available in stock")


class InvalidTransition(BookstoreError):
    """Raised when an order status change is not an allowed edge."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change order status from {current} to {requested}")


class OrderNotCancellable(BookstoreError):
    """Raised when cancelling an order past the CONFIRMED stage."""

    def __init__(self, status: str):
        self.status = status
        super().__init__("Order cannot be cancelled at this stage")


ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    AuthenticationError: 401,
    AuthorizationError: 403,
    NotFoundError: 404,
    ConflictError: 400,
    BookUnavailable: 400,
    InsufficientStock: 400,
    OutOfStock: 400,
    InvalidTransition: 400,
    OrderNotCancellable: 400,
}


def error_payload(exc: BookstoreError) -> dict:
    """Response body for a BookstoreError: message, error type and extras."""
    content = {"message": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, ValidationError) and exc.errors:
        content["errors"] = exc.errors
    if isinstance(exc, ConflictError) and exc.field:
        content["field"] = exc.field
    if isinstance(exc, (InsufficientStock, OutOfStock)):
        content["available_stock"] = exc.available
    return content
