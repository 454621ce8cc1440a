from typing import Optional


class ShopError(Exception):
    """Base error carrying the HTTP status and a message safe to show clients."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class Unauthenticated(ShopError):
    status_code = 401
    message = "Unauthorized access"


class Forbidden(ShopError):
    status_code = 403
    message = "Forbidden access"


class NotFound(ShopError):
    status_code = 404
    message = "Not found"


class InvalidRequest(ShopError):
    status_code = 400
    message = "Invalid request"


class OutOfStock(InvalidRequest):
    message = "Product out of stock"


class InternalError(ShopError):
    status_code = 500
