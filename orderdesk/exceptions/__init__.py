"""Custom exceptions for the order desk."""

class OrderDeskError(Exception):
    """Base exception for all order desk errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class ValidationError(OrderDeskError):
    """Raised for malformed or missing input (no product, no price, bad quantity)."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(OrderDeskError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class InsufficientStockError(ValidationError):
    """Raised when an add/update fails the stock check."""
    def __init__(self, item_title, requested=None):
        self.item_title = item_title
        self.requested = requested
        message = f"Not enough of '{item_title}' available"
        payload = {'item_title': item_title}
        if requested is not None:
            payload['requested'] = requested
        super().__init__(message, status_code=409, payload=payload)

class LogicError(OrderDeskError):
    """Raised on programmer misuse (no item built yet, wrong order type)."""
    def __init__(self, message):
        super().__init__(message, 500)
