"""
Payment exceptions.

Caller errors (OrderNotFound, AlreadyPaid, TransactionNotFound, TransactionMismatch)
never touch the ledger. GatewayUnavailable means the outcome is unknown;
callers retry.
"""


class PaymentError(Exception):
    """Base class for payment failures surfaced to API callers."""
    status_code = 400


class OrderNotFound(PaymentError):
    """Raised when the referenced order does not exist."""
    status_code = 404

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class AlreadyPaid(PaymentError):
    """Raised when a payment session is requested for a paid order."""
    status_code = 409

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} already paid")


class OrderNotPayable(PaymentError):
    """Raised when the order is in a state that cannot accept payment."""
    status_code = 409


class GatewayError(PaymentError):
    """Base class for payment gateway failures."""
    status_code = 502


class GatewayUnavailable(GatewayError):
    """Network error, timeout, non-2xx or malformed gateway response."""
    pass


class TransactionNotFound(GatewayError):
    """The gateway has no record of the reference."""
    status_code = 404

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Transaction {reference} not found")


class TransactionMismatch(PaymentError):
    """The verified transaction was not opened for the order it is being applied to."""
    status_code = 409


class ProductNotFound(PaymentError):
    status_code = 404

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class AlreadyFeatured(PaymentError):
    status_code = 409

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is already featured")


class InvalidPaymentMetadata(PaymentError):
    """A successful transaction whose metadata does not describe the expected purchase."""
    pass
