"""Custom exceptions for the storefront application."""


class StorefrontError(Exception):
    """Base exception for all application errors."""
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


class BusinessLogicError(StorefrontError):
    """Exception raised for business logic violations.

    `reason` is a stable machine-readable code the caller can switch on.
    """
    def __init__(self, message, reason=None, status_code=400, payload=None):
        payload = dict(payload or ())
        if reason:
            payload['reason'] = reason
        super().__init__(message, status_code, payload)
        self.reason = reason


class NotFoundError(StorefrontError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_name, required, available=None):
        if available is None:
            message = f"Insufficient stock for {product_name}: {required} requested"
        else:
            message = f"Insufficient stock for {product_name}: {required} requested, {available} available"
        super().__init__(message, reason='insufficient_stock', status_code=409,
                         payload={'product': product_name})


class InvalidCouponError(BusinessLogicError):
    """Coupon rejected at apply time."""
    def __init__(self, message, reason):
        super().__init__(message, reason=reason, status_code=422)


class CouponUsageLimitError(BusinessLogicError):
    """Guarded coupon increment failed during order placement."""
    def __init__(self, code):
        super().__init__(f"Coupon {code} has reached its usage limit",
                         reason='coupon_usage_exceeded', status_code=409)


class InvalidShippingMethodError(BusinessLogicError):
    """Shipping method cannot be used for the destination."""
    def __init__(self, message, reason='shipping_method_unavailable'):
        super().__init__(message, reason=reason, status_code=422)


class OrderStateError(BusinessLogicError):
    """Order is not in a state that allows the requested action."""
    def __init__(self, message, reason='invalid_order_state'):
        super().__init__(message, reason=reason, status_code=409)


class OrderPlacementError(StorefrontError):
    """Checkout aborted by an invariant violation; nothing was persisted."""
    def __init__(self, reason=None):
        payload = {'reason': reason} if reason else None
        super().__init__("Order could not be placed, please try again", 409, payload)
        self.reason = reason


class RemittanceError(BusinessLogicError):
    """Invalid collection set for a remittance."""
    def __init__(self, message, reason='invalid_collections'):
        super().__init__(message, reason=reason, status_code=422)


class RemittanceMismatchError(RemittanceError):
    """Remittance header totals disagree with the attached collections."""
    def __init__(self, expected, actual):
        super().__init__(
            f"Remittance total {actual} does not match collected amount {expected}",
            reason='remittance_total_mismatch'
        )
        self.expected = expected
        self.actual = actual


class RemittanceStateError(BusinessLogicError):
    """Out-of-order remittance transition."""
    def __init__(self, message):
        super().__init__(message, reason='invalid_remittance_state', status_code=409)
