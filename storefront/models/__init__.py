"""Models package - exports all SQLAlchemy models."""
# Identity & settings
from storefront.models.user import User
from storefront.models.currency import Currency

# Catalog
from storefront.models.product import Product
from storefront.models.product_variant import ProductVariant

# Pricing inputs
from storefront.models.coupon import Coupon, CouponUser, CouponType
from storefront.models.city import City
from storefront.models.shipping_zone import ShippingZone, shipping_zone_cities
from storefront.models.shipping_method import ShippingMethod, ShippingMethodZone, CalculationType

# Cart & orders
from storefront.models.cart import Cart
from storefront.models.cart_item import CartItem
from storefront.models.order import Order, OrderStatus, CANCELLABLE_STATUSES, TERMINAL_STATUSES
from storefront.models.order_item import OrderItem
from storefront.models.order_address import OrderAddress
from storefront.models.order_status_history import OrderStatusHistory

# Payments
from storefront.models.payment import Payment, PaymentStatus
from storefront.models.transaction import (
    Transaction, TransactionLog, TransactionStatus, TransactionType,
    OrderSubject, RefundSubject, TransactionSubject, subject_columns, subject_from_row
)
from storefront.models.payment_webhook import PaymentWebhook
from storefront.models.refund import Refund

# Delivery & cash on delivery
from storefront.models.delivery_person import DeliveryPerson
from storefront.models.delivery_assignment import DeliveryAssignment, AssignmentStatus, OPEN_ASSIGNMENT_STATUSES
from storefront.models.cod_collection import CodCollection, CollectionStatus
from storefront.models.cod_remittance import CodRemittance, CodRemittanceCollection, RemittanceStatus

__all__ = [
    'User', 'Currency',
    'Product', 'ProductVariant',
    'Coupon', 'CouponUser', 'CouponType',
    'City', 'ShippingZone', 'shipping_zone_cities', 'ShippingMethod', 'ShippingMethodZone', 'CalculationType',
    'Cart', 'CartItem',
    'Order', 'OrderStatus', 'CANCELLABLE_STATUSES', 'TERMINAL_STATUSES',
    'OrderItem', 'OrderAddress', 'OrderStatusHistory',
    'Payment', 'PaymentStatus',
    'Transaction', 'TransactionLog', 'TransactionStatus', 'TransactionType',
    'OrderSubject', 'RefundSubject', 'TransactionSubject', 'subject_columns', 'subject_from_row',
    'PaymentWebhook', 'Refund',
    'DeliveryPerson', 'DeliveryAssignment', 'AssignmentStatus', 'OPEN_ASSIGNMENT_STATUSES',
    'CodCollection', 'CollectionStatus', 'CodRemittance', 'CodRemittanceCollection', 'RemittanceStatus',
]
