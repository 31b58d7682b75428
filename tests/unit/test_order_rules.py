"""
Unit tests for order lifecycle gates and transaction subjects.
"""

from datetime import datetime, timedelta

import pytest

from storefront.models import Order, OrderSubject, RefundSubject, subject_columns, subject_from_row
from storefront.services.order_service import can_be_cancelled, can_be_refunded, generate_order_number

DELIVERED_AT = datetime(2024, 5, 1, 10, 0, 0)


class TestCancellationGate:
    @pytest.mark.parametrize('status,expected', [
        ('pending', True),
        ('processing', True),
        ('shipped', False),
        ('delivered', False),
        ('cancelled', False),
        ('refunded', False),
    ])
    def test_only_pending_or_processing(self, status, expected):
        assert can_be_cancelled(Order(status=status)) is expected


class TestRefundGate:
    """Refunds are allowed for delivered orders within the refund window."""

    def test_inside_window(self):
        order = Order(status='delivered', delivered_at=DELIVERED_AT)
        assert can_be_refunded(order, now=DELIVERED_AT + timedelta(days=29))

    def test_outside_window(self):
        order = Order(status='delivered', delivered_at=DELIVERED_AT)
        assert not can_be_refunded(order, now=DELIVERED_AT + timedelta(days=31))

    def test_window_is_configurable(self):
        order = Order(status='delivered', delivered_at=DELIVERED_AT)
        assert not can_be_refunded(order, now=DELIVERED_AT + timedelta(days=8), window_days=7)

    def test_not_delivered(self):
        order = Order(status='shipped', delivered_at=None)
        assert not can_be_refunded(order, now=DELIVERED_AT)

    def test_delivered_without_timestamp(self):
        assert not can_be_refunded(Order(status='delivered', delivered_at=None), now=DELIVERED_AT)


class TestTransactionSubject:
    def test_order_subject_columns(self):
        assert subject_columns(OrderSubject(5)) == ('order', 5)
        assert subject_columns(RefundSubject(9)) == ('refund', 9)

    def test_rebuild_from_row(self):
        assert subject_from_row('order', 5) == OrderSubject(5)
        assert subject_from_row('refund', 9) == RefundSubject(9)

    def test_unknown_subject_type(self):
        with pytest.raises(ValueError):
            subject_from_row('invoice', 1)
        with pytest.raises(ValueError):
            subject_columns(('order', 1))


class TestOrderNumber:
    def test_format(self, session):
        number = generate_order_number(session, datetime(2024, 6, 1))
        assert number.startswith('ORD-20240601-')
        assert len(number) == len('ORD-20240601-') + 6
