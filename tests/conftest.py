import os
import tempfile
import uuid
from datetime import datetime
from decimal import Decimal

import pytest

# SQLite file shared by the app's scoped session and the test session
_db_dir = tempfile.mkdtemp(prefix='storefront-tests-')
os.environ['TEST_DATABASE_URL'] = f"sqlite:///{os.path.join(_db_dir, 'storefront.db')}"

from sqlalchemy.orm import Session

from storefront import create_app, database
from storefront.database import Base, create_all
from storefront.models import (
    User, Currency, Product, ProductVariant, Coupon, City, ShippingZone, ShippingMethod,
    ShippingMethodZone, DeliveryPerson
)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestConfig')
    app.config['TESTING'] = True
    app.config['WTF_CSRF_ENABLED'] = False
    create_all()
    return app


@pytest.fixture(scope='function', autouse=True)
def clean_tables(app):
    """Every test starts from empty tables."""
    yield
    database.db_session.remove()
    with database.engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session for service-level tests, separate from the request session."""
    session = Session(bind=database.engine)
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope='function')
def now():
    return datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture(scope='function')
def customer(session):
    """Create a signed-up customer."""
    suffix = str(uuid.uuid4())[:8]
    user = User(email=f'customer-{suffix}@test.com', name='Test Customer')
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def other_customer(session):
    suffix = str(uuid.uuid4())[:8]
    user = User(email=f'other-{suffix}@test.com', name='Other Customer')
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(session):
    suffix = str(uuid.uuid4())[:8]
    user = User(email=f'admin-{suffix}@test.com', name='Shop Admin')
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def currencies(session):
    """USD as base currency plus EGP."""
    usd = Currency(code='USD', name='US Dollar', symbol='$', exchange_rate=Decimal('1'),
                   is_active=True, is_default=True)
    egp = Currency(code='EGP', name='Egyptian Pound', symbol='E£', exchange_rate=Decimal('48.5000'),
                   is_active=True, is_default=False)
    session.add_all([usd, egp])
    session.commit()
    return {'USD': usd, 'EGP': egp}


@pytest.fixture(scope='function')
def product(session):
    """Simple product: 50.00 each, 10 in stock, 0.5 kg."""
    product = Product(
        sku=f'SKU-{uuid.uuid4().hex[:6]}',
        name={'en': 'Coffee Mug', 'ar': 'كوب قهوة'},
        price=Decimal('50.00'),
        quantity=10,
        track_quantity=True,
        weight=Decimal('0.500'),
        is_active=True,
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def second_product(session):
    product = Product(
        sku=f'SKU-{uuid.uuid4().hex[:6]}',
        name={'en': 'Tea Pot'},
        price=Decimal('30.00'),
        quantity=5,
        track_quantity=True,
        weight=Decimal('1.200'),
        is_active=True,
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_with_variants(session):
    """T-shirt sold in M (20.00, 3 left) and L (22.00, 0 left)."""
    product = Product(
        sku=f'TSHIRT-{uuid.uuid4().hex[:6]}',
        name={'en': 'T-Shirt'},
        price=Decimal('20.00'),
        quantity=0,
        track_quantity=True,
        weight=Decimal('0.200'),
        is_active=True,
    )
    product.variants.append(ProductVariant(sku=f'TS-M-{uuid.uuid4().hex[:4]}', attributes={'size': 'M'},
                                           price=Decimal('20.00'), quantity=3, is_active=True))
    product.variants.append(ProductVariant(sku=f'TS-L-{uuid.uuid4().hex[:4]}', attributes={'size': 'L'},
                                           price=Decimal('22.00'), quantity=0, is_active=True))
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def make_coupon(session):
    """Factory: make_coupon('WELCOME10', type='percentage', value=10, ...)."""
    def _make(code, type='fixed', value='10.00', **kwargs):
        coupon = Coupon(code=code, type=type, value=Decimal(str(value)), used_count=0,
                        is_active=kwargs.pop('is_active', True), **kwargs)
        session.add(coupon)
        session.commit()
        return coupon
    return _make


@pytest.fixture(scope='function')
def city(session):
    city = City(name={'en': 'Cairo', 'ar': 'القاهرة'}, country_code='EG')
    session.add(city)
    session.commit()
    return city


@pytest.fixture(scope='function')
def shipping(session, city):
    """
    Zone 'Greater Cairo' (containing `city`) served by a flat 50.00 method
    that supports COD with a fixed 5.00 fee.
    """
    zone = ShippingZone(name={'en': 'Greater Cairo'}, is_active=True)
    zone.cities.append(city)
    method = ShippingMethod(
        name={'en': 'Standard', 'ar': 'عادي'},
        base_cost=Decimal('50.00'),
        calculation_type='flat',
        min_days=2,
        max_days=4,
        is_active=True,
        supports_cod=True,
        cod_fee=Decimal('5.00'),
        cod_fee_type='fixed',
    )
    session.add_all([zone, method])
    session.flush()
    session.add(ShippingMethodZone(shipping_method_id=method.id, shipping_zone_id=zone.id))
    session.commit()
    return {'zone': zone, 'method': method, 'city': city}


@pytest.fixture(scope='function')
def delivery_person(session):
    person = DeliveryPerson(name='Karim Courier', phone='+20100000000', is_active=True, cod_balance=0)
    session.add(person)
    session.commit()
    return person


@pytest.fixture(scope='function')
def address(shipping):
    return {
        'name': 'Test Customer',
        'phone': '+201234567890',
        'address_line_1': '12 Nile Street',
        'city_id': shipping['city'].id,
        'city': 'Cairo',
        'country': 'Egypt',
        'postal_code': '11511',
    }


@pytest.fixture(scope='function')
def usd_context():
    from storefront.services.currency_service import CurrencyContext
    return CurrencyContext('USD', Decimal('1'), 'USD', 'en', '$')


@pytest.fixture(scope='function')
def place(session, customer, shipping, address, usd_context, now):
    """Factory placing an order for `customer` from a fresh cart."""
    from storefront.services import cart_service, order_service

    def _place(items, payment_method='card', coupon_code=None, user=None, when=None):
        user = user or customer
        cart = cart_service.get_or_create_cart(session, user_id=user.id)
        for product_id, quantity in items:
            cart_service.add_item(session, cart, product_id, quantity, tax_rate=Decimal('14'))
        if coupon_code:
            cart_service.apply_coupon(session, cart, coupon_code, user.id, tax_rate=Decimal('14'), now=when or now)
        session.commit()
        return order_service.place_order(
            session, cart,
            shipping_method_id=shipping['method'].id,
            payment_method=payment_method,
            addresses={'shipping': address},
            currency=usd_context,
            tax_rate=Decimal('14'),
            user_id=user.id,
            now=when or now,
        )
    return _place


@pytest.fixture(scope='function')
def delivered_order(session, place, product, now):
    """A card order delivered at `now`."""
    from storefront.services.order_service import update_order_status
    order = place([(product.id, 1)])
    update_order_status(session, order, 'delivered', now=now)
    session.commit()
    return order


@pytest.fixture(scope='function')
def login(client):
    """Put a user id (and optionally the staff flag) in the client's session."""
    def _login(user_id, is_admin=False):
        with client.session_transaction() as sess:
            sess['user_id'] = user_id
            sess['is_admin'] = is_admin
        return client
    return _login
