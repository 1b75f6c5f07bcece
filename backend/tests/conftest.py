"""
Pytest fixtures for LaundryPOS backend tests.

Provides an in-memory database per test, two store chains (admin A owns
S1 and S3, admin B owns S2) with their employers, products and a
promotion, plus bearer-token helpers.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from laundrypos import create_app
from laundrypos.extensions import db
from laundrypos.models import Product, Promotion, Store, User
from laundrypos.models.auth import ROLE_ADMIN, ROLE_EMPLOYER, ROLE_ROOT
from laundrypos.services.auth_service import hash_password
from laundrypos.services.scope_service import Principal
from laundrypos.services.session_service import create_session, select_store
from laundrypos.time_utils import today


PASSWORD = "Password123!"


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    yield db.session
    db.session.rollback()


def make_user(db_session, username: str, role: str, store_id: int | None = None) -> User:
    user = User(
        username=username,
        name=username.replace("_", " ").title(),
        password_hash=hash_password(PASSWORD),
        role=role,
        store_id=store_id,
    )
    db_session.add(user)
    db_session.commit()
    return user


def principal_for(user: User, store_id: int | None = None) -> Principal:
    """Principal the way require_auth builds it."""
    if user.role == ROLE_EMPLOYER:
        store_id = user.store_id
    return Principal(user_id=user.id, role=user.role, store_id=store_id)


def token_for(user: User, store_id: int | None = None) -> str:
    session, token = create_session(user_id=user.id)
    if store_id is not None:
        select_store(session, user.id, store_id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


# =============================================================================
# ACCOUNTS AND STORES
# =============================================================================


@pytest.fixture(scope='function')
def root_user(db_session):
    return make_user(db_session, "vendor_root", ROLE_ROOT)


@pytest.fixture(scope='function')
def admin_a(db_session):
    return make_user(db_session, "admin_a", ROLE_ADMIN)


@pytest.fixture(scope='function')
def admin_b(db_session):
    return make_user(db_session, "admin_b", ROLE_ADMIN)


@pytest.fixture(scope='function')
def store_s1(db_session, admin_a):
    store = Store(name="Store S1", admin_id=admin_a.id)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_s2(db_session, admin_b):
    store = Store(name="Store S2", admin_id=admin_b.id)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_s3(db_session, admin_a):
    """Second store of chain A."""
    store = Store(name="Store S3", admin_id=admin_a.id)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def employer_s1(db_session, store_s1):
    return make_user(db_session, "employer_s1", ROLE_EMPLOYER, store_s1.id)


@pytest.fixture(scope='function')
def employer_s2(db_session, store_s2):
    return make_user(db_session, "employer_s2", ROLE_EMPLOYER, store_s2.id)


@pytest.fixture(scope='function')
def employer_s3(db_session, store_s3, employer_s1):
    # Created after employer_s1 so that chain A's default assignee stays in S1
    return make_user(db_session, "employer_s3", ROLE_EMPLOYER, store_s3.id)


@pytest.fixture(scope='function')
def chain(root_user, admin_a, admin_b, store_s1, store_s2, store_s3,
          employer_s1, employer_s2, employer_s3):
    """Both chains with their stores and employers."""
    return {
        "root": root_user,
        "admin_a": admin_a,
        "admin_b": admin_b,
        "s1": store_s1,
        "s2": store_s2,
        "s3": store_s3,
        "employer_s1": employer_s1,
        "employer_s2": employer_s2,
        "employer_s3": employer_s3,
    }


# =============================================================================
# CATALOG
# =============================================================================


def make_product(db_session, store_id, name, price, status="active", unit="kg") -> Product:
    product = Product(store_id=store_id, name=name, unit=unit, price=Decimal(price), status=status)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_s1(db_session, store_s1):
    return make_product(db_session, store_s1.id, "Wash and fold", "50000")


@pytest.fixture(scope='function')
def product_s2(db_session, store_s2):
    return make_product(db_session, store_s2.id, "Dry cleaning", "20000", unit="cai")


@pytest.fixture(scope='function')
def product_s3(db_session, store_s3):
    return make_product(db_session, store_s3.id, "Ironing", "10000", unit="cai")


@pytest.fixture(scope='function')
def inactive_product_s1(db_session, store_s1):
    return make_product(db_session, store_s1.id, "Retired service", "30000", status="inactive")


def make_promotion(db_session, created_by, store_id=None, **overrides) -> Promotion:
    values = dict(
        name="Half price over 100k",
        type="bill_amount",
        min_bill_amount=Decimal("100000"),
        discount_type="percentage",
        discount_value=Decimal("50"),
        max_discount_amount=Decimal("20000"),
        start_date=today() - timedelta(days=1),
        end_date=today() + timedelta(days=30),
        status="active",
        store_id=store_id,
        created_by=created_by,
    )
    values.update(overrides)
    promotion = Promotion(**values)
    db_session.add(promotion)
    db_session.commit()
    return promotion


@pytest.fixture(scope='function')
def promo_s1(db_session, admin_a, store_s1):
    """50% capped at 20000, bills of at least 100000, store S1 only."""
    return make_promotion(db_session, admin_a.id, store_s1.id)


# =============================================================================
# TOKENS
# =============================================================================


@pytest.fixture(scope='function')
def root_headers(root_user):
    return auth_headers(token_for(root_user))


@pytest.fixture(scope='function')
def admin_a_headers(admin_a):
    return auth_headers(token_for(admin_a))


@pytest.fixture(scope='function')
def admin_b_headers(admin_b):
    return auth_headers(token_for(admin_b))


@pytest.fixture(scope='function')
def employer_s1_headers(employer_s1):
    return auth_headers(token_for(employer_s1))


@pytest.fixture(scope='function')
def employer_s2_headers(employer_s2):
    return auth_headers(token_for(employer_s2))
