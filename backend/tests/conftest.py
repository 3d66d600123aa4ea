"""
Pytest fixtures for the clinic backend tests.

Provides an in-memory database, seeded roles/permissions, one user per
default role and authenticated test-client headers.
"""

import pytest
from miniclinic import create_app
from miniclinic.extensions import cache, db
from miniclinic.models import Product, Patient
from miniclinic.services import permission_service
from miniclinic.services.auth_service import create_default_roles, create_user


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
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
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        cache.clear()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def seed(db_session):
    """Default roles and permissions."""
    create_default_roles()
    permission_service.initialize_permissions()
    permission_service.assign_default_role_permissions()


def _make_user(username: str, role_name: str | None):
    return create_user(
        username=username,
        email=f"{username}@clinic.test",
        password=PASSWORD,
        name=username.capitalize(),
        role_name=role_name,
    )


@pytest.fixture(scope='function')
def admin_user(seed):
    return _make_user("admin", "admin")


@pytest.fixture(scope='function')
def doctor_user(seed):
    return _make_user("doctor", "doctor")


@pytest.fixture(scope='function')
def receptionist_user(seed):
    return _make_user("reception", "receptionist")


@pytest.fixture(scope='function')
def no_role_user(seed):
    return _make_user("nobody", None)


@pytest.fixture(scope='function')
def product(db_session):
    """10 packs of 12 items."""
    p = Product(
        name="Toothbrush",
        sku="TB-001",
        price_cents=1000,
        cost_price_cents=600,
        stock_quantity=10,
        quantity_per_pack=12,
    )
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def patient(db_session):
    p = Patient(name="Ama Mensah", phone="0240000000")
    db_session.add(p)
    db_session.commit()
    return p


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture(scope='function')
def doctor_headers(client, doctor_user):
    return auth_headers(get_auth_token(client, doctor_user.username))


@pytest.fixture(scope='function')
def receptionist_headers(client, receptionist_user):
    return auth_headers(get_auth_token(client, receptionist_user.username))
