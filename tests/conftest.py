from decimal import Decimal
from types import SimpleNamespace

import pytest

from config import TestingConfig
from restohub import create_app, db
from restohub.models import Branch, DiningTable, MenuItem, User
from restohub.permissions import BuiltInRole
from restohub.services.passwords import hash_password
from restohub.services.roles import seed_roles

PASSWORD = "Str0ng!Pass"


@pytest.fixture()
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        seed_roles()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    def _make(email="customer@example.com", role_id=BuiltInRole.CUSTOMER,
              password=PASSWORD, user_name="Test User", **fields):
        user = User(user_name=user_name, email=email, password=hash_password(password),
                    role_id=int(role_id), **fields)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture()
def login(client):
    """Log in through the API and return the JSON body."""
    def _login(email, password=PASSWORD):
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.get_json()
        return response.get_json()
    return _login


@pytest.fixture()
def auth_headers(login):
    def _headers(email, password=PASSWORD):
        return {"Authorization": f"Bearer {login(email, password)['token']}"}
    return _headers


@pytest.fixture()
def admin(make_user):
    return make_user(email="admin@example.com", role_id=BuiltInRole.ADMIN, user_name="Admin")


@pytest.fixture()
def staff(make_user):
    return make_user(email="staff@example.com", role_id=BuiltInRole.STAFF, user_name="Staff")


@pytest.fixture()
def customer(make_user):
    return make_user(email="customer@example.com", role_id=BuiltInRole.CUSTOMER)


@pytest.fixture()
def restaurant(app):
    branch = Branch(name="Downtown", address="1 Main Street")
    db.session.add(branch)
    db.session.flush()
    table = DiningTable(branch_id=branch.id, table_number="T1", capacity=4)
    burger = MenuItem(name="Burger", price=Decimal("12.50"))
    soup = MenuItem(name="Soup", price=Decimal("4.25"))
    db.session.add_all([table, burger, soup])
    db.session.commit()
    return SimpleNamespace(branch=branch, table=table, burger=burger, soup=soup)
