import os
from io import BytesIO

# Configure the application for tests before anything reads the settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CACHE_ENABLED"] = "false"
os.environ["ADMIN_EMAILS"] = "admin@example.com, Ops@Example.com"

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

from storefront.auth import AdminAuthorizer, CurrentUser
from storefront.database import Base, SessionLocal, engine
from storefront.main import app
from storefront.models.customer import Customer
from storefront.models.product import Product

ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Email": "admin@example.com"}
SHOPPER_HEADERS = {"X-User-Id": "shopper-1", "X-User-Email": "shopper@example.com"}


@pytest.fixture(scope="function")
def db_session():
    """Create database session for direct database access in tests."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create test client sharing the fresh database of `db_session`."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)


@pytest.fixture
def shopper_headers():
    return dict(SHOPPER_HEADERS)


@pytest.fixture
def authorizer():
    return AdminAuthorizer(["admin@example.com"])


@pytest.fixture
def admin_user():
    return CurrentUser(user_id="admin-1", email="admin@example.com")


@pytest.fixture
def make_product(db_session):
    """Factory inserting a committed product."""
    def _make(**overrides):
        data = {
            "name": "Stoneware Vase",
            "price": 100000,
            "category": "Decor",
            "images": ["https://cdn.example.com/vase.jpg"],
            "stock": 10,
            "is_active": True,
        }
        data.update(overrides)
        product = Product(**data)
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product
    return _make


@pytest.fixture
def make_customer(db_session):
    """Factory inserting a committed customer."""
    def _make(**overrides):
        data = {
            "name": "Existing Customer",
            "phone": "0912345678",
            "email": None,
            "address": "1 Old Street, District 1, Ho Chi Minh City",
            "user_id": None,
        }
        data.update(overrides)
        customer = Customer(**data)
        db_session.add(customer)
        db_session.commit()
        db_session.refresh(customer)
        return customer
    return _make


@pytest.fixture
def checkout_payload():
    """Builder for a valid checkout form."""
    def _build(items, **overrides):
        payload = {
            "customer_name": "Nguyen Van A",
            "customer_phone": "0912345678",
            "customer_email": "a@example.com",
            "customer_address": "123 Nguyen Trai, District 1, Ho Chi Minh City",
            "notes": "",
            "items": items,
        }
        payload.update(overrides)
        return payload
    return _build


IMPORT_HEADERS = ["external_id", "name", "price", "category", "images", "description", "isActive"]


@pytest.fixture
def build_xlsx():
    """Serialize a header row plus data rows into .xlsx bytes."""
    def _build(rows, headers=IMPORT_HEADERS):
        workbook = Workbook()
        sheet = workbook.active
        if headers is not None:
            sheet.append(headers)
        for row in rows:
            sheet.append(row)
        output = BytesIO()
        workbook.save(output)
        return output.getvalue()
    return _build


@pytest.fixture
def product_row():
    """Builder for one spreadsheet row in IMPORT_HEADERS order."""
    def _build(external_id="SP001", **overrides):
        row = {
            "name": "Stoneware Vase",
            "price": 199000,
            "category": "Decor",
            "images": "https://cdn.example.com/vase.jpg",
            "description": "Hand-glazed",
            "isActive": True,
        }
        row.update(overrides)
        return [external_id] + [row[header] for header in IMPORT_HEADERS[1:]]
    return _build
