"""Tests for the transaction helper."""
import pytest

from storefront.database import transaction
from storefront.models.product import Product


def test_transaction_commits(db_session):
    with transaction(db_session):
        db_session.add(Product(name="Bowl", price=1000, category="Kitchen", images=["https://cdn.example.com/b.jpg"]))

    db_session.rollback()
    assert db_session.query(Product).count() == 1


def test_transaction_rolls_back_and_reraises(db_session):
    with pytest.raises(RuntimeError):
        with transaction(db_session):
            db_session.add(Product(name="Bowl", price=1000, category="Kitchen", images=["https://cdn.example.com/b.jpg"]))
            db_session.flush()
            raise RuntimeError("boom")

    assert db_session.query(Product).count() == 0


def test_isolation_level_is_ignored_on_sqlite(db_session):
    with transaction(db_session, isolation_level="REPEATABLE READ"):
        assert db_session.query(Product).count() == 0
