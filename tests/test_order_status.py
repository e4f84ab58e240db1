"""Tests for the order status workflow."""
import pytest

from storefront.auth import CurrentUser
from storefront.models.order import ORDER_TRANSITIONS, Order, OrderStatus
from storefront.services.order_service import OrderService


@pytest.fixture
def place_order(db_session, make_product, checkout_payload, authorizer):
    """Place an order and optionally force it into a given status."""
    def _place(status=OrderStatus.PENDING, quantity=2, product=None):
        product = product or make_product(stock=10)
        result = OrderService(db_session, authorizer).create_order(
            checkout_payload([{"product_id": product.id, "quantity": quantity}])
        )
        order = db_session.get(Order, result.data.order_id)
        order.status = status
        db_session.commit()
        return order, product
    return _place


ALL_PAIRS = [(current, new) for current in OrderStatus for new in OrderStatus]


@pytest.mark.parametrize("current, new", ALL_PAIRS)
def test_transition_table(db_session, place_order, authorizer, admin_user, current, new):
    """Every status pair is accepted exactly when the workflow allows it."""
    order, _ = place_order(status=current)
    service = OrderService(db_session, authorizer)

    result = service.update_order_status(order.id, new, admin_user)

    allowed = new in ORDER_TRANSITIONS[current]
    assert result.success is allowed
    db_session.refresh(order)
    if allowed:
        assert order.status == new
    else:
        assert order.status == current
        assert result.error == f"Cannot transition from {current.value} to {new.value}"


def test_terminal_states_have_no_transitions():
    assert ORDER_TRANSITIONS[OrderStatus.COMPLETED] == set()
    assert ORDER_TRANSITIONS[OrderStatus.CANCELLED] == set()


def test_cancel_restores_stock_once(db_session, place_order, authorizer, admin_user):
    order, product = place_order(quantity=3)
    db_session.refresh(product)
    assert product.stock == 7
    service = OrderService(db_session, authorizer)

    first = service.update_order_status(order.id, "CANCELLED", admin_user)
    second = service.update_order_status(order.id, "CANCELLED", admin_user)

    assert first.success is True
    assert second.success is False
    assert second.error == "Cannot transition from CANCELLED to CANCELLED"
    db_session.refresh(product)
    assert product.stock == 10


def test_cancel_shipped_order_restores_every_item(db_session, make_product, checkout_payload, authorizer, admin_user):
    lamp = make_product(name="Lamp", stock=5)
    rug = make_product(name="Rug", stock=4)
    result = OrderService(db_session, authorizer).create_order(checkout_payload([
        {"product_id": lamp.id, "quantity": 2},
        {"product_id": rug.id, "quantity": 1},
        {"product_id": lamp.id, "quantity": 1},
    ]))
    order = db_session.get(Order, result.data.order_id)
    order.status = OrderStatus.SHIPPED
    db_session.commit()

    OrderService(db_session, authorizer).update_order_status(order.id, OrderStatus.CANCELLED, admin_user)

    db_session.refresh(lamp)
    db_session.refresh(rug)
    assert lamp.stock == 5
    assert rug.stock == 4


def test_non_cancel_transition_keeps_stock(db_session, place_order, authorizer, admin_user):
    order, product = place_order(quantity=4)

    OrderService(db_session, authorizer).update_order_status(order.id, "PAID", admin_user)

    db_session.refresh(product)
    assert product.stock == 6


def test_order_not_found(db_session, authorizer, admin_user):
    result = OrderService(db_session, authorizer).update_order_status("missing", "PAID", admin_user)

    assert result.success is False
    assert result.error == "Order not found"


def test_unknown_status(db_session, place_order, authorizer, admin_user):
    order, _ = place_order()

    result = OrderService(db_session, authorizer).update_order_status(order.id, "LOST", admin_user)

    assert result.success is False
    assert result.error == "Unknown order status: LOST"


@pytest.mark.parametrize("user", [None, CurrentUser(user_id="shopper-1", email="shopper@example.com")])
def test_status_change_requires_admin(db_session, place_order, authorizer, user):
    order, product = place_order()

    result = OrderService(db_session, authorizer).update_order_status(order.id, "CANCELLED", user)

    assert result.success is False
    assert result.error == "Unauthorized"
    db_session.refresh(order)
    assert order.status == OrderStatus.PENDING


def test_status_endpoint(client, db_session, place_order, admin_headers):
    order, _ = place_order()

    response = client.patch(
        f"/api/v1/admin/orders/{order.id}/status",
        json={"status": "PAID"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["success"] is True
    db_session.refresh(order)
    assert order.status == OrderStatus.PAID


def test_status_endpoint_rejects_invalid_transition(client, place_order, admin_headers):
    order, _ = place_order(status=OrderStatus.COMPLETED)

    response = client.patch(
        f"/api/v1/admin/orders/{order.id}/status",
        json={"status": "PENDING"},
        headers=admin_headers,
    )

    assert response.status_code == 409
    assert response.json()["error"] == "Cannot transition from COMPLETED to PENDING"


def test_status_endpoint_forbidden_for_shopper(client, place_order, shopper_headers):
    order, _ = place_order()

    response = client.patch(
        f"/api/v1/admin/orders/{order.id}/status",
        json={"status": "PAID"},
        headers=shopper_headers,
    )

    assert response.status_code == 403
    assert response.json() == {"success": False, "data": None, "error": "Unauthorized"}


def test_second_admin_email_is_case_insensitive(client, place_order):
    order, _ = place_order()

    response = client.patch(
        f"/api/v1/admin/orders/{order.id}/status",
        json={"status": "PAID"},
        headers={"X-User-Id": "ops-1", "X-User-Email": "OPS@example.COM"},
    )

    assert response.status_code == 200
