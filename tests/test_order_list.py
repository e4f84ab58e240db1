"""Tests for the admin order list."""
import pytest

from storefront.models.order import Order, OrderItem, OrderStatus
from storefront.services.order_service import OrderService
from storefront.utils.pagination import MAX_PAGE_SIZE, normalize_pagination, page_window


@pytest.fixture
def seed_orders(db_session, make_customer, make_product):
    """Insert `count` orders directly, bypassing checkout."""
    def _seed(count, **overrides):
        customer = make_customer(phone=overrides.pop("customer_phone", "0912345678"))
        product = make_product()
        orders = []
        for i in range(count):
            data = {
                "total": 100000,
                "status": OrderStatus.PENDING,
                "shipping_name": f"Customer {i}",
                "shipping_phone": customer.phone,
                "shipping_address": "1 Old Street, District 1, Ho Chi Minh City",
                "customer_id": customer.id,
            }
            data.update(overrides)
            order = Order(
                items=[OrderItem(product_id=product.id, quantity=1, price=100000)],
                **data,
            )
            db_session.add(order)
            orders.append(order)
        db_session.commit()
        return orders
    return _seed


def test_page_window_clamps_past_last_page():
    assert page_window(100, 20, 50) == (3, 3, 40)


def test_page_window_empty_result():
    assert page_window(5, 20, 0) == (1, 1, 0)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ((None, None), (1, 20)),
        ((0, 0), (1, 1)),
        ((-3, 500), (1, MAX_PAGE_SIZE)),
        ((2.7, 10.9), (2, 10)),
    ],
)
def test_normalize_pagination(raw, expected):
    assert normalize_pagination(*raw) == expected


def test_list_clamps_page(db_session, seed_orders, authorizer, admin_user):
    seed_orders(50)

    result = OrderService(db_session, authorizer).get_orders(100, 20, None, admin_user)

    assert result.success
    pagination = result.data.pagination
    assert (pagination.page, pagination.total_pages, pagination.total_items) == (3, 3, 50)
    assert len(result.data.orders) == 10


def test_list_item_count(db_session, seed_orders, authorizer, admin_user):
    seed_orders(1)

    result = OrderService(db_session, authorizer).get_orders(user=admin_user)

    assert result.data.orders[0].item_count == 1


def test_list_status_filter(db_session, seed_orders, authorizer, admin_user):
    seed_orders(3)
    seed_orders(2, status=OrderStatus.PAID, customer_phone="0922222222")

    result = OrderService(db_session, authorizer).get_orders(filters={"status": "PAID"}, user=admin_user)

    assert result.data.pagination.total_items == 2
    assert {order.status for order in result.data.orders} == {OrderStatus.PAID}


def test_list_rejects_unknown_status(db_session, authorizer, admin_user):
    result = OrderService(db_session, authorizer).get_orders(filters={"status": "LOST"}, user=admin_user)

    assert result.success is False
    assert result.error.startswith("status")


@pytest.mark.parametrize(
    "search, expected",
    [
        ("tran thi", 1),
        ("TRAN", 1),
        ("0922222", 1),
        ("nobody", 0),
        ("100%", 0),
    ],
)
def test_list_search(db_session, seed_orders, authorizer, admin_user, search, expected):
    seed_orders(2)
    seed_orders(1, shipping_name="Tran Thi B", customer_phone="0922222222")

    result = OrderService(db_session, authorizer).get_orders(filters={"search": search}, user=admin_user)

    assert result.data.pagination.total_items == expected


def test_list_search_by_order_id(db_session, seed_orders, authorizer, admin_user):
    orders = seed_orders(3)
    target = orders[1]

    result = OrderService(db_session, authorizer).get_orders(filters={"search": target.id[:8]}, user=admin_user)

    assert [order.id for order in result.data.orders] == [target.id]


def test_list_requires_admin(db_session, authorizer):
    result = OrderService(db_session, authorizer).get_orders()

    assert result.success is False
    assert result.error == "Unauthorized"


def test_list_endpoint(client, seed_orders, admin_headers):
    seed_orders(50)

    response = client.get(
        "/api/v1/admin/orders/",
        params={"page": 100, "page_size": 20},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["pagination"] == {"page": 3, "page_size": 20, "total_items": 50, "total_pages": 3}
    assert len(data["orders"]) == 10


def test_list_endpoint_forbidden_for_shopper(client, shopper_headers):
    response = client.get("/api/v1/admin/orders/", headers=shopper_headers)

    assert response.status_code == 403
    assert response.json()["error"] == "Unauthorized"


def test_list_endpoint_forbidden_for_guest(client):
    response = client.get("/api/v1/admin/orders/")

    assert response.status_code == 403
