from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session

from storefront.api.responses import result_response
from storefront.auth import AdminAuthorizer, CurrentUser, get_admin_authorizer, get_current_user
from storefront.database import get_db
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post(
    "/",
    status_code=status.HTTP_201_CREATED,
    summary="Place an order (checkout)",
    description="""
    Create an order from the storefront checkout form.

    **Race Condition Handling:**
    Stock check and decrement run in one transaction with the cart's products
    locked (SELECT FOR UPDATE). When several shoppers buy the last unit at the
    same time only one succeeds; the others receive a 409 with an
    out-of-stock message.

    Prices and the order total are always computed on the server.
    """
)
def create_order(
    payload: dict[str, Any] = Body(...),
    user: Optional[CurrentUser] = Depends(get_current_user),
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    """
    Place an order.

    - **customer_name**, **customer_phone**, **customer_address** (required)
    - **customer_email**, **notes** (optional)
    - **items**: list of `{product_id, quantity}` (at least one)

    Authenticated callers have the order and customer record linked to
    their account; guests are matched by phone number.
    """
    service = OrderService(db, authorizer)
    result = service.create_order(payload, user.user_id if user else None)
    return result_response(result, status.HTTP_201_CREATED)


@router.get(
    "/{order_id}",
    summary="Get order by ID",
    description="Get an order with its items, e.g. for the checkout success page."
)
def get_order(
    order_id: str,
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    """Get an order by ID."""
    service = OrderService(db, authorizer)
    return result_response(service.get_order(order_id))
