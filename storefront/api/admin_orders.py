from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.responses import result_response
from storefront.auth import AdminAuthorizer, CurrentUser, get_admin_authorizer, get_current_user
from storefront.database import get_db
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/admin/orders", tags=["Admin Orders"])


@router.get(
    "/",
    summary="List orders",
    description="Paginated order list with optional status filter and search over id, name and phone."
)
def list_orders(
    page: int = Query(1, description="Page number, clamped to the last page"),
    page_size: int = Query(20, description="Items per page (max 100)"),
    status: Optional[str] = Query(None, description="Filter by order status"),
    search: Optional[str] = Query(None, description="Search by order id, shipping name or phone"),
    user: Optional[CurrentUser] = Depends(get_current_user),
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    """Get paginated list of orders."""
    service = OrderService(db, authorizer)
    result = service.get_orders(page, page_size, {"status": status, "search": search}, user)
    return result_response(result)


@router.patch(
    "/{order_id}/status",
    summary="Change order status",
    description="""
    Move an order along its lifecycle.

    Valid status transitions:
    - PENDING → PAID, CANCELLED
    - PAID → SHIPPED, CANCELLED
    - SHIPPED → COMPLETED, CANCELLED
    - COMPLETED, CANCELLED → (no transitions allowed)

    Cancelling restores the stock of every item.
    """
)
def update_order_status(
    order_id: str,
    status: str = Body(..., embed=True),
    user: Optional[CurrentUser] = Depends(get_current_user),
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    service = OrderService(db, authorizer)
    return result_response(service.update_order_status(order_id, status, user))
