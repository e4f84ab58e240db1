from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.auth import CurrentUser, get_current_user
from storefront.database import get_db
from storefront.schemas.customer import CustomerResponse
from storefront.services.customer_service import CustomerService

router = APIRouter(prefix="/customers", tags=["Customers"])


@router.get(
    "/me",
    response_model=Optional[CustomerResponse],
    summary="Saved checkout details",
    description="Customer details linked to the signed-in account, used to pre-fill checkout."
)
def get_my_customer(
    user: Optional[CurrentUser] = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Returns null for guests and for accounts that have not checked out yet."""
    if user is None:
        return None
    return CustomerService(db).get_by_user(user.user_id)
