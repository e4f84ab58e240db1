import logging
from typing import Optional

from sqlalchemy.orm import Session

from storefront.models.customer import Customer
from storefront.schemas.customer import CustomerDetails

logger = logging.getLogger(__name__)


class PhoneConflictError(Exception):
    """Raised when an account tries to take over a phone number owned by another customer."""
    pass


class CustomerService:
    """
    Customer identity reconciliation for checkout.

    Phone numbers identify guests and returning customers; account ids
    identify authenticated users. `reconcile` decides which record a checkout
    belongs to, in this order:

    1. A customer with the submitted phone. Contact details are refreshed and
       an unlinked record is linked to the caller's account, unless that
       account already owns another record. An existing link is never
       replaced, so a phone collision cannot hijack another account.
    2. For authenticated callers, the customer linked to their account. Its
       phone is moved to the submitted number unless another customer owns it.
    3. Otherwise a new customer, linked to the account when there is one.

    All queries run on the caller's session so they share its transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_phone(self, phone: str) -> Optional[Customer]:
        return self.db.query(Customer).filter(Customer.phone == phone).first()

    def get_by_user(self, user_id: str) -> Optional[Customer]:
        return self.db.query(Customer).filter(Customer.user_id == user_id).first()

    def reconcile(self, details: CustomerDetails, user_id: Optional[str] = None) -> Customer:
        """
        Find, update, link or create the customer for a checkout.

        Raises:
            PhoneConflictError: If the caller's account record would take a
                phone number that belongs to another customer
        """
        customer = self.get_by_phone(details.phone)

        if customer:
            customer.name = details.name
            customer.email = details.email or None
            customer.address = details.address
            if user_id and not customer.user_id:
                account_customer = self.get_by_user(user_id)
                if account_customer is None:
                    logger.info(f"Linking customer {customer.id} to account {user_id}")
                    customer.user_id = user_id
                else:
                    # An account owns at most one customer record
                    logger.info(
                        f"Not linking customer {customer.id}: account {user_id} "
                        f"already owns customer {account_customer.id}"
                    )
            self.db.flush()
            return customer

        if user_id:
            customer = self.get_by_user(user_id)
            if customer:
                phone_owner = self.get_by_phone(details.phone)
                if phone_owner and phone_owner.id != customer.id:
                    raise PhoneConflictError(details.phone)

                customer.name = details.name
                customer.phone = details.phone
                customer.email = details.email or None
                customer.address = details.address
                self.db.flush()
                return customer

        customer = Customer(
            user_id=user_id,
            name=details.name,
            phone=details.phone,
            email=details.email or None,
            address=details.address,
        )
        self.db.add(customer)
        self.db.flush()
        return customer
