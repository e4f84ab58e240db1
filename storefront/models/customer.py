from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from storefront.database import Base
from storefront.models.product import generate_id


class Customer(Base):
    """
    Reconciled identity used for order fulfilment.

    A null `user_id` marks a guest record that has not been linked to an
    authenticated account yet. Phone numbers are unique across customers.
    """
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(255), unique=True, nullable=True, index=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(20), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=True)
    address = Column(String(500), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    orders = relationship("Order", back_populates="customer")

    def __repr__(self):
        return f"<Customer(id={self.id}, phone='{self.phone}', user_id={self.user_id})>"
