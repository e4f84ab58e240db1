import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, JSON, String, Text
from sqlalchemy.sql import func

from storefront.database import Base


def generate_id() -> str:
    return str(uuid.uuid4())


class Product(Base):
    """
    Product model representing a catalog entry.

    Attributes:
        id: Opaque internal identifier
        external_id: Administrator-supplied SKU, unique across the catalog
        name: Product name
        description: Optional long description
        price: Price in the smallest currency unit (must be positive)
        category: Free-text category label
        images: Ordered list of HTTPS image URLs
        is_active: Whether the product is visible on the storefront
        stock: Sellable units (must be non-negative)
        low_stock_threshold: Stock level at which the admin UI warns
        created_at: Timestamp when product was created
        updated_at: Timestamp when product was last updated
    """
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=generate_id)
    external_id = Column(String(64), unique=True, nullable=False, index=True, default=generate_id)
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=False)
    category = Column(String(100), nullable=False, index=True)
    images = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    stock = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=5)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Database-level constraints to ensure data integrity
    __table_args__ = (
        CheckConstraint('price > 0', name='check_price_positive'),
        CheckConstraint('stock >= 0', name='check_stock_non_negative'),
    )

    def __repr__(self):
        return f"<Product(id={self.id}, external_id='{self.external_id}', stock={self.stock})>"
