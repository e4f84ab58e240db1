import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic_core import PydanticCustomError

from storefront.models.order import OrderStatus

# Mobile numbers: leading 0 or +84, carrier prefix 3/5/7/8/9, then 8 digits
PHONE_PATTERN = re.compile(r"^(0|\+84)(3|5|7|8|9)[0-9]{8}$")


class OrderItemCreate(BaseModel):
    """One cart line."""
    product_id: str = Field(..., min_length=1, max_length=36, description="ID of the product to purchase")
    quantity: int = Field(..., ge=1, le=99, description="Quantity to purchase")


class CheckoutCreate(BaseModel):
    """Schema for placing an order from the storefront checkout form."""
    customer_name: str = Field(..., min_length=2, max_length=100)
    customer_phone: str
    customer_email: Optional[EmailStr] = None
    customer_address: str = Field(..., min_length=10, max_length=500)
    notes: Optional[str] = Field(None, max_length=500)
    items: list[OrderItemCreate]

    @field_validator("customer_phone")
    @classmethod
    def validate_phone(cls, value: str) -> str:
        if not PHONE_PATTERN.match(value):
            raise PydanticCustomError("phone_invalid", "Invalid phone number")
        return value

    @field_validator("customer_email", mode="before")
    @classmethod
    def empty_email_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("items")
    @classmethod
    def items_not_empty(cls, value: list[OrderItemCreate]) -> list[OrderItemCreate]:
        if not value:
            raise PydanticCustomError("cart_empty", "Cart must not be empty")
        return value


class OrderCreated(BaseModel):
    order_id: str


class OrderItemResponse(BaseModel):
    id: str
    product_id: str
    product_name: Optional[str] = None
    product_images: list[str] = []
    quantity: int
    price: int


class OrderDetail(BaseModel):
    """Order with its line items, shown after checkout."""
    id: str
    total: int
    status: OrderStatus
    shipping_name: str
    shipping_phone: str
    shipping_address: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    items: list[OrderItemResponse]


class OrderSummary(BaseModel):
    """Row of the admin order list."""
    id: str
    total: int
    status: OrderStatus
    shipping_name: str
    shipping_phone: str
    created_at: Optional[datetime] = None
    item_count: int

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    page: int
    page_size: int
    total_items: int
    total_pages: int


class OrderFilters(BaseModel):
    status: Optional[OrderStatus] = None
    search: Optional[str] = None


class OrderListResponse(BaseModel):
    """Schema for paginated order list response."""
    orders: list[OrderSummary]
    pagination: Pagination
