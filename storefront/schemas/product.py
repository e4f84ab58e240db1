from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, AnyUrl, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic_core import PydanticCustomError

_URL_ADAPTER = TypeAdapter(AnyUrl)


def _require_https_url(value: str) -> str:
    value = value.strip()
    try:
        url = _URL_ADAPTER.validate_python(value)
    except ValidationError:
        raise PydanticCustomError("url_invalid", "Invalid image URL")
    if url.scheme != "https":
        raise PydanticCustomError("url_scheme", "Image URLs must use https")
    return value


HttpsImageUrl = Annotated[str, AfterValidator(_require_https_url)]


class ProductFields(BaseModel):
    """Importable/editable product attributes shared by forms and spreadsheet rows."""
    name: str = Field(..., min_length=1, max_length=200, description="Product name")
    description: Optional[str] = Field(None, max_length=2000)
    price: int = Field(..., gt=0, description="Price in the smallest currency unit")
    category: str = Field(..., min_length=1, max_length=100)
    images: list[HttpsImageUrl] = Field(..., min_length=1, description="HTTPS image URLs")
    is_active: bool = True
    stock: int = Field(0, ge=0, description="Available stock (must be non-negative)")
    low_stock_threshold: int = Field(5, ge=0)


class ProductCreate(ProductFields):
    """Schema for creating a product from the admin form."""
    external_id: Optional[str] = Field(None, min_length=1, max_length=64)

    @field_validator("external_id", mode="before")
    @classmethod
    def blank_external_id_is_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value


class ProductUpdate(BaseModel):
    """Schema for updating an existing product. All fields are optional."""
    external_id: Optional[str] = Field(None, min_length=1, max_length=64)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    price: Optional[int] = Field(None, gt=0)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    images: Optional[list[HttpsImageUrl]] = Field(None, min_length=1)
    is_active: Optional[bool] = None
    stock: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)


class ProductResponse(BaseModel):
    """Schema for product response including all fields."""
    id: str
    external_id: str
    name: str
    description: Optional[str] = None
    price: int
    category: str
    images: list[str]
    is_active: bool
    stock: int
    low_stock_threshold: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProductListResponse(BaseModel):
    """Schema for paginated product list response."""
    items: list[ProductResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class PriceRange(BaseModel):
    """Cheapest and most expensive active product, for the price filter."""
    min: int
    max: int


class ImportRow(ProductFields):
    """One validated spreadsheet row, ready to be upserted by external id."""
    external_id: str = Field(..., min_length=1, max_length=64)


class ImportRowError(BaseModel):
    row: int
    messages: list[str]


class SheetParseResult(BaseModel):
    rows: list[ImportRow] = []
    errors: list[ImportRowError] = []


class ImportReport(BaseModel):
    created: int
    updated: int
    errors: list[ImportRowError]
