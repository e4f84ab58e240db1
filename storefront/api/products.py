from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from storefront.api.responses import result_response
from storefront.auth import AdminAuthorizer, get_admin_authorizer
from storefront.database import get_db
from storefront.schemas.product import PriceRange, ProductResponse
from storefront.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["Products"])


@router.get(
    "/",
    summary="Browse the catalog",
    description="Paginated list of active products with search, category and price filters."
)
def list_products(
    page: int = Query(1, description="Page number; past-the-end pages show the last page"),
    page_size: int = Query(20, description="Items per page (max 100)"),
    search: Optional[str] = Query(None, description="Search by name or description"),
    category: Optional[list[str]] = Query(None, description="Filter by category"),
    min_price: Optional[int] = Query(None, description="Lowest price to include"),
    max_price: Optional[int] = Query(None, description="Highest price to include"),
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    service = ProductService(db, authorizer)
    filters = {
        "search": search,
        "categories": category or [],
        "min_price": min_price,
        "max_price": max_price,
    }
    return result_response(service.list_active(page, page_size, filters))


@router.get(
    "/categories",
    response_model=list[str],
    summary="Catalog categories",
    description="Distinct categories of active products."
)
def list_categories(
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    return ProductService(db, authorizer).get_categories()


@router.get(
    "/price-range",
    response_model=PriceRange,
    summary="Catalog price range",
    description="Lowest and highest price among active products."
)
def get_price_range(
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    return ProductService(db, authorizer).get_price_range()


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Get product by ID",
    description="Storefront product detail. Results are cached in Redis."
)
def get_product(
    product_id: str,
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    """
    Get an active product by ID.

    This endpoint uses Redis caching for improved performance.
    Cache TTL is 5 minutes by default.
    """
    service = ProductService(db, authorizer)
    product = service.get_active(product_id)

    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product with ID {product_id} not found"
        )

    return product
