import logging
import uuid
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.auth import AdminAuthorizer, CurrentUser, UnauthorizedError, get_admin_authorizer
from storefront.database import transaction
from storefront.models.product import Product
from storefront.schemas.product import PriceRange, ProductCreate, ProductListResponse, ProductResponse, ProductUpdate
from storefront.schemas.result import ActionResult, ErrorCode, first_error_message
from storefront.utils.cache import cache_service
from storefront.utils.pagination import normalize_pagination, page_window

logger = logging.getLogger(__name__)


DEFAULT_MIN_PRICE = 0
DEFAULT_MAX_PRICE = 10_000_000


class CatalogFilters(BaseModel):
    search: Optional[str] = None
    categories: list[str] = []
    min_price: Optional[int] = Field(None, ge=0)
    max_price: Optional[int] = Field(None, ge=0)


class AdminProductFilters(BaseModel):
    search: Optional[str] = None
    categories: list[str] = []
    status: Optional[str] = None  # "active" or "inactive"


def _apply_search(query, search: Optional[str], categories: list[str]):
    if search:
        query = query.filter(or_(
            Product.name.icontains(search, autoescape=True),
            Product.description.icontains(search, autoescape=True),
        ))
    if categories:
        query = query.filter(Product.category.in_(categories))
    return query


class ProductService:
    """
    Service class for Product CRUD operations.

    This service handles:
    - Admin create, update, activate/deactivate and delete
    - Paginated admin listing with search and filters
    - Storefront catalog listing and product reads (with caching)
    - Category and price-range lookups for the catalog filters
    - Cache invalidation
    """

    CACHE_PREFIX = "product"

    def __init__(self, db: Session, authorizer: Optional[AdminAuthorizer] = None):
        self.db = db
        self.authorizer = authorizer or get_admin_authorizer()

    def _require_admin(self, user: Optional[CurrentUser]) -> Optional[ActionResult]:
        try:
            self.authorizer.require_admin(user)
        except UnauthorizedError:
            return ActionResult.fail("Unauthorized", ErrorCode.UNAUTHORIZED)
        return None

    def create(
        self,
        product_data: Union[ProductCreate, dict[str, Any]],
        user: Optional[CurrentUser] = None,
    ) -> ActionResult[ProductResponse]:
        """
        Create a new product.

        A missing external id is replaced by a generated one.
        """
        denied = self._require_admin(user)
        if denied:
            return denied

        try:
            data = ProductCreate.model_validate(product_data)
        except ValidationError as e:
            return ActionResult.fail(first_error_message(e), ErrorCode.VALIDATION)

        try:
            with transaction(self.db):
                product = Product(
                    external_id=data.external_id or str(uuid.uuid4()),
                    name=data.name,
                    description=data.description or None,
                    price=data.price,
                    category=data.category,
                    images=list(data.images),
                    is_active=data.is_active,
                    stock=data.stock,
                    low_stock_threshold=data.low_stock_threshold,
                )
                self.db.add(product)
                self.db.flush()
                response = ProductResponse.model_validate(product)
        except IntegrityError as e:
            logger.warning(f"Rejected product create: {e}")
            return ActionResult.fail("External ID already exists", ErrorCode.CONFLICT)
        except Exception:
            logger.exception("Failed to create product")
            return ActionResult.fail("Failed to create product", ErrorCode.INTERNAL)

        logger.info(f"Product {response.id} ({response.external_id}) created")
        return ActionResult.ok(response)

    def get_active(self, product_id: str) -> Optional[dict]:
        """
        Get storefront product details from cache or database.

        Inactive products are hidden from the storefront.

        Returns:
            Product data as dictionary or None
        """
        cached = cache_service.get(self.CACHE_PREFIX, product_id)
        if cached:
            return cached

        product = (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.is_active.is_(True))
            .first()
        )
        if not product:
            return None

        product_dict = ProductResponse.model_validate(product).model_dump(mode="json")
        cache_service.set(self.CACHE_PREFIX, product_id, product_dict)
        return product_dict

    def list_admin(
        self,
        page: int = 1,
        page_size: int = 20,
        filters: Optional[Union[AdminProductFilters, dict[str, Any]]] = None,
        user: Optional[CurrentUser] = None,
    ) -> ActionResult[ProductListResponse]:
        """
        Get paginated list of products for the back-office.

        Args:
            page: Page number (1-indexed)
            page_size: Number of items per page
            filters: Search over name/description, categories, active status
            user: Calling admin
        """
        denied = self._require_admin(user)
        if denied:
            return denied

        try:
            filters = AdminProductFilters.model_validate(filters or {})
        except ValidationError as e:
            return ActionResult.fail(first_error_message(e), ErrorCode.VALIDATION)

        query = self.db.query(Product)
        if filters.status == "active":
            query = query.filter(Product.is_active.is_(True))
        elif filters.status == "inactive":
            query = query.filter(Product.is_active.is_(False))
        query = _apply_search(query, filters.search, filters.categories)

        return ActionResult.ok(self._paginate(query, page, page_size))

    def list_active(
        self,
        page: int = 1,
        page_size: int = 20,
        filters: Optional[Union[CatalogFilters, dict[str, Any]]] = None,
    ) -> ActionResult[ProductListResponse]:
        """
        Get paginated list of active products for the storefront catalog.

        Args:
            page: Page number (1-indexed), clamped to the last page
            page_size: Number of items per page
            filters: Search over name/description, categories, price bounds
        """
        try:
            filters = CatalogFilters.model_validate(filters or {})
        except ValidationError as e:
            return ActionResult.fail(first_error_message(e), ErrorCode.VALIDATION)

        query = self.db.query(Product).filter(Product.is_active.is_(True))
        query = _apply_search(query, filters.search, filters.categories)
        if filters.min_price is not None:
            query = query.filter(Product.price >= filters.min_price)
        if filters.max_price is not None:
            query = query.filter(Product.price <= filters.max_price)

        return ActionResult.ok(self._paginate(query, page, page_size))

    def get_admin(self, product_id: str, user: Optional[CurrentUser] = None) -> ActionResult[ProductResponse]:
        """Back-office product detail; inactive products included."""
        denied = self._require_admin(user)
        if denied:
            return denied

        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            return ActionResult.fail("Product not found", ErrorCode.NOT_FOUND)
        return ActionResult.ok(ProductResponse.model_validate(product))

    def get_categories(self) -> list[str]:
        """Distinct categories of active products, sorted."""
        rows = (
            self.db.query(Product.category)
            .filter(Product.is_active.is_(True))
            .distinct()
            .order_by(Product.category)
            .all()
        )
        return [category for (category,) in rows]

    def get_all_categories(self, user: Optional[CurrentUser] = None) -> ActionResult[list[str]]:
        """Distinct categories across every product, for back-office filters."""
        denied = self._require_admin(user)
        if denied:
            return denied

        rows = self.db.query(Product.category).distinct().order_by(Product.category).all()
        return ActionResult.ok([category for (category,) in rows])

    def get_price_range(self) -> PriceRange:
        """
        Cheapest and most expensive active product.

        Falls back to the default bounds when the catalog has no active products.
        """
        low, high = (
            self.db.query(func.min(Product.price), func.max(Product.price))
            .filter(Product.is_active.is_(True))
            .one()
        )
        return PriceRange(
            min=DEFAULT_MIN_PRICE if low is None else low,
            max=DEFAULT_MAX_PRICE if high is None else high,
        )

    def _paginate(self, query, page: int, page_size: int) -> ProductListResponse:
        page, page_size = normalize_pagination(page, page_size)
        total = query.count()
        page, total_pages, skip = page_window(page, page_size, total)

        products = (
            query.order_by(Product.created_at.desc(), Product.id.desc())
            .offset(skip)
            .limit(page_size)
            .all()
        )
        return ProductListResponse(
            items=[ProductResponse.model_validate(p) for p in products],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
        )

    def update(
        self,
        product_id: str,
        product_data: Union[ProductUpdate, dict[str, Any]],
        user: Optional[CurrentUser] = None,
    ) -> ActionResult[ProductResponse]:
        """
        Update an existing product.

        Only fields present in `product_data` are changed.
        """
        denied = self._require_admin(user)
        if denied:
            return denied

        try:
            data = ProductUpdate.model_validate(product_data)
        except ValidationError as e:
            return ActionResult.fail(first_error_message(e), ErrorCode.VALIDATION)

        update_data = data.model_dump(exclude_unset=True)

        try:
            with transaction(self.db):
                product = self.db.query(Product).filter(Product.id == product_id).first()
                if not product:
                    return ActionResult.fail("Product not found", ErrorCode.NOT_FOUND)

                # Update only provided fields
                for field, value in update_data.items():
                    if value is not None:
                        setattr(product, field, value)
                self.db.flush()
                response = ProductResponse.model_validate(product)
        except IntegrityError as e:
            logger.warning(f"Rejected update of product {product_id}: {e}")
            return ActionResult.fail("External ID already exists", ErrorCode.CONFLICT)
        except Exception:
            logger.exception(f"Failed to update product {product_id}")
            return ActionResult.fail("Failed to update product", ErrorCode.INTERNAL)

        self._invalidate_cache(product_id)
        return ActionResult.ok(response)

    def set_active(
        self,
        product_id: str,
        is_active: bool,
        user: Optional[CurrentUser] = None,
    ) -> ActionResult[None]:
        """Show or hide a product on the storefront."""
        return self._write(
            product_id,
            user,
            lambda product: setattr(product, "is_active", is_active),
            "Failed to update product status",
        )

    def delete(self, product_id: str, user: Optional[CurrentUser] = None) -> ActionResult[None]:
        """Permanently delete a product."""
        return self._write(product_id, user, self.db.delete, "Failed to delete product")

    def _write(self, product_id: str, user: Optional[CurrentUser], apply, failure_message: str) -> ActionResult[None]:
        denied = self._require_admin(user)
        if denied:
            return denied

        try:
            with transaction(self.db):
                product = self.db.query(Product).filter(Product.id == product_id).first()
                if not product:
                    return ActionResult.fail("Product not found", ErrorCode.NOT_FOUND)
                apply(product)
        except IntegrityError as e:
            logger.warning(f"Rejected write to product {product_id}: {e}")
            return ActionResult.fail("Product is referenced by existing orders", ErrorCode.CONFLICT)
        except Exception:
            logger.exception(f"{failure_message}: {product_id}")
            return ActionResult.fail(failure_message, ErrorCode.INTERNAL)

        self._invalidate_cache(product_id)
        return ActionResult.ok(None)

    def _invalidate_cache(self, product_id: str) -> None:
        """Invalidate cache for a product."""
        cache_service.delete(self.CACHE_PREFIX, product_id)
