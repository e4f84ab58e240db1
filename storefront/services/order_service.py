import logging
from typing import Any, Optional, Union

from pydantic import ValidationError
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from storefront.auth import AdminAuthorizer, CurrentUser, UnauthorizedError, get_admin_authorizer
from storefront.database import transaction
from storefront.models.order import Order, OrderItem, OrderStatus, can_transition
from storefront.models.product import Product
from storefront.schemas.customer import CustomerDetails
from storefront.schemas.order import (
    CheckoutCreate,
    OrderCreated,
    OrderDetail,
    OrderFilters,
    OrderItemResponse,
    OrderListResponse,
    OrderSummary,
    Pagination,
)
from storefront.schemas.result import ActionResult, ErrorCode, first_error_message
from storefront.services.customer_service import CustomerService, PhoneConflictError
from storefront.utils.cache import cache_service
from storefront.utils.pagination import normalize_pagination, page_window

logger = logging.getLogger(__name__)

MAX_SEARCH_LENGTH = 200

PRODUCTS_UNAVAILABLE_MESSAGE = "Some products are no longer available"
PRODUCT_REMOVED_MESSAGE = "A product in your cart is no longer available"
OUT_OF_STOCK_RETRY_MESSAGE = "Product is out of stock, please try again"
PHONE_CONFLICT_MESSAGE = "This phone number is already used by another account"
CHECKOUT_FAILED_MESSAGE = "Could not create the order. Please try again."


class InsufficientStockError(Exception):
    """Exception raised when there's not enough stock to fulfill an order."""

    def __init__(self, product_name: str, available: int):
        self.product_name = product_name
        self.available = available
        if available <= 0:
            message = f'Product "{product_name}" is out of stock'
        else:
            message = f'Only {available} left of "{product_name}"'
        super().__init__(message)


class ProductsUnavailableError(Exception):
    """Exception raised when a cart references missing or inactive products."""
    pass


class OrderNotFoundError(Exception):
    """Exception raised when the requested order doesn't exist."""
    pass


class InvalidTransitionError(Exception):
    """Exception raised when a status change is not in ORDER_TRANSITIONS."""

    def __init__(self, current: OrderStatus, new: OrderStatus):
        self.current = current
        self.new = new
        super().__init__(f"Cannot transition from {current.value} to {new.value}")


def _is_foreign_key_violation(error: IntegrityError) -> bool:
    if getattr(error.orig, "pgcode", None) == "23503":
        return True
    return "FOREIGN KEY" in str(error.orig).upper()


def _is_stock_violation(error: IntegrityError) -> bool:
    if getattr(error.orig, "pgcode", None) == "23514":
        return True
    return "check_stock_non_negative" in str(error.orig)


class OrderService:
    """
    Service class for checkout and order administration.

    RACE CONDITION HANDLING STRATEGY:
    =================================
    Checkout runs in one transaction. The cart's products are read with
    SELECT ... FOR UPDATE, so concurrent checkouts of the same product queue
    behind each other and the second one re-checks stock after the first
    commits. Stock is then decremented with an in-database expression and the
    `check_stock_non_negative` constraint rejects anything that slips past
    the application check; that IntegrityError is reported as "out of stock".

    Status changes lock the order row before reading its status, so a
    double-submitted cancel cannot restore stock twice.
    """

    def __init__(self, db: Session, authorizer: Optional[AdminAuthorizer] = None):
        self.db = db
        self.authorizer = authorizer or get_admin_authorizer()

    def create_order(
        self,
        payload: Union[CheckoutCreate, dict[str, Any]],
        user_id: Optional[str] = None,
    ) -> ActionResult[OrderCreated]:
        """
        Place an order from a checkout form.

        Algorithm:
        1. Validate the submitted form
        2. Lock the cart's active products and check stock for every line
        3. Decrement stock and snapshot prices into the order items
        4. Reconcile the customer record
        5. Create the PENDING order and commit

        Any failure rolls the whole transaction back.

        Args:
            payload: Checkout form data
            user_id: Authenticated account id, or None for guest checkout

        Returns:
            ActionResult carrying the new order id or a user-facing error
        """
        try:
            checkout = CheckoutCreate.model_validate(payload)
        except ValidationError as e:
            return ActionResult.fail(first_error_message(e), ErrorCode.VALIDATION)

        try:
            with transaction(self.db):
                order, product_ids = self._place_order(checkout, user_id)
                order_id = order.id
                total = order.total
        except ProductsUnavailableError:
            return ActionResult.fail(PRODUCTS_UNAVAILABLE_MESSAGE, ErrorCode.CONFLICT)
        except InsufficientStockError as e:
            logger.warning(f"Checkout rejected: {e}")
            return ActionResult.fail(str(e), ErrorCode.CONFLICT)
        except PhoneConflictError:
            return ActionResult.fail(PHONE_CONFLICT_MESSAGE, ErrorCode.CONFLICT)
        except IntegrityError as e:
            logger.error(f"Integrity error creating order: {e}")
            if _is_foreign_key_violation(e):
                return ActionResult.fail(PRODUCT_REMOVED_MESSAGE, ErrorCode.CONFLICT)
            if _is_stock_violation(e):
                # Another checkout won the race for the last units
                return ActionResult.fail(OUT_OF_STOCK_RETRY_MESSAGE, ErrorCode.CONFLICT)
            return ActionResult.fail(CHECKOUT_FAILED_MESSAGE, ErrorCode.INTERNAL)
        except Exception:
            logger.exception("Order creation failed")
            return ActionResult.fail(CHECKOUT_FAILED_MESSAGE, ErrorCode.INTERNAL)

        # Invalidate product cache since stock changed
        cache_service.delete_many("product", product_ids)

        logger.info(f"Order #{order_id} created with total {total}")
        return ActionResult.ok(OrderCreated(order_id=order_id))

    def _place_order(self, checkout: CheckoutCreate, user_id: Optional[str]) -> tuple[Order, list[str]]:
        # Quantities per product, so repeated cart lines are checked together
        requested: dict[str, int] = {}
        for item in checkout.items:
            requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

        products = (
            self.db.query(Product)
            .filter(Product.id.in_(list(requested)), Product.is_active.is_(True))
            .order_by(Product.id)
            .with_for_update()  # Pessimistic locking
            .all()
        )
        if len(products) < len(requested):
            raise ProductsUnavailableError()

        product_map = {product.id: product for product in products}

        # Check every line before touching any stock
        for product_id, quantity in requested.items():
            product = product_map[product_id]
            if product.stock < quantity:
                raise InsufficientStockError(product.name, product.stock)

        # Snapshot server-side prices; client totals are never trusted
        order_items = [
            OrderItem(
                product_id=item.product_id,
                quantity=item.quantity,
                price=product_map[item.product_id].price,
            )
            for item in checkout.items
        ]
        total = sum(item.price * item.quantity for item in order_items)

        for product_id, quantity in requested.items():
            (
                self.db.query(Product)
                .filter(Product.id == product_id)
                .update({Product.stock: Product.stock - quantity}, synchronize_session=False)
            )

        customer = CustomerService(self.db).reconcile(
            CustomerDetails(
                name=checkout.customer_name,
                phone=checkout.customer_phone,
                email=str(checkout.customer_email) if checkout.customer_email else None,
                address=checkout.customer_address,
            ),
            user_id,
        )

        order = Order(
            total=total,
            status=OrderStatus.PENDING,
            user_id=user_id,
            customer_id=customer.id,
            shipping_name=checkout.customer_name,
            shipping_phone=checkout.customer_phone,
            shipping_address=checkout.customer_address,
            notes=checkout.notes or None,
            items=order_items,
        )
        self.db.add(order)
        self.db.flush()

        return order, list(requested)

    def get_order(self, order_id: str) -> ActionResult[OrderDetail]:
        """Get an order with its items and the products' names and images."""
        order = (
            self.db.query(Order)
            .options(selectinload(Order.items).selectinload(OrderItem.product))
            .filter(Order.id == order_id)
            .first()
        )
        if not order:
            return ActionResult.fail("Order not found", ErrorCode.NOT_FOUND)

        return ActionResult.ok(OrderDetail(
            id=order.id,
            total=order.total,
            status=order.status,
            shipping_name=order.shipping_name,
            shipping_phone=order.shipping_phone,
            shipping_address=order.shipping_address,
            notes=order.notes,
            created_at=order.created_at,
            items=[
                OrderItemResponse(
                    id=item.id,
                    product_id=item.product_id,
                    product_name=item.product.name if item.product else None,
                    product_images=list(item.product.images or []) if item.product else [],
                    quantity=item.quantity,
                    price=item.price,
                )
                for item in order.items
            ],
        ))

    def get_orders(
        self,
        page: Optional[float] = None,
        page_size: Optional[float] = None,
        filters: Optional[Union[OrderFilters, dict[str, Any]]] = None,
        user: Optional[CurrentUser] = None,
    ) -> ActionResult[OrderListResponse]:
        """
        Get paginated list of orders for the admin back-office.

        Count and page are read in one REPEATABLE READ transaction so the
        totals always describe the returned rows. A page past the end is
        clamped to the last page.

        Args:
            page: Requested page (1-indexed)
            page_size: Items per page, clamped to MAX_PAGE_SIZE
            filters: Exact status and free-text search over id, name and phone
            user: Calling admin
        """
        try:
            self.authorizer.require_admin(user)
        except UnauthorizedError:
            return ActionResult.fail("Unauthorized", ErrorCode.UNAUTHORIZED)

        try:
            filters = OrderFilters.model_validate(filters or {})
        except ValidationError as e:
            return ActionResult.fail(first_error_message(e), ErrorCode.VALIDATION)

        page, page_size = normalize_pagination(page, page_size)

        query = self.db.query(Order)
        if filters.status:
            query = query.filter(Order.status == filters.status)

        search = (filters.search or "").strip()[:MAX_SEARCH_LENGTH]
        if search:
            query = query.filter(or_(
                Order.id.icontains(search, autoescape=True),
                Order.shipping_name.icontains(search, autoescape=True),
                Order.shipping_phone.contains(search, autoescape=True),
            ))

        with transaction(self.db, isolation_level="REPEATABLE READ"):
            total_items = query.count()
            page, total_pages, skip = page_window(page, page_size, total_items)

            orders = (
                query.options(selectinload(Order.items))
                .order_by(Order.created_at.desc(), Order.id.desc())
                .offset(skip)
                .limit(page_size)
                .all()
            )
            summaries = [
                OrderSummary(
                    id=order.id,
                    total=order.total,
                    status=order.status,
                    shipping_name=order.shipping_name,
                    shipping_phone=order.shipping_phone,
                    created_at=order.created_at,
                    item_count=len(order.items),
                )
                for order in orders
            ]

        return ActionResult.ok(OrderListResponse(
            orders=summaries,
            pagination=Pagination(
                page=page,
                page_size=page_size,
                total_items=total_items,
                total_pages=total_pages,
            ),
        ))

    def update_order_status(
        self,
        order_id: str,
        new_status: Union[OrderStatus, str],
        user: Optional[CurrentUser] = None,
    ) -> ActionResult[None]:
        """
        Move an order along the status state machine.

        The order row is locked for the whole transaction. Cancelling returns
        every item's quantity to its product's stock before the new status is
        written; the terminal CANCELLED state guarantees this happens once.
        """
        try:
            self.authorizer.require_admin(user)
        except UnauthorizedError:
            return ActionResult.fail("Unauthorized", ErrorCode.UNAUTHORIZED)

        try:
            status = OrderStatus(new_status)
        except ValueError:
            return ActionResult.fail(f"Unknown order status: {new_status}", ErrorCode.VALIDATION)

        try:
            with transaction(self.db):
                restored = self._apply_status(order_id, status)
        except OrderNotFoundError:
            return ActionResult.fail("Order not found", ErrorCode.NOT_FOUND)
        except InvalidTransitionError as e:
            logger.warning(f"Order #{order_id}: {e}")
            return ActionResult.fail(str(e), ErrorCode.CONFLICT)
        except Exception:
            logger.exception(f"Failed to update status of order #{order_id}")
            return ActionResult.fail("Could not update the order status", ErrorCode.INTERNAL)

        if restored:
            cache_service.delete_many("product", restored)

        logger.info(f"Order #{order_id} moved to {status.value}")
        return ActionResult.ok(None)

    def _apply_status(self, order_id: str, status: OrderStatus) -> list[str]:
        order = (
            self.db.query(Order)
            .filter(Order.id == order_id)
            .with_for_update()
            .first()
        )
        if not order:
            raise OrderNotFoundError(order_id)

        if not can_transition(order.status, status):
            raise InvalidTransitionError(order.status, status)

        restored = []
        if status == OrderStatus.CANCELLED:
            for item in order.items:
                (
                    self.db.query(Product)
                    .filter(Product.id == item.product_id)
                    .update({Product.stock: Product.stock + item.quantity}, synchronize_session=False)
                )
                restored.append(item.product_id)

        order.status = status
        return restored
