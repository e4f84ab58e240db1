import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from storefront.auth import AdminAuthorizer, CurrentUser, UnauthorizedError, get_admin_authorizer
from storefront.config import get_settings
from storefront.database import transaction
from storefront.models.product import Product
from storefront.schemas.product import ImportReport, ImportRow
from storefront.schemas.result import ActionResult, ErrorCode
from storefront.services.product_import import parse_product_import_sheet
from storefront.utils.cache import cache_service

logger = logging.getLogger(__name__)

ALLOWED_EXTENSION = ".xlsx"


@dataclass
class ImportUpload:
    """An uploaded spreadsheet as received from the client."""
    filename: str
    content: bytes


class ImportService:
    """
    Bulk create-or-update of catalog products from a spreadsheet.

    Rows are matched to products by external id. Invalid rows are skipped
    and reported; the valid ones are written in a single transaction, so a
    failing write leaves the catalog untouched.
    """

    def __init__(self, db: Session, authorizer: Optional[AdminAuthorizer] = None, max_bytes: Optional[int] = None):
        self.db = db
        self.authorizer = authorizer or get_admin_authorizer()
        self.max_bytes = max_bytes or get_settings().MAX_IMPORT_BYTES

    def reject_oversized(self, size: Optional[int]) -> Optional[ActionResult]:
        """Fail uploads over the size limit; `size` may be unknown before reading."""
        if size is not None and size > self.max_bytes:
            return ActionResult.fail(f"File too large (max {self.max_bytes // (1024 * 1024)}MB)")
        return None

    def bulk_upsert_products(
        self,
        upload: Optional[ImportUpload],
        user: Optional[CurrentUser] = None,
    ) -> ActionResult[ImportReport]:
        """
        Import products from an uploaded .xlsx file.

        Args:
            upload: The uploaded file, or None when the form had no file
            user: Calling admin

        Returns:
            ActionResult with created/updated counts and the skipped rows
        """
        try:
            self.authorizer.require_admin(user)
        except UnauthorizedError:
            return ActionResult.fail("Unauthorized", ErrorCode.UNAUTHORIZED)

        if upload is None or not upload.filename:
            return ActionResult.fail("File is required")
        too_large = self.reject_oversized(len(upload.content))
        if too_large:
            return too_large
        if not upload.filename.lower().endswith(ALLOWED_EXTENSION):
            return ActionResult.fail("Only .xlsx files are supported")

        parsed = parse_product_import_sheet(upload.content)
        if not parsed.rows:
            if parsed.errors and parsed.errors[0].messages:
                return ActionResult.fail(parsed.errors[0].messages[0])
            return ActionResult.fail("No valid rows to import")

        external_ids = [row.external_id for row in parsed.rows]

        try:
            # Not atomic with the upsert; a product created in between is updated
            existing_ids = {
                external_id
                for (external_id,) in self.db.query(Product.external_id)
                .filter(Product.external_id.in_(external_ids))
                .all()
            }
            self.db.commit()

            with transaction(self.db):
                touched = self._upsert_rows(parsed.rows)
        except Exception:
            logger.exception("Bulk import failed")
            return ActionResult.fail("Bulk import failed", ErrorCode.INTERNAL)

        cache_service.delete_many("product", touched)

        created = sum(1 for external_id in external_ids if external_id not in existing_ids)
        updated = len(external_ids) - created
        logger.info(
            f"Imported {upload.filename}: {created} created, {updated} updated, "
            f"{len(parsed.errors)} rows skipped"
        )

        return ActionResult.ok(ImportReport(created=created, updated=updated, errors=parsed.errors))

    def _upsert_rows(self, rows: list[ImportRow]) -> list[str]:
        products = {
            product.external_id: product
            for product in self.db.query(Product)
            .filter(Product.external_id.in_([row.external_id for row in rows]))
            .with_for_update()
            .all()
        }

        for row in rows:
            product = products.get(row.external_id)
            if product is None:
                product = Product(external_id=row.external_id)
                self.db.add(product)
                products[row.external_id] = product
            product.name = row.name
            product.description = row.description or None
            product.price = row.price
            product.category = row.category
            product.images = list(row.images)
            product.is_active = row.is_active
            product.stock = row.stock
            product.low_stock_threshold = row.low_stock_threshold

        self.db.flush()
        return [product.id for product in products.values()]
