from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, File, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from storefront.api.responses import result_response
from storefront.auth import AdminAuthorizer, CurrentUser, get_admin_authorizer, get_current_user
from storefront.database import get_db
from storefront.schemas.result import ActionResult, ErrorCode
from storefront.services.import_service import ImportService, ImportUpload
from storefront.services.product_import import create_product_import_template
from storefront.services.product_service import ProductService

router = APIRouter(prefix="/admin/products", tags=["Admin Products"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get(
    "/",
    summary="List products",
    description="Paginated product list with search, category and active-status filters."
)
def list_products(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Search by name or description"),
    category: Optional[list[str]] = Query(None, description="Filter by category"),
    product_status: Optional[str] = Query(None, alias="status", pattern="^(active|inactive)$"),
    user: Optional[CurrentUser] = Depends(get_current_user),
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    service = ProductService(db, authorizer)
    filters = {"search": search, "categories": category or [], "status": product_status}
    return result_response(service.list_admin(page, page_size, filters, user))


@router.post(
    "/",
    status_code=status.HTTP_201_CREATED,
    summary="Create a product",
    description="Create a catalog entry. A missing external_id is generated."
)
def create_product(
    payload: dict[str, Any] = Body(...),
    user: Optional[CurrentUser] = Depends(get_current_user),
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    service = ProductService(db, authorizer)
    return result_response(service.create(payload, user), status.HTTP_201_CREATED)


@router.get(
    "/template",
    summary="Download import template",
    description="An .xlsx file with the recognised import columns and an example row."
)
def download_import_template(
    user: Optional[CurrentUser] = Depends(get_current_user),
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
):
    if not authorizer.is_admin(user):
        return result_response(ActionResult.fail("Unauthorized", ErrorCode.UNAUTHORIZED))
    return Response(
        content=create_product_import_template(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="product-import-template.xlsx"'},
    )


@router.post(
    "/import",
    summary="Bulk import products",
    description="""
    Create or update products from an .xlsx file (max 5MB, 1000 rows).

    Rows are matched by external_id. Invalid rows are skipped and listed in
    `errors`; valid rows are written in one transaction.
    """
)
async def import_products(
    file: Optional[UploadFile] = File(None),
    user: Optional[CurrentUser] = Depends(get_current_user),
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    if not authorizer.is_admin(user):
        return result_response(ActionResult.fail("Unauthorized", ErrorCode.UNAUTHORIZED))

    service = ImportService(db, authorizer)
    upload = None
    if file is not None:
        # Reject by the declared size before buffering the body
        too_large = service.reject_oversized(file.size)
        if too_large:
            return result_response(too_large)
        upload = ImportUpload(filename=file.filename or "", content=await file.read())

    return result_response(service.bulk_upsert_products(upload, user))


@router.get(
    "/categories",
    summary="All categories",
    description="Distinct categories across active and inactive products."
)
def list_all_categories(
    user: Optional[CurrentUser] = Depends(get_current_user),
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    service = ProductService(db, authorizer)
    return result_response(service.get_all_categories(user))


@router.get(
    "/{product_id}",
    summary="Get a product",
    description="Back-office product detail, including inactive products."
)
def get_product(
    product_id: str,
    user: Optional[CurrentUser] = Depends(get_current_user),
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    service = ProductService(db, authorizer)
    return result_response(service.get_admin(product_id, user))


@router.put(
    "/{product_id}",
    summary="Update a product",
    description="Partial update; only provided fields change."
)
def update_product(
    product_id: str,
    payload: dict[str, Any] = Body(...),
    user: Optional[CurrentUser] = Depends(get_current_user),
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    service = ProductService(db, authorizer)
    return result_response(service.update(product_id, payload, user))


@router.patch(
    "/{product_id}/status",
    summary="Activate or deactivate a product"
)
def set_product_status(
    product_id: str,
    is_active: bool = Body(..., embed=True),
    user: Optional[CurrentUser] = Depends(get_current_user),
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    service = ProductService(db, authorizer)
    return result_response(service.set_active(product_id, is_active, user))


@router.delete(
    "/{product_id}",
    summary="Delete a product",
    description="Permanently delete a product. Associated cache is also cleared."
)
def delete_product(
    product_id: str,
    user: Optional[CurrentUser] = Depends(get_current_user),
    authorizer: AdminAuthorizer = Depends(get_admin_authorizer),
    db: Session = Depends(get_db)
):
    service = ProductService(db, authorizer)
    return result_response(service.delete(product_id, user))
