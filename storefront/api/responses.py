from fastapi import status
from fastapi.responses import JSONResponse

from storefront.schemas.result import ActionResult, ErrorCode

STATUS_CODES = {
    ErrorCode.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorCode.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def result_response(result: ActionResult, success_status: int = status.HTTP_200_OK) -> JSONResponse:
    """Serialize an ActionResult, mapping failures to an HTTP error status."""
    if result.success:
        status_code = success_status
    else:
        status_code = STATUS_CODES.get(result.code, status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))
