from typing import Any, List, Optional
from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

def to_jsonable(data: Any) -> Any:
    """Encode pydantic models, datetimes and ObjectIds into plain JSON types."""
    if isinstance(data, BaseModel):
        # python-mode dump keeps ObjectIds in aggregation docs for the encoder below
        data = data.model_dump(by_alias=True)
    return jsonable_encoder(data, by_alias=True, custom_encoder={ObjectId: str})

def no_store_json(data, status_code: int = 200):
    """Return JSONResponse with no-store caching headers."""
    return JSONResponse(content=to_jsonable(data), status_code=status_code, headers=NO_STORE_HEADERS)

def success_response(data: Any = None, message: str = "Success", status_code: int = 200) -> JSONResponse:
    """Wrap ``data`` in the success envelope shared with the frontend."""
    return no_store_json(
        {
            "statusCode": status_code,
            "data": to_jsonable(data),
            "message": message,
            "success": status_code < 400,
        },
        status_code=status_code,
    )

def error_response(status_code: int, message: str, errors: Optional[List[Any]] = None, headers: Optional[dict] = None) -> JSONResponse:
    """Error envelope; ``message`` must already be safe to show to clients."""
    content = {
        "statusCode": status_code,
        "success": False,
        "message": message,
        "errors": list(errors or []),
    }
    merged = dict(NO_STORE_HEADERS)
    if headers:
        merged.update(headers)
    return JSONResponse(content=to_jsonable(content), status_code=status_code, headers=merged)
