# =======================================================================================
# keytrack/api/errors.py - Exception Handlers
# =======================================================================================
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..models.schemas import ErrorResponse
from ..utils.exceptions import InvalidRequest, KeyTrackError

logger = logging.getLogger(__name__)


def _error_body(code: str, message: str) -> dict:
    return ErrorResponse(code=code, message=message).model_dump(by_alias=True)


async def keytrack_error_handler(request: Request, exc: KeyTrackError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}" for err in exc.errors()
    )
    return JSONResponse(
        status_code=InvalidRequest.status_code,
        content=_error_body(InvalidRequest.code, details or InvalidRequest.default_message),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(KeyTrackError, keytrack_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
