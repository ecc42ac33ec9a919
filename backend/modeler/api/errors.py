from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from modeler.errors import ModelerError
from modeler.log import get_logger

logger = get_logger(__name__)


def _jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ModelerError)
    async def modeler_error(request: Request, exc: ModelerError):
        if exc.status_code >= 500:
            logger.error(f"[API] {request.method} {request.url.path}: {exc.message} ({exc.details})")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "details": _jsonable_errors(exc)},
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error(request: Request, exc: SQLAlchemyError):
        logger.error(f"[API] {request.method} {request.url.path}: database error {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Database error", "details": str(exc)},
        )

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception(f"[API] {request.method} {request.url.path}: unhandled error")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(exc)},
        )
