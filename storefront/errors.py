import logging
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    """HTTPException carrying the extra fields of the ``{success, message}`` envelope."""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None, **extra: Any):
        super().__init__(status_code=status_code, detail=message)
        self.code = code
        self.extra = extra


class DomainError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CouponRejected(DomainError):
    pass


class StockExceeded(DomainError):
    def __init__(self, available: int):
        super().__init__(f"Only {available} items available in stock")
        self.available = available


def _envelope(status_code: int, message: str, **extra: Any) -> JSONResponse:
    body = {"success": False, "message": message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        code = getattr(exc, "code", None)
        extra = getattr(exc, "extra", {}) or {}
        return _envelope(exc.status_code, str(exc.detail), code=code, **extra)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else "Invalid request"
        return _envelope(422, message, errors=errors)

    @app.exception_handler(DomainError)
    async def domain_error(request: Request, exc: DomainError):
        return _envelope(400, exc.message)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _envelope(500, "Internal server error")
