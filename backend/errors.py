"""Перевод ошибок perfbudget в HTTP ответы."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from perfbudget.core.errors import (
    AuthorizationError,
    NotFoundError,
    PerfBudgetError,
    StorageError,
    ValidationError,
)

STATUS_CODES = {
    ValidationError: 422,
    AuthorizationError: 403,
    NotFoundError: 404,
    StorageError: 500,
}


def status_for(exc: PerfBudgetError) -> int:
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(PerfBudgetError)
    async def handle_perfbudget_error(request: Request, exc: PerfBudgetError):
        return JSONResponse(
            status_code=status_for(exc),
            content={"error": exc.error_code, "message": exc.message},
        )
