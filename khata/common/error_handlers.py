from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from khata.core.exceptions import LedgerError, NotFoundError, PartialWriteError, ValidationError
from khata.logger_config import logger

STATUS_FOR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PartialWriteError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(error: LedgerError) -> int:
    for error_type, code in STATUS_FOR:
        if isinstance(error, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def register_error_handlers(app: FastAPI):
    @app.exception_handler(LedgerError)
    async def handle_ledger_error(request: Request, e: LedgerError):
        code = status_for(e)
        if code >= 500:
            logger.error(f"{request.method} {request.url.path}: {e.message}")
        return JSONResponse(
            status_code=code,
            content={"success": False, "message": e.message, "status_code": code},
        )

    @app.exception_handler(Exception)
    async def handle_exception(request: Request, e: Exception):
        # Log the exception with traceback
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "message": "Internal Server Error",
                "details": str(e),
                "status_code": 500,
            },
        )
