"""Domain errors raised by the ledger and the exchange state machine.

Every error is a recoverable, caller-visible outcome. Each class carries the
HTTP status and machine-readable code the API layer renders it with.
"""
from fastapi import Request
from fastapi.responses import JSONResponse


class ExchangeError(Exception):
    status_code = 400
    code = "EXCHANGE_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class NotFoundError(ExchangeError):
    status_code = 404
    code = "NOT_FOUND"


class ForbiddenError(ExchangeError):
    status_code = 403
    code = "FORBIDDEN"


class InvalidStateError(ExchangeError):
    status_code = 409
    code = "INVALID_STATE"


class ExchangeExpiredError(InvalidStateError):
    """The request was past its deadline and has been expired and refunded."""


class ExchangeBusyError(InvalidStateError):
    """Another resolver holds the request row; the reaper retries next run."""


class ConflictError(ExchangeError):
    status_code = 409
    code = "CONFLICT"


class InvalidOperationError(ExchangeError):
    status_code = 422
    code = "INVALID_OPERATION"


class InsufficientBalanceError(ExchangeError):
    status_code = 422
    code = "INSUFFICIENT_BALANCE"


class InvalidAmountError(ExchangeError):
    status_code = 422
    code = "INVALID_AMOUNT"


class InternalError(ExchangeError):
    status_code = 500
    code = "INTERNAL_ERROR"


async def exchange_error_handler(request: Request, exc: ExchangeError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": {"code": exc.code, "message": exc.message}},
    )
