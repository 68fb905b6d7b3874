# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Endpoint error boundary and the request-validation handler.

Every handler body runs inside :func:`endpoint_guard`.  ``HTTPException``
passes through untouched; anything else is logged with its traceback and
turned into a bare 500 carrying only the operation's failure message.
"""

from contextlib import contextmanager

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.logger import logger


@contextmanager
def endpoint_guard(message: str):
    try:
        yield
    except HTTPException:
        raise
    except Exception:
        logger.exception(message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=message,
        )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Report malformed input as 400 with one entry per offending field.
    Runs before the handler, so nothing has been read or written yet.
    """
    errors = []
    for err in exc.errors():
        # loc is ("body", "email") etc.; drop the location prefix
        loc = [str(part) for part in err.get("loc", ())[1:]]
        errors.append({"field": ".".join(loc) or None, "message": err.get("msg", "Invalid value")})
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid input", "errors": errors},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Backstop for anything raised outside an :func:`endpoint_guard`."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )
