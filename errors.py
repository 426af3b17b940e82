import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from mailer import EmailError

logger = logging.getLogger(__name__)

# Client-facing messages per failure kind; raw details are only logged.
ERROR_MESSAGES = {
    "database": "Database error, please try again later",
    "email": "Could not send email, please try again later",
    "internal": "Internal server error",
}


def _field_name(loc) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": _field_name(err.get("loc", ())), "message": err.get("msg", "invalid value")}
        for err in exc.errors()
    ]
    first = errors[0] if errors else {"field": "request", "message": "invalid request"}
    return JSONResponse(
        status_code=400,
        content={"detail": f"{first['field']}: {first['message']}", "errors": errors},
    )


async def database_exception_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": ERROR_MESSAGES["database"]})


async def email_exception_handler(request: Request, exc: EmailError):
    logger.error("Email delivery failed on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": ERROR_MESSAGES["email"]})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": ERROR_MESSAGES["internal"]})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PyMongoError, database_exception_handler)
    app.add_exception_handler(EmailError, email_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
