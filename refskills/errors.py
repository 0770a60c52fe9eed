"""Exception hierarchy and FastAPI error handlers.

Store and auth code raise these; `register_error_handlers` turns them into
short plain-text responses. Status codes are the contract, bodies are
informative only.

Usage:
    if not ref_exists(conn, key):
        raise NotFoundError("Ref does not exist")

Anything that is not a RefSkillsError (storage failures, serialization
failures, bugs) becomes a 500 with no detail leaked to the client.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse


logger = logging.getLogger(__name__)


class RefSkillsError(Exception):
    """Base class for errors with a client-facing status code."""

    status_code = 500

    def __init__(self, message: str = "internal_error"):
        self.message = message
        super().__init__(message)


class BadRequestError(RefSkillsError):
    status_code = 400


class ConflictError(BadRequestError):
    """Duplicate create. Reported as 400 like every other client error here."""


class NotFoundError(BadRequestError):
    """Referenced entity is absent. Modeled as 400, not 404."""


class UnauthorizedError(RefSkillsError):
    status_code = 401


class DataIntegrityError(RefSkillsError):
    """A row exists but is missing data it must have."""

    status_code = 500


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RefSkillsError)
    async def _refskills_error(request: Request, exc: RefSkillsError) -> PlainTextResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            return PlainTextResponse("internal_error", status_code=exc.status_code)

        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        logger.debug("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.message)
        return PlainTextResponse(exc.message, status_code=exc.status_code, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> PlainTextResponse:
        logger.debug("%s %s -> 400 invalid request: %s", request.method, request.url.path, exc.errors())
        return PlainTextResponse("invalid request", status_code=400)

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> PlainTextResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return PlainTextResponse("internal_error", status_code=500)
