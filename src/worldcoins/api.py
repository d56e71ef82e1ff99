"""HTTP surface: the mini app's verify-and-mint, verify-and-claim and token routes."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from worldcoins import __version__
from worldcoins.errors import ConfigurationError, ErrorKind
from worldcoins.services import Services, get_services
from worldcoins.tools.settle import (
    configuration_error_response,
    handle_claim_token,
    handle_create_token,
)
from worldcoins.tools.tokens import handle_list_tokens, handle_tokens_query

logger = logging.getLogger(__name__)


def _respond(body: dict) -> JSONResponse:
    return JSONResponse(body, status_code=body.get("status", 200))


async def _read_body(request: Request) -> tuple[Any, JSONResponse | None]:
    try:
        return await request.json(), None
    except ValueError:
        return None, _respond(
            {
                "status": 400,
                "success": False,
                "error": "Request body is not valid JSON",
                "errorKind": ErrorKind.BAD_REQUEST.value,
            }
        )


def create_app(services: Services | None = None) -> FastAPI:
    """Build the app. Without explicit services, they are built from config on first request."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        current = app.state.services
        if current is not None:
            await current.orchestrator.drain()

    app = FastAPI(title="WorldCoins settlement service", version=__version__, lifespan=lifespan)
    app.state.services = services

    def _services() -> Services:
        if app.state.services is None:
            app.state.services = get_services()
        return app.state.services

    @app.post("/api/verify-and-mint")
    async def verify_and_mint(request: Request) -> JSONResponse:
        body, error = await _read_body(request)
        if error is not None:
            return error
        try:
            svc = _services()
        except ConfigurationError as e:
            logger.error("Cannot settle verify-and-mint: %s", e)
            return _respond(configuration_error_response(e))
        return _respond(
            await handle_create_token(body, orchestrator=svc.orchestrator, ledger=svc.ledger)
        )

    @app.post("/api/verify-and-claim")
    async def verify_and_claim(request: Request) -> JSONResponse:
        body, error = await _read_body(request)
        if error is not None:
            return error
        try:
            svc = _services()
        except ConfigurationError as e:
            logger.error("Cannot settle verify-and-claim: %s", e)
            return _respond(configuration_error_response(e))
        return _respond(await handle_claim_token(body, orchestrator=svc.orchestrator))

    @app.get("/api/tokens")
    async def list_tokens() -> JSONResponse:
        try:
            svc = _services()
        except ConfigurationError as e:
            return _respond(configuration_error_response(e))
        return _respond(await handle_list_tokens(ledger=svc.ledger))

    @app.post("/api/tokens")
    async def query_tokens(request: Request) -> JSONResponse:
        body: Any = None
        if await request.body():
            body, error = await _read_body(request)
            if error is not None:
                return error
        try:
            svc = _services()
        except ConfigurationError as e:
            return _respond(configuration_error_response(e))
        return _respond(await handle_tokens_query(body, ledger=svc.ledger))

    return app


app = create_app()
