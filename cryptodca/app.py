"""
FastAPI application entry point.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from cryptodca.config import get_settings
from cryptodca.errors import ApiError
from cryptodca.middleware import GatewayKeyMiddleware
from cryptodca.observability import init_observability, report_exception
from cryptodca.routes import router


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"errorMessage": exc.message})


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"errorMessage": message})


async def _unhandled_error_handler(request: Request, exc: Exception) -> Response:
    # Internal details stay in the logs / Sentry, never in the response.
    report_exception(exc)
    return Response(status_code=500)


def create_app() -> FastAPI:
    settings = get_settings()
    init_observability(settings)

    app = FastAPI(title="Crypto DCA Backend (FastAPI)", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    if settings.api_gateway_key:
        app.add_middleware(GatewayKeyMiddleware, api_key=settings.api_gateway_key)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


app = create_app()
