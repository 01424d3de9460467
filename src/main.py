"""
应用入口

    uvicorn src.main:app
    gunicorn src.main:app -c gunicorn_conf.py

凭证池按进程构建：每个 worker 持有自己的凭证健康状态，重启后重置。
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.public import analyze_router, key_status_router
from src.clients.http_client import HTTPClientPool, close_http_clients
from src.config import Config, config
from src.core.error_utils import extract_client_error_message
from src.core.exceptions import GatewayException
from src.core.logger import logger
from src.services.credential import CredentialPool
from src.services.orchestration import FailoverOrchestrator, RequestDispatcher


def _error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"message": message}})


def translate_validation_error(exc: RequestValidationError) -> str:
    """把 pydantic 校验错误压成一行可读消息"""
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "invalid request"


def build_orchestrator(settings: Config) -> FailoverOrchestrator:
    pool = CredentialPool(
        settings.api_keys,
        failure_threshold=settings.key_failure_threshold,
        cooldown_seconds=settings.key_cooldown_seconds,
    )
    return FailoverOrchestrator(pool, RequestDispatcher())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("服务启动: 服务端凭证 {} 个", app.state.orchestrator.pool.total_count)
    yield
    await close_http_clients()
    logger.info("服务已停止")


def create_app(
    settings: Config | None = None,
    orchestrator: FailoverOrchestrator | None = None,
) -> FastAPI:
    settings = settings or config

    app = FastAPI(title="kotoba-gateway", lifespan=lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator or build_orchestrator(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GatewayException)
    async def gateway_exception_handler(request: Request, exc: GatewayException) -> JSONResponse:
        return _error_response(extract_client_error_message(exc), exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _error_response(translate_validation_error(exc), 400)

    @app.get("/health", tags=["System"])
    async def health() -> dict:
        return {
            "status": "ok",
            "reachable_keys": app.state.orchestrator.count_reachable(),
            "http_client": HTTPClientPool.get_pool_stats(),
        }

    app.include_router(analyze_router)
    app.include_router(key_status_router)
    return app


app = create_app()
