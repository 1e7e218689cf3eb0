"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 规则引擎初始化 + 路由注册 + 异常映射。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from sendra.core.config import get_db_path
from sendra.core.exceptions import (
    ConditionFailedError,
    NotFoundError,
    UnsupportedEmbedError,
    UnsupportedIndexError,
    ValidationError,
)
from sendra.core.services import ActionsService
from sendra.core.store import create_store_group
from starlette.responses import JSONResponse

from .middleware.logging_config import setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import health, track, webhooks

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 和规则引擎，关闭时清理连接"""
    store_group = await create_store_group(get_db_path())
    app.state.store_group = store_group
    app.state.actions_service = ActionsService(store_group)
    log.info("gateway_started", db_path=get_db_path())

    yield

    # 关闭：清理数据库连接
    if hasattr(app.state, "store_group") and app.state.store_group:
        await app.state.store_group.conn.close()


def _error_response(status_code: int, code: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": str(exc)}},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """存储层异常 -> HTTP 状态码"""

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error_response(404, "NOT_FOUND", exc)

    @app.exception_handler(ConditionFailedError)
    async def condition_failed_handler(request: Request, exc: ConditionFailedError):
        return _error_response(409, "CONDITION_FAILED", exc)

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return _error_response(400, "VALIDATION_ERROR", exc)

    @app.exception_handler(UnsupportedIndexError)
    async def unsupported_index_handler(request: Request, exc: UnsupportedIndexError):
        return _error_response(400, "UNSUPPORTED_INDEX", exc)

    @app.exception_handler(UnsupportedEmbedError)
    async def unsupported_embed_handler(request: Request, exc: UnsupportedEmbedError):
        return _error_response(400, "UNSUPPORTED_EMBED", exc)


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="Sendra Gateway",
        version="0.1.0",
        description="Sendra 事件追踪与自动化规则 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    # 初始化日志
    setup_logging()

    register_exception_handlers(app)

    # 注册路由
    app.include_router(track.router, tags=["events"])
    app.include_router(webhooks.router, tags=["webhooks"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
