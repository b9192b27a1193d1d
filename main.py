"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import media as media_routes
from api.routes import uploads as upload_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from infrastructure.database import create_tables, dispose_engine
from infrastructure.external.cache import init_redis_client, shutdown_redis_client
from infrastructure.external.storage import (
    ConfigurationError,
    get_storage_client,
    get_storage_config,
    init_storage_client,
    shutdown_storage_client,
)
from infrastructure.uploads import init_chunk_store, shutdown_chunk_store, start_chunk_sweeper


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时创建数据库表（仅开发环境）。生产应使用 Alembic 迁移
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info(
            "database_migrations_required",
            message="No auto-create in production, use Alembic migrations (alembic upgrade head)"
        )

    if settings.redis.url:
        try:
            await init_redis_client()
        except Exception as exc:
            logger.error("redis_init_failed", error=str(exc))

    # 存储未配置时应用仍可启动，上传请求返回 STORAGE_NOT_CONFIGURED
    try:
        await init_storage_client()
        config = get_storage_config()
        storage = get_storage_client()
        if storage and await storage.health_check():
            logger.info("storage_health_check_passed", provider=config.type, bucket=config.bucket)
    except ConfigurationError as exc:
        logger.error("storage_init_failed", error=str(exc))

    init_chunk_store()
    start_chunk_sweeper()

    yield

    await shutdown_chunk_store()
    await shutdown_storage_client()
    if settings.redis.url:
        await shutdown_redis_client()
    await dispose_engine()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="工单媒体上传与处理流水线",
)

# 添加中间件（注意顺序：从下往上执行）
# 1. Request ID中间件（最先执行，为后续中间件提供request_id）
app.add_middleware(RequestIDMiddleware)

# 2. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# 3. CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(upload_routes.router, prefix="/api")
app.include_router(media_routes.router, prefix="/api")


@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc"
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    storage = get_storage_client()
    return success_response(
        data={
            "status": "healthy",
            "storage_configured": storage is not None,
        },
        message="ok",
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
