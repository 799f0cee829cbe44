"""
VFX.sh Admin Core - Main Application

存储桶访问控制与解析核心服务
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import settings
from models.responses import ErrorResponse
from services.exceptions import AdminServiceError
from services.resolution_cache import resolution_cache
from app.routers import (
    acls, authorize, buckets, groups, keys, locks, me, members,
    platform, providers, users, virtual_buckets,
)

# 配置日志
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format=settings.log_format
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动
    logger.info("Starting VFX.sh Admin Core...")

    # 连接 Redis（解析缓存）
    await resolution_cache.connect()

    logger.info(f"VFX.sh Admin Core started on {settings.host}:{settings.port}")

    yield

    # 关闭
    logger.info("Shutting down VFX.sh Admin Core...")
    await resolution_cache.close()
    logger.info("VFX.sh Admin Core stopped")


# 创建 FastAPI 应用
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="VFX.sh 管理控制台的组织角色、存储桶 ACL 与存储桶解析服务",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS 中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应该限制
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AdminServiceError)
async def admin_service_error_handler(request: Request, exc: AdminServiceError) -> JSONResponse:
    """服务层异常统一渲染为 ErrorResponse"""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
    body = ErrorResponse(error_code=exc.error_code, message=exc.message, details=exc.details or None)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


# 注册路由
app.include_router(me.router)
app.include_router(acls.router)
app.include_router(users.router)
app.include_router(groups.router)
app.include_router(buckets.router)
app.include_router(virtual_buckets.router)
app.include_router(keys.router)
app.include_router(members.router)
app.include_router(providers.router)
app.include_router(authorize.router)
app.include_router(locks.router)
app.include_router(platform.router)


@app.get("/", tags=["System"])
async def root():
    """根路径 - 系统信息"""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "running"
    }


@app.get("/health", tags=["System"])
async def health_check():
    """健康检查"""
    return {
        "status": "healthy",
        "version": settings.app_version
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
