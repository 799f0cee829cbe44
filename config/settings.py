"""
应用配置
"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """应用配置"""

    # 应用基础配置
    app_name: str = "VFX.sh Admin Core"
    app_version: str = "1.0.0"
    debug: bool = False

    # 服务器配置
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # JWT 配置（令牌由外部身份提供方签发，这里只做校验）
    jwt_secret_key: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "vfx-admin"

    # 组织上下文请求头
    organization_header: str = "X-Organization-Id"

    # 数据库配置
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "vfx"
    DB_PASSWORD: str = "vfx"
    DB_NAME: str = "vfx_admin"
    database_url: Optional[str] = None  # 设置后覆盖 MySQL 配置（例如 sqlite+aiosqlite:///./vfx.db）

    # 加密配置（提供方凭证、访问密钥）
    ENCRYPTION_KEY: str = "change-me-encryption-key"

    # Redis 配置（用于存储桶解析缓存）
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    resolution_cache_ttl: int = 300  # 秒

    # 存储网关配置
    storage_gateway_url: str = "http://localhost:9000"
    storage_gateway_token: Optional[str] = None

    # HTTP 客户端配置
    http_timeout: int = 30  # 秒
    http_max_retries: int = 2

    # 文件锁轮询间隔（控制台客户端）
    lock_poll_interval: float = 5.0

    # 日志配置
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def async_database_url(self) -> str:
        """应用运行时使用的异步连接 URL"""
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    @property
    def sync_database_url(self) -> str:
        """Alembic 迁移使用的同步连接 URL"""
        if self.database_url:
            return (
                self.database_url
                .replace("+aiosqlite", "")
                .replace("+aiomysql", "+pymysql")
                .replace("+asyncpg", "")
            )
        return (
            f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


settings = Settings()
