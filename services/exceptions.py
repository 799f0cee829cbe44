"""
服务层异常

每个异常携带错误代码、HTTP 状态码和结构化详情（原因代码 + 资源 ID），
由 app.main 中的异常处理器统一渲染为 ErrorResponse
"""
from typing import Any, Dict, Optional


class AdminServiceError(Exception):
    """服务层异常基类"""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        resource_id: Optional[str] = None,
        **extra: Any
    ) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.resource_id = resource_id
        self.extra = extra

    @property
    def details(self) -> Dict[str, Any]:
        details: Dict[str, Any] = dict(self.extra)
        if self.reason is not None:
            details["reason"] = self.reason
        if self.resource_id is not None:
            details["resource_id"] = self.resource_id
        return details


class ValidationError(AdminServiceError):
    """格式错误的 slug / 邮箱 / URL 等"""
    status_code = 422
    error_code = "VALIDATION_ERROR"


class NotFound(AdminServiceError):
    """未知的用户 / 组 / 存储桶 / 提供方"""
    status_code = 404
    error_code = "NOT_FOUND"


class Conflict(AdminServiceError):
    """重复名称、仍被引用、删除最后一个 owner 等"""
    status_code = 409
    error_code = "CONFLICT"


class NoSourcesConfigured(Conflict):
    """虚拟桶没有配置任何源目录（合法状态，但不可读写）"""
    error_code = "NO_SOURCES_CONFIGURED"


class Forbidden(AdminServiceError):
    """授权拒绝"""
    status_code = 403
    error_code = "FORBIDDEN"


class UpstreamUnavailable(AdminServiceError):
    """存储网关或提供方不可达"""
    status_code = 503
    error_code = "UPSTREAM_UNAVAILABLE"
