"""
响应模型定义
"""
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class ErrorResponse(BaseModel):
    """
    错误响应
    """
    error_code: str = Field(..., description="错误代码")
    message: str = Field(..., description="错误消息")
    details: Optional[Dict[str, Any]] = Field(None, description="错误详情（原因代码、资源 ID）")

    class Config:
        json_schema_extra = {
            "example": {
                "error_code": "CONFLICT",
                "message": "User user_123 is the last owner of org_1",
                "details": {
                    "reason": "last_owner",
                    "resource_id": "user_123"
                }
            }
        }


class AclMatrixResponse(BaseModel):
    """{entity_id: {bucket_name: permission}}"""
    acls: Dict[str, Dict[str, str]]


class RouteInfo(BaseModel):
    """一次读/写操作的物理目标"""
    bucket_name: str
    provider_id: Optional[str] = None
    remote_bucket_name: Optional[str] = None
    key: str
    source_id: Optional[int] = None
    source_bucket_name: Optional[str] = None


class AuthorizeResponse(BaseModel):
    """访问决策"""
    allowed: bool
    reason: Optional[str] = Field(None, description="拒绝原因代码")
    effective_permission: Optional[str] = None
    target: Optional[RouteInfo] = Field(None, description="允许时的物理目标")
    candidates: List[RouteInfo] = Field(default_factory=list, description="读取时按优先级排列的候选源")

    class Config:
        json_schema_extra = {
            "example": {
                "allowed": False,
                "reason": "insufficient_bucket_acl",
                "effective_permission": "read",
                "target": None,
                "candidates": []
            }
        }


class AccessKeyInfo(BaseModel):
    """访问密钥（不含 Secret）"""
    access_key_id: str
    user_id: str
    name: Optional[str] = None
    expiration: Optional[datetime] = None
    enabled: bool
    expired: bool = False
    bucket_count: int = 0
    created_at: Optional[datetime] = None
    rotated_at: Optional[datetime] = None


class AccessKeySecret(BaseModel):
    """创建或轮转时唯一一次返回 Secret"""
    access_key_id: str
    secret_key: str
    user_id: str
    name: Optional[str] = None
    expiration: Optional[datetime] = None
