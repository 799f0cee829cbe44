"""
审计记录辅助函数
"""
from typing import Any, Optional
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies.auth import User, client_ip
from services.audit_service import audit_service


async def audit(
    db: AsyncSession,
    request: Request,
    user: User,
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    org_id: Optional[str] = None,
    **details: Any
) -> None:
    """记录当前请求的一次变更操作"""
    await audit_service.record(
        db,
        user_id=user.user_id,
        user_email=user.email,
        org_id=org_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details or None,
        ip_address=client_ip(request),
    )
