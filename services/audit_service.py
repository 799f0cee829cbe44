"""
审计日志服务

只追加写入；没有更新和删除接口
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """审计日志服务"""

    async def record(
        self,
        db: AsyncSession,
        user_id: str,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        org_id: Optional[str] = None,
        user_email: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None
    ) -> AuditLog:
        """
        写入一条审计日志

        Args:
            db: 数据库会话
            user_id: 操作用户 ID
            action: 命名空间形式的操作（例如 bucket.create）
            resource_type: 资源类型
            resource_id: 资源 ID
            org_id: 组织 ID
            user_email: 操作用户邮箱
            details: 额外详情
            ip_address: 客户端 IP
        """
        entry = AuditLog(
            id=str(uuid.uuid4()),
            user_id=user_id,
            user_email=user_email,
            org_id=org_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            ip_address=ip_address,
            created_at=datetime.utcnow(),
        )
        db.add(entry)
        await db.commit()
        logger.info(f"Audit: user={user_id} action={action} resource={resource_type}:{resource_id}")
        return entry

    async def list_entries(
        self,
        db: AsyncSession,
        org_id: Optional[str] = None,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> tuple[List[AuditLog], int]:
        """按时间倒序列出审计日志，返回 (条目, 总数)"""
        stmt = select(AuditLog)
        count_stmt = select(func.count()).select_from(AuditLog)
        if org_id:
            stmt = stmt.where(AuditLog.org_id == org_id)
            count_stmt = count_stmt.where(AuditLog.org_id == org_id)
        if user_id:
            stmt = stmt.where(AuditLog.user_id == user_id)
            count_stmt = count_stmt.where(AuditLog.user_id == user_id)
        if action:
            stmt = stmt.where(AuditLog.action == action)
            count_stmt = count_stmt.where(AuditLog.action == action)

        stmt = stmt.order_by(AuditLog.created_at.desc()).limit(limit).offset(offset)
        entries = list((await db.execute(stmt)).scalars().all())
        total = (await db.execute(count_stmt)).scalar_one()
        return entries, total


def serialize_entry(entry: AuditLog) -> Dict[str, Any]:
    """控制台期望的驼峰字段格式"""
    return {
        "id": entry.id,
        "timestamp": entry.created_at.isoformat() if entry.created_at else None,
        "userId": entry.user_id,
        "userEmail": entry.user_email,
        "orgId": entry.org_id,
        "action": entry.action,
        "resourceType": entry.resource_type,
        "resourceId": entry.resource_id,
        "details": entry.details,
        "ipAddress": entry.ip_address,
    }


# 全局单例
audit_service = AuditService()
