"""
访问决策服务 (Access Decision Engine)

为纯函数 access_policy.decide 加载所需数据：
组织角色、存储桶可见性、直接授权、所属组授权
"""
import logging
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import OrgMembership
from services.access_policy import AccessDecision, DenyReason, decide, parse_permission
from services.acl_service import acl_service
from services.bucket_service import bucket_service
from services.exceptions import ValidationError

logger = logging.getLogger(__name__)


class AccessDecisionService:
    """访问决策服务，不抛出“无权限”异常，由调用方负责执行和记录"""

    async def authorize(
        self,
        actor_id: str,
        membership: Optional[OrgMembership],
        bucket_name: str,
        requested,
        db: AsyncSession
    ) -> AccessDecision:
        """
        判断用户能否以指定权限访问存储桶

        Args:
            actor_id: 用户 ID
            membership: 用户在当前组织中的成员关系（None 表示没有组织上下文）
            bucket_name: 存储桶名称
            requested: read / write / admin
            db: 数据库会话
        """
        requested = parse_permission(requested)
        if requested is None:
            raise ValidationError("Requested permission must be read, write or admin",
                                  reason="invalid_permission", resource_id=bucket_name)
        role = membership.role if membership is not None else None

        # 角色不足时无需查询 ACL
        decision = decide(role, requested)
        if not decision and decision.reason != DenyReason.INSUFFICIENT_BUCKET_ACL:
            logger.warning(f"Access denied: user={actor_id}, bucket={bucket_name}, reason={decision.reason.value}")
            return decision

        visible = await bucket_service.is_visible(bucket_name, membership.org_id, db)
        direct = await acl_service.direct_permission(actor_id, bucket_name, db)
        group_grants = await acl_service.group_permissions(actor_id, bucket_name, membership.org_id, db)

        decision = decide(role, requested, direct, group_grants, bucket_visible=visible)
        if decision:
            logger.debug(f"Access allowed: user={actor_id}, bucket={bucket_name}, requested={requested.value}")
        else:
            logger.warning(f"Access denied: user={actor_id}, bucket={bucket_name}, reason={decision.reason.value}")
        return decision


# 全局单例
access_service = AccessDecisionService()
