"""
平台服务

跨租户资源：组织和全局用户列表
"""
import logging
import uuid
from typing import Dict, List, Optional
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import (
    AccessKey, Bucket, BucketAssignment, Group, GroupAcl, GroupMembership,
    Organization, OrgMembership, OrgRole, Provider, User
)
from services.exceptions import Conflict, NotFound

logger = logging.getLogger(__name__)


class PlatformService:
    """平台服务"""

    async def list_organizations(self, db: AsyncSession) -> List[tuple[Organization, int, int]]:
        """返回 (组织, 成员数, 可见桶数)"""
        member_count = (
            select(func.count(OrgMembership.id))
            .where(OrgMembership.org_id == Organization.id)
            .correlate(Organization)
            .scalar_subquery()
        )
        owned_count = (
            select(func.count(Bucket.id))
            .where(Bucket.org_id == Organization.id)
            .correlate(Organization)
            .scalar_subquery()
        )
        assigned_count = (
            select(func.count(BucketAssignment.id))
            .where(BucketAssignment.org_id == Organization.id)
            .correlate(Organization)
            .scalar_subquery()
        )
        stmt = select(Organization, member_count, owned_count + assigned_count).order_by(Organization.name)
        return [(org, members, buckets) for org, members, buckets in (await db.execute(stmt)).all()]

    async def create_organization(
        self,
        name: str,
        db: AsyncSession,
        owner: Optional[User] = None
    ) -> Organization:
        """创建组织；给出 owner 时同时创建 owner 成员关系"""
        org = Organization(id=str(uuid.uuid4()), name=name)
        db.add(org)
        if owner is not None:
            db.add(OrgMembership(user_id=owner.id, org_id=org.id, role=OrgRole.OWNER))
        await db.commit()
        logger.info(f"Created organization {org.id} ({name})")
        return org

    async def delete_organization(self, org_id: str, db: AsyncSession) -> None:
        """
        删除组织

        仍拥有存储桶时返回 Conflict；否则级联删除成员、分配、用户组和密钥
        """
        org = await db.get(Organization, org_id)
        if org is None:
            raise NotFound(f"Organization {org_id} not found", reason="organization_not_found",
                           resource_id=org_id)

        owned = (await db.execute(
            select(func.count()).select_from(Bucket).where(Bucket.org_id == org_id)
        )).scalar_one()
        if owned:
            raise Conflict(
                f"Organization {org_id} still owns {owned} bucket(s)",
                reason="organization_has_buckets",
                resource_id=org_id
            )

        org_groups = select(Group.id).where(Group.org_id == org_id)
        await db.execute(delete(GroupMembership).where(GroupMembership.group_id.in_(org_groups)))
        await db.execute(delete(GroupAcl).where(GroupAcl.group_id.in_(org_groups)))
        await db.execute(delete(Group).where(Group.org_id == org_id))
        await db.execute(delete(BucketAssignment).where(BucketAssignment.org_id == org_id))
        await db.execute(delete(AccessKey).where(AccessKey.org_id == org_id))
        await db.execute(delete(OrgMembership).where(OrgMembership.org_id == org_id))
        await db.delete(org)
        await db.commit()
        logger.info(f"Deleted organization {org_id}")

    async def list_users(self, db: AsyncSession) -> List[tuple[User, int]]:
        """返回 (用户, 所属组织数)"""
        org_count = (
            select(func.count(OrgMembership.id))
            .where(OrgMembership.user_id == User.id)
            .correlate(User)
            .scalar_subquery()
        )
        stmt = select(User, org_count).order_by(User.email)
        return [(user, count) for user, count in (await db.execute(stmt)).all()]

    async def status(self, db: AsyncSession) -> Dict[str, int]:
        """平台概览计数"""
        counts = {}
        for key, model in (
            ("organizations", Organization),
            ("users", User),
            ("providers", Provider),
            ("buckets", Bucket),
            ("access_keys", AccessKey),
        ):
            counts[key] = (await db.execute(select(func.count()).select_from(model))).scalar_one()
        return counts

    async def set_super_admin(self, user_id: str, value: bool, db: AsyncSession) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found", reason="user_not_found", resource_id=user_id)
        user.is_super_admin = value
        await db.commit()
        logger.info(f"Set super admin flag for {user_id} to {value}")
        return user


# 全局单例
platform_service = PlatformService()
