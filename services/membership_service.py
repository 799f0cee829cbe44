"""
成员目录服务 (Membership Directory)

负责用户、组织成员关系、用户组及组成员关系
"""
import logging
import re
from datetime import datetime
from typing import List, Optional
from sqlalchemy import select, delete, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import (
    User, Organization, OrgMembership, OrgRole,
    Group, GroupMembership, GroupAcl
)
from services.access_policy import parse_role
from services.exceptions import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

GROUP_SLUG_RE = re.compile(r"^[a-z0-9-]+$")


class MembershipService:
    """成员目录服务"""

    # ==================== 用户 ====================

    async def get_user(self, user_id: str, db: AsyncSession) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found", reason="user_not_found", resource_id=user_id)
        return user

    async def get_user_by_email(self, email: str, db: AsyncSession) -> Optional[User]:
        result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
        return result.scalar_one_or_none()

    async def sync_user(
        self,
        user_id: str,
        email: Optional[str],
        name: Optional[str],
        db: AsyncSession
    ) -> User:
        """
        首次登录时创建用户，之后刷新最后登录时间

        Args:
            user_id: 身份提供方的用户 ID
            email: 邮箱（首次创建时必填）
            name: 显示名称
            db: 数据库会话
        """
        user = await db.get(User, user_id)
        now = datetime.utcnow()
        if user is None:
            if not email:
                raise ValidationError("Email claim is required on first sign-in", reason="missing_email")
            user = User(id=user_id, email=email, name=name, is_super_admin=False, last_sign_in_at=now)
            db.add(user)
            logger.info(f"Created user on first sign-in: {user_id}")
        else:
            user.last_sign_in_at = now
            if name and not user.name:
                user.name = name
        await db.commit()
        return user

    async def list_org_users(self, org_id: str, db: AsyncSession) -> List[tuple[User, OrgMembership]]:
        stmt = (
            select(User, OrgMembership)
            .join(OrgMembership, OrgMembership.user_id == User.id)
            .where(OrgMembership.org_id == org_id)
            .order_by(User.email)
        )
        return [(user, membership) for user, membership in (await db.execute(stmt)).all()]

    # ==================== 组织成员 ====================

    async def is_member(self, user_id: str, org_id: str, db: AsyncSession) -> Optional[OrgMembership]:
        """返回成员关系，不是成员时返回 None"""
        stmt = select(OrgMembership).where(
            and_(OrgMembership.user_id == user_id, OrgMembership.org_id == org_id)
        )
        return (await db.execute(stmt)).scalar_one_or_none()

    async def organizations_of(self, user_id: str, db: AsyncSession) -> List[tuple[Organization, OrgRole]]:
        stmt = (
            select(Organization, OrgMembership.role)
            .join(OrgMembership, OrgMembership.org_id == Organization.id)
            .where(OrgMembership.user_id == user_id)
            .order_by(Organization.name)
        )
        return [(org, role) for org, role in (await db.execute(stmt)).all()]

    async def _owner_count(self, org_id: str, db: AsyncSession) -> int:
        stmt = select(func.count()).select_from(OrgMembership).where(
            and_(OrgMembership.org_id == org_id, OrgMembership.role == OrgRole.OWNER)
        )
        return (await db.execute(stmt)).scalar_one()

    async def add_member(self, user_id: str, org_id: str, role, db: AsyncSession) -> OrgMembership:
        """添加组织成员，已是成员时返回 Conflict"""
        role = parse_role(role)
        await self.get_user(user_id, db)
        if await db.get(Organization, org_id) is None:
            raise NotFound(f"Organization {org_id} not found", reason="organization_not_found", resource_id=org_id)
        if await self.is_member(user_id, org_id, db):
            raise Conflict(
                f"User {user_id} is already a member of {org_id}",
                reason="already_member",
                resource_id=user_id
            )

        membership = OrgMembership(user_id=user_id, org_id=org_id, role=role)
        db.add(membership)
        await db.commit()
        logger.info(f"Added member: user={user_id}, org={org_id}, role={role.value}")
        return membership

    async def require_membership(self, user_id: str, org_id: str, db: AsyncSession) -> OrgMembership:
        membership = await self.is_member(user_id, org_id, db)
        if membership is None:
            raise NotFound(
                f"User {user_id} is not a member of {org_id}",
                reason="membership_not_found",
                resource_id=user_id
            )
        return membership

    async def _guard_last_owner(self, membership: OrgMembership, db: AsyncSession) -> None:
        """组织不能失去最后一个 owner"""
        if membership.role == OrgRole.OWNER and await self._owner_count(membership.org_id, db) <= 1:
            raise Conflict(
                f"User {membership.user_id} is the last owner of {membership.org_id}",
                reason="last_owner",
                resource_id=membership.user_id
            )

    async def remove_member(self, user_id: str, org_id: str, db: AsyncSession) -> None:
        """移除组织成员，同时移除其在该组织各用户组中的成员关系"""
        membership = await self.require_membership(user_id, org_id, db)
        await self._guard_last_owner(membership, db)

        org_groups = select(Group.id).where(Group.org_id == org_id)
        await db.execute(
            delete(GroupMembership).where(
                and_(GroupMembership.user_id == user_id, GroupMembership.group_id.in_(org_groups))
            )
        )
        await db.delete(membership)
        await db.commit()
        logger.info(f"Removed member: user={user_id}, org={org_id}")

    async def change_role(self, user_id: str, org_id: str, role, db: AsyncSession) -> OrgMembership:
        role = parse_role(role)
        membership = await self.require_membership(user_id, org_id, db)
        if role != OrgRole.OWNER:
            await self._guard_last_owner(membership, db)

        membership.role = role
        await db.commit()
        logger.info(f"Changed role: user={user_id}, org={org_id}, role={role.value}")
        return membership

    # ==================== 用户组 ====================

    async def get_group(self, group_id: str, org_id: str, db: AsyncSession) -> Group:
        group = await db.get(Group, group_id)
        if group is None or group.org_id != org_id:
            raise NotFound(f"Group {group_id} not found", reason="group_not_found", resource_id=group_id)
        return group

    async def list_groups(self, org_id: str, db: AsyncSession) -> List[tuple[Group, int]]:
        """列出组织的用户组及成员数"""
        member_count = (
            select(func.count(GroupMembership.id))
            .where(GroupMembership.group_id == Group.id)
            .correlate(Group)
            .scalar_subquery()
        )
        stmt = select(Group, member_count).where(Group.org_id == org_id).order_by(Group.name)
        return [(group, count) for group, count in (await db.execute(stmt)).all()]

    async def create_group(
        self,
        group_id: str,
        name: str,
        org_id: str,
        db: AsyncSession,
        description: Optional[str] = None
    ) -> Group:
        if not GROUP_SLUG_RE.match(group_id or ""):
            raise ValidationError(
                f"Invalid group id: {group_id}",
                reason="invalid_slug",
                resource_id=group_id
            )
        if await db.get(Group, group_id) is not None:
            raise Conflict(f"Group {group_id} already exists", reason="duplicate_group", resource_id=group_id)

        group = Group(id=group_id, org_id=org_id, name=name, description=description)
        db.add(group)
        await db.commit()
        logger.info(f"Created group: {group_id} in org {org_id}")
        return group

    async def update_group(
        self,
        group_id: str,
        org_id: str,
        db: AsyncSession,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> Group:
        group = await self.get_group(group_id, org_id, db)
        if name:
            group.name = name
        if description is not None:
            group.description = description
        await db.commit()
        return group

    async def delete_group(self, group_id: str, org_id: str, db: AsyncSession) -> None:
        """删除用户组，级联删除组成员关系和组 ACL"""
        group = await self.get_group(group_id, org_id, db)
        await db.execute(delete(GroupMembership).where(GroupMembership.group_id == group_id))
        await db.execute(delete(GroupAcl).where(GroupAcl.group_id == group_id))
        await db.delete(group)
        await db.commit()
        logger.info(f"Deleted group: {group_id}")

    async def list_group_members(self, group_id: str, db: AsyncSession) -> List[tuple[User, GroupMembership]]:
        stmt = (
            select(User, GroupMembership)
            .join(GroupMembership, GroupMembership.user_id == User.id)
            .where(GroupMembership.group_id == group_id)
            .order_by(User.email)
        )
        return [(user, edge) for user, edge in (await db.execute(stmt)).all()]

    async def add_group_member(self, group_id: str, user_id: str, org_id: str, db: AsyncSession) -> GroupMembership:
        """把组织成员加入用户组，重复的边返回 Conflict"""
        await self.get_group(group_id, org_id, db)
        await self.require_membership(user_id, org_id, db)

        stmt = select(GroupMembership).where(
            and_(GroupMembership.group_id == group_id, GroupMembership.user_id == user_id)
        )
        if (await db.execute(stmt)).scalar_one_or_none() is not None:
            raise Conflict(
                f"User {user_id} is already in group {group_id}",
                reason="already_group_member",
                resource_id=user_id
            )

        edge = GroupMembership(group_id=group_id, user_id=user_id)
        db.add(edge)
        await db.commit()
        logger.info(f"Added user {user_id} to group {group_id}")
        return edge

    async def remove_group_member(self, group_id: str, user_id: str, org_id: str, db: AsyncSession) -> None:
        await self.get_group(group_id, org_id, db)
        result = await db.execute(
            delete(GroupMembership).where(
                and_(GroupMembership.group_id == group_id, GroupMembership.user_id == user_id)
            )
        )
        if result.rowcount == 0:
            raise NotFound(
                f"User {user_id} is not in group {group_id}",
                reason="group_member_not_found",
                resource_id=user_id
            )
        await db.commit()
        logger.info(f"Removed user {user_id} from group {group_id}")

    async def groups_of(self, user_id: str, db: AsyncSession, org_id: Optional[str] = None) -> List[Group]:
        """用户所属的全部用户组（可按组织过滤）"""
        stmt = (
            select(Group)
            .join(GroupMembership, GroupMembership.group_id == Group.id)
            .where(GroupMembership.user_id == user_id)
        )
        if org_id:
            stmt = stmt.where(Group.org_id == org_id)
        return list((await db.execute(stmt)).scalars().all())


# 全局单例
membership_service = MembershipService()
