"""
访问控制服务 (ACL Service)

负责用户和用户组对存储桶的权限（稀疏矩阵）

- 设置权限为 None 时删除该行，不保存显式的 "none"
- 设置权限使用按 (实体, 桶) 键的原子 upsert，不做“读取整表再覆盖”
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy import select, delete, and_
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import BucketPermission, Group, GroupAcl, GroupMembership, OrgMembership, User, UserAcl
from services.access_policy import parse_permission
from services.bucket_service import bucket_service
from services.exceptions import NotFound, ValidationError

logger = logging.getLogger(__name__)

AclMatrix = Dict[str, Dict[str, str]]


def _upsert(db: AsyncSession, model, key_columns: Tuple[str, ...], values: dict):
    """按方言构造 INSERT ... ON CONFLICT / ON DUPLICATE KEY UPDATE 语句"""
    dialect = db.get_bind().dialect.name
    if dialect == "mysql":
        stmt = mysql.insert(model).values(**values)
        return stmt.on_duplicate_key_update(permission=stmt.inserted.permission, updated_at=datetime.utcnow())
    insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
    stmt = insert(model).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=list(key_columns),
        set_={"permission": stmt.excluded.permission, "updated_at": datetime.utcnow()},
    )


class AccessControlService:
    """
    访问控制服务

    使用数据库持久化 ACL，每个 (实体, 桶) 最多一行
    """

    # ==================== 单条设置 ====================

    async def set_user_permission(
        self,
        user_id: str,
        bucket_name: str,
        permission,
        db: AsyncSession
    ) -> Optional[BucketPermission]:
        """
        设置用户对存储桶的权限

        Args:
            user_id: 用户 ID
            bucket_name: 存储桶名称
            permission: read / write / admin，None 或 "none" 表示移除
            db: 数据库会话

        Returns:
            设置后的权限（移除时为 None）
        """
        permission = parse_permission(permission)
        if await db.get(User, user_id) is None:
            raise NotFound(f"User {user_id} not found", reason="user_not_found", resource_id=user_id)

        if permission is None:
            await db.execute(
                delete(UserAcl).where(and_(UserAcl.user_id == user_id, UserAcl.bucket_name == bucket_name))
            )
            logger.info(f"Revoked user access: user={user_id}, bucket={bucket_name}")
        else:
            await bucket_service.get_bucket(bucket_name, db)
            await db.execute(_upsert(
                db, UserAcl, ("user_id", "bucket_name"),
                {"user_id": user_id, "bucket_name": bucket_name, "permission": permission},
            ))
            logger.info(f"Set user permission: user={user_id}, bucket={bucket_name}, permission={permission.value}")
        await db.commit()
        return permission

    async def set_group_permission(
        self,
        group_id: str,
        bucket_name: str,
        permission,
        db: AsyncSession
    ) -> Optional[BucketPermission]:
        """
        设置用户组对存储桶的权限

        Args:
            group_id: 组 ID
            bucket_name: 存储桶名称
            permission: read / write / admin，None 或 "none" 表示移除
            db: 数据库会话
        """
        permission = parse_permission(permission)
        if await db.get(Group, group_id) is None:
            raise NotFound(f"Group {group_id} not found", reason="group_not_found", resource_id=group_id)

        if permission is None:
            await db.execute(
                delete(GroupAcl).where(and_(GroupAcl.group_id == group_id, GroupAcl.bucket_name == bucket_name))
            )
            logger.info(f"Revoked group access: group={group_id}, bucket={bucket_name}")
        else:
            await bucket_service.get_bucket(bucket_name, db)
            await db.execute(_upsert(
                db, GroupAcl, ("group_id", "bucket_name"),
                {"group_id": group_id, "bucket_name": bucket_name, "permission": permission},
            ))
            logger.info(f"Set group permission: group={group_id}, bucket={bucket_name}, permission={permission.value}")
        await db.commit()
        return permission

    # ==================== 整表替换 ====================

    async def replace_user_acl(
        self,
        user_id: str,
        entries: Iterable[Tuple[str, object]],
        db: AsyncSession,
        scope: Optional[Iterable[str]] = None
    ) -> List[Tuple[str, BucketPermission]]:
        """
        用给定列表整体替换用户的 ACL

        在单个事务内完成删除和写入；scope 给出时只替换这些桶上的条目
        （组织视图下不影响其它组织的桶）
        """
        parsed: Dict[str, BucketPermission] = {}
        for bucket_name, permission in entries:
            value = parse_permission(permission)
            if value is None:
                continue
            if bucket_name in parsed:
                raise ValidationError(
                    f"Duplicate bucket in ACL list: {bucket_name}",
                    reason="duplicate_bucket",
                    resource_id=bucket_name
                )
            parsed[bucket_name] = value

        if await db.get(User, user_id) is None:
            raise NotFound(f"User {user_id} not found", reason="user_not_found", resource_id=user_id)
        for bucket_name in parsed:
            await bucket_service.get_bucket(bucket_name, db)

        stmt = delete(UserAcl).where(UserAcl.user_id == user_id)
        if scope is not None:
            stmt = stmt.where(UserAcl.bucket_name.in_(list(scope)))
        await db.execute(stmt)
        for bucket_name, permission in parsed.items():
            db.add(UserAcl(user_id=user_id, bucket_name=bucket_name, permission=permission))
        await db.commit()
        logger.info(f"Replaced ACL for user {user_id} with {len(parsed)} entries")
        return list(parsed.items())

    # ==================== 查询 ====================

    async def get_user_acl(self, user_id: str, db: AsyncSession) -> List[Tuple[str, BucketPermission]]:
        stmt = select(UserAcl.bucket_name, UserAcl.permission).where(UserAcl.user_id == user_id)
        stmt = stmt.order_by(UserAcl.bucket_name)
        return [(row[0], row[1]) for row in (await db.execute(stmt)).all()]

    async def get_group_acl(self, group_id: str, db: AsyncSession) -> List[Tuple[str, BucketPermission]]:
        stmt = select(GroupAcl.bucket_name, GroupAcl.permission).where(GroupAcl.group_id == group_id)
        stmt = stmt.order_by(GroupAcl.bucket_name)
        return [(row[0], row[1]) for row in (await db.execute(stmt)).all()]

    async def get_user_acl_matrix(
        self,
        db: AsyncSession,
        buckets: Optional[Iterable[str]] = None,
        org_id: Optional[str] = None
    ) -> AclMatrix:
        """
        返回 {user_id: {bucket_name: permission}}

        缺失的键表示无权限；buckets 给出时只包含这些桶，
        org_id 给出时只包含该组织的成员
        """
        stmt = select(UserAcl.user_id, UserAcl.bucket_name, UserAcl.permission)
        if buckets is not None:
            stmt = stmt.where(UserAcl.bucket_name.in_(list(buckets)))
        if org_id is not None:
            members = select(OrgMembership.user_id).where(OrgMembership.org_id == org_id)
            stmt = stmt.where(UserAcl.user_id.in_(members))
        matrix: AclMatrix = {}
        for user_id, bucket_name, permission in (await db.execute(stmt)).all():
            matrix.setdefault(user_id, {})[bucket_name] = permission.value
        return matrix

    async def get_group_acl_matrix(
        self,
        db: AsyncSession,
        buckets: Optional[Iterable[str]] = None,
        org_id: Optional[str] = None
    ) -> AclMatrix:
        """返回 {group_id: {bucket_name: permission}}"""
        stmt = select(GroupAcl.group_id, GroupAcl.bucket_name, GroupAcl.permission)
        if buckets is not None:
            stmt = stmt.where(GroupAcl.bucket_name.in_(list(buckets)))
        if org_id is not None:
            stmt = stmt.join(Group, Group.id == GroupAcl.group_id).where(Group.org_id == org_id)
        matrix: AclMatrix = {}
        for group_id, bucket_name, permission in (await db.execute(stmt)).all():
            matrix.setdefault(group_id, {})[bucket_name] = permission.value
        return matrix

    async def direct_permission(
        self,
        user_id: str,
        bucket_name: str,
        db: AsyncSession
    ) -> Optional[BucketPermission]:
        stmt = select(UserAcl.permission).where(
            and_(UserAcl.user_id == user_id, UserAcl.bucket_name == bucket_name)
        )
        return (await db.execute(stmt)).scalar_one_or_none()

    async def group_permissions(
        self,
        user_id: str,
        bucket_name: str,
        org_id: str,
        db: AsyncSession
    ) -> List[BucketPermission]:
        """用户在该组织所属各组对该桶的授权（其它组织的组不计入）"""
        stmt = (
            select(GroupAcl.permission)
            .join(GroupMembership, GroupMembership.group_id == GroupAcl.group_id)
            .join(Group, Group.id == GroupAcl.group_id)
            .where(and_(
                GroupMembership.user_id == user_id,
                GroupAcl.bucket_name == bucket_name,
                Group.org_id == org_id,
            ))
        )
        return list((await db.execute(stmt)).scalars().all())


# 全局单例
acl_service = AccessControlService()
