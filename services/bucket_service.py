"""
存储桶服务

负责逻辑存储桶、虚拟桶源目录以及存储桶与组织的分配关系
"""
import logging
import re
import uuid
from typing import List, Optional, Set
from sqlalchemy import select, delete, func, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import (
    Bucket, BucketAssignment, BucketType, GroupAcl, Organization, Provider,
    UserAcl, VirtualBucketSource
)
from services.bucket_resolver import bucket_resolver, normalize_mount
from services.exceptions import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

BUCKET_NAME_RE = re.compile(r"^[a-z0-9.-]{3,63}$")


def validate_bucket_name(bucket_name: str) -> str:
    if not BUCKET_NAME_RE.match(bucket_name or ""):
        raise ValidationError(
            f"Invalid bucket name: {bucket_name}",
            reason="invalid_bucket_name",
            resource_id=bucket_name
        )
    return bucket_name


class BucketService:
    """存储桶服务"""

    # ==================== 查询 ====================

    async def get_bucket(self, bucket_name: str, db: AsyncSession) -> Bucket:
        result = await db.execute(select(Bucket).where(Bucket.bucket_name == bucket_name))
        bucket = result.scalar_one_or_none()
        if bucket is None:
            raise NotFound(f"Bucket {bucket_name} not found", reason="bucket_not_found", resource_id=bucket_name)
        return bucket

    async def get_bucket_by_id(self, bucket_id: str, db: AsyncSession) -> Bucket:
        bucket = await db.get(Bucket, bucket_id)
        if bucket is None:
            raise NotFound(f"Bucket {bucket_id} not found", reason="bucket_not_found", resource_id=bucket_id)
        return bucket

    def _visible_clause(self, org_id: str):
        assigned = select(BucketAssignment.bucket_id).where(BucketAssignment.org_id == org_id)
        return or_(Bucket.org_id == org_id, Bucket.id.in_(assigned))

    async def list_buckets(self, org_id: str, db: AsyncSession) -> List[tuple[Bucket, Optional[str], int]]:
        """
        列出组织可见的存储桶（自有的 + 分配的）

        Returns:
            (bucket, provider_name, source_count) 列表
        """
        source_count = (
            select(func.count(VirtualBucketSource.id))
            .where(VirtualBucketSource.virtual_bucket_name == Bucket.bucket_name)
            .correlate(Bucket)
            .scalar_subquery()
        )
        stmt = (
            select(Bucket, Provider.name, source_count)
            .outerjoin(Provider, Provider.id == Bucket.provider_id)
            .where(self._visible_clause(org_id))
            .order_by(Bucket.bucket_name)
        )
        return [(bucket, provider_name, count) for bucket, provider_name, count in (await db.execute(stmt)).all()]

    async def list_all_buckets(self, db: AsyncSession) -> List[tuple[Bucket, Optional[str], Optional[str]]]:
        """平台视图：全部存储桶，返回 (bucket, provider_name, owner_org_name)"""
        stmt = (
            select(Bucket, Provider.name, Organization.name)
            .outerjoin(Provider, Provider.id == Bucket.provider_id)
            .outerjoin(Organization, Organization.id == Bucket.org_id)
            .order_by(Bucket.bucket_name)
        )
        return [(bucket, provider_name, org_name) for bucket, provider_name, org_name in (await db.execute(stmt)).all()]

    async def visible_bucket_names(self, org_id: str, db: AsyncSession) -> Set[str]:
        stmt = select(Bucket.bucket_name).where(self._visible_clause(org_id))
        return set((await db.execute(stmt)).scalars().all())

    async def is_visible(self, bucket_name: str, org_id: str, db: AsyncSession) -> bool:
        stmt = select(Bucket.id).where(and_(Bucket.bucket_name == bucket_name, self._visible_clause(org_id)))
        return (await db.execute(stmt)).scalar_one_or_none() is not None

    # ==================== 创建 / 删除 ====================

    async def create_bucket(
        self,
        bucket_name: str,
        bucket_type: BucketType,
        db: AsyncSession,
        org_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        remote_bucket_name: Optional[str] = None
    ) -> Bucket:
        """
        创建逻辑存储桶

        Args:
            bucket_name: 逻辑名称（[a-z0-9.-]，3-63 个字符）
            bucket_type: standard / virtual
            db: 数据库会话
            org_id: 所属组织（平台源桶为 None）
            provider_id: 标准桶必填
            remote_bucket_name: 标准桶必填
        """
        validate_bucket_name(bucket_name)
        bucket_type = BucketType(bucket_type)

        if bucket_type == BucketType.STANDARD:
            if not provider_id or not remote_bucket_name:
                raise ValidationError(
                    "Standard buckets require provider_id and remote_bucket_name",
                    reason="missing_mapping",
                    resource_id=bucket_name
                )
            if await db.get(Provider, provider_id) is None:
                raise NotFound(f"Provider {provider_id} not found", reason="provider_not_found", resource_id=provider_id)
        else:
            provider_id = None
            remote_bucket_name = None

        existing = await db.execute(select(Bucket.id).where(Bucket.bucket_name == bucket_name))
        if existing.scalar_one_or_none() is not None:
            raise Conflict(f"Bucket {bucket_name} already exists", reason="duplicate_bucket", resource_id=bucket_name)

        bucket = Bucket(
            id=str(uuid.uuid4()),
            bucket_name=bucket_name,
            bucket_type=bucket_type,
            provider_id=provider_id,
            remote_bucket_name=remote_bucket_name,
            org_id=org_id,
        )
        db.add(bucket)
        await db.commit()
        await bucket_resolver.invalidate(bucket_name)
        logger.info(f"Created {bucket_type.value} bucket: {bucket_name} (org={org_id})")
        return bucket

    async def delete_bucket(self, bucket: Bucket, db: AsyncSession) -> None:
        """
        删除存储桶

        - 仍被虚拟桶引用的标准桶不能删除（Conflict）
        - 级联删除该桶的 ACL、分配关系以及（虚拟桶的）源目录
        """
        stmt = select(VirtualBucketSource.virtual_bucket_name).where(
            VirtualBucketSource.source_bucket_name == bucket.bucket_name
        )
        referenced_by = sorted(set((await db.execute(stmt)).scalars().all()))
        if referenced_by:
            raise Conflict(
                f"Bucket {bucket.bucket_name} is referenced by virtual buckets: {', '.join(referenced_by)}",
                reason="bucket_in_use",
                resource_id=bucket.bucket_name,
                referenced_by=referenced_by
            )

        await db.execute(delete(UserAcl).where(UserAcl.bucket_name == bucket.bucket_name))
        await db.execute(delete(GroupAcl).where(GroupAcl.bucket_name == bucket.bucket_name))
        await db.execute(delete(BucketAssignment).where(BucketAssignment.bucket_id == bucket.id))
        await db.execute(
            delete(VirtualBucketSource).where(VirtualBucketSource.virtual_bucket_name == bucket.bucket_name)
        )
        await db.delete(bucket)
        await db.commit()
        await bucket_resolver.invalidate(bucket.bucket_name)
        logger.info(f"Deleted bucket: {bucket.bucket_name}")

    # ==================== 虚拟桶源目录 ====================

    async def get_virtual_bucket(self, bucket_name: str, db: AsyncSession) -> Bucket:
        bucket = await self.get_bucket(bucket_name, db)
        if bucket.bucket_type != BucketType.VIRTUAL:
            raise ValidationError(
                f"Bucket {bucket_name} is not a virtual bucket",
                reason="not_virtual",
                resource_id=bucket_name
            )
        return bucket

    async def list_sources(
        self,
        bucket_name: str,
        db: AsyncSession
    ) -> List[tuple[VirtualBucketSource, Optional[str], Optional[str]]]:
        """按 sort_order 升序返回 (source, provider_id, provider_name)"""
        stmt = (
            select(VirtualBucketSource, Bucket.provider_id, Provider.name)
            .join(Bucket, Bucket.bucket_name == VirtualBucketSource.source_bucket_name)
            .outerjoin(Provider, Provider.id == Bucket.provider_id)
            .where(VirtualBucketSource.virtual_bucket_name == bucket_name)
            .order_by(VirtualBucketSource.sort_order, VirtualBucketSource.id)
        )
        return [(source, provider_id, name) for source, provider_id, name in (await db.execute(stmt)).all()]

    async def _get_source(self, bucket_name: str, source_id: int, db: AsyncSession) -> VirtualBucketSource:
        source = await db.get(VirtualBucketSource, source_id)
        if source is None or source.virtual_bucket_name != bucket_name:
            raise NotFound(
                f"Source {source_id} not found in {bucket_name}",
                reason="source_not_found",
                resource_id=str(source_id)
            )
        return source

    async def add_source(
        self,
        bucket_name: str,
        source_bucket_name: str,
        org_id: str,
        db: AsyncSession,
        source_prefix: str = "",
        display_name: Optional[str] = None,
        sort_order: Optional[int] = None,
        mount_point: Optional[str] = None
    ) -> VirtualBucketSource:
        """
        为虚拟桶添加源目录

        源必须是当前组织可见的标准桶；未指定 sort_order 时追加到末尾
        """
        await self.get_virtual_bucket(bucket_name, db)
        source_bucket = await self.get_bucket(source_bucket_name, db)
        if source_bucket.bucket_type != BucketType.STANDARD:
            raise ValidationError(
                "Virtual bucket sources must be standard buckets",
                reason="source_not_standard",
                resource_id=source_bucket_name
            )
        if not await self.is_visible(source_bucket_name, org_id, db):
            raise NotFound(
                f"Bucket {source_bucket_name} not found",
                reason="bucket_not_found",
                resource_id=source_bucket_name
            )

        if sort_order is None:
            count_stmt = select(func.count()).select_from(VirtualBucketSource).where(
                VirtualBucketSource.virtual_bucket_name == bucket_name
            )
            sort_order = (await db.execute(count_stmt)).scalar_one()

        source = VirtualBucketSource(
            virtual_bucket_name=bucket_name,
            source_bucket_name=source_bucket_name,
            source_prefix=(source_prefix or "").lstrip("/"),
            display_name=display_name,
            mount_point=normalize_mount(mount_point),
            sort_order=sort_order,
        )
        db.add(source)
        await db.commit()
        await bucket_resolver.invalidate(bucket_name)
        logger.info(f"Added source {source_bucket_name}/{source.source_prefix} to {bucket_name} (order={sort_order})")
        return source

    async def update_source(
        self,
        bucket_name: str,
        source_id: int,
        db: AsyncSession,
        display_name: Optional[str] = None,
        sort_order: Optional[int] = None,
        mount_point: Optional[str] = None
    ) -> VirtualBucketSource:
        source = await self._get_source(bucket_name, source_id, db)
        if display_name is not None:
            source.display_name = display_name
        if sort_order is not None:
            source.sort_order = sort_order
        if mount_point is not None:
            source.mount_point = normalize_mount(mount_point)
        await db.commit()
        await bucket_resolver.invalidate(bucket_name)
        logger.info(f"Updated source {source_id} of {bucket_name}")
        return source

    async def remove_source(self, bucket_name: str, source_id: int, db: AsyncSession) -> None:
        source = await self._get_source(bucket_name, source_id, db)
        await db.delete(source)
        await db.commit()
        await bucket_resolver.invalidate(bucket_name)
        logger.info(f"Removed source {source_id} from {bucket_name}")

    # ==================== 平台：分配 ====================

    async def list_assignments(self, db: AsyncSession) -> List[tuple[BucketAssignment, str, str]]:
        stmt = (
            select(BucketAssignment, Organization.name, Bucket.bucket_name)
            .join(Organization, Organization.id == BucketAssignment.org_id)
            .join(Bucket, Bucket.id == BucketAssignment.bucket_id)
            .order_by(Organization.name, Bucket.bucket_name)
        )
        return [(a, org_name, bucket_name) for a, org_name, bucket_name in (await db.execute(stmt)).all()]

    async def assign(self, org_id: str, bucket_id: str, db: AsyncSession) -> BucketAssignment:
        if await db.get(Organization, org_id) is None:
            raise NotFound(f"Organization {org_id} not found", reason="organization_not_found", resource_id=org_id)
        await self.get_bucket_by_id(bucket_id, db)

        stmt = select(BucketAssignment).where(
            and_(BucketAssignment.org_id == org_id, BucketAssignment.bucket_id == bucket_id)
        )
        if (await db.execute(stmt)).scalar_one_or_none() is not None:
            raise Conflict("Bucket is already assigned to this organization", reason="duplicate_assignment",
                           resource_id=bucket_id)

        assignment = BucketAssignment(id=str(uuid.uuid4()), org_id=org_id, bucket_id=bucket_id)
        db.add(assignment)
        await db.commit()
        logger.info(f"Assigned bucket {bucket_id} to org {org_id}")
        return assignment

    async def unassign(self, assignment_id: str, db: AsyncSession) -> None:
        assignment = await db.get(BucketAssignment, assignment_id)
        if assignment is None:
            raise NotFound(f"Assignment {assignment_id} not found", reason="assignment_not_found",
                           resource_id=assignment_id)
        await db.delete(assignment)
        await db.commit()
        logger.info(f"Removed assignment {assignment_id}")


# 全局单例
bucket_service = BucketService()
