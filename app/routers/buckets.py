"""
/buckets 端点 - 组织存储桶、浏览和解析
"""
import logging
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies.audit import audit
from app.dependencies.auth import OrgContext, get_org_context, require_capability
from db.models import Bucket, BucketPermission, BucketType
from db.session import get_db
from models.requests import CreateBucketPayload
from services.access_policy import Capability
from services.access_service import access_service
from services.bucket_resolver import VirtualSet, bucket_resolver, normalize_mount, normalize_path
from services.bucket_service import bucket_service
from services.exceptions import Forbidden, NotFound
from services.storage_gateway import storage_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/buckets", tags=["Buckets"])

# 创建/删除存储桶所需的组织能力（按桶类型）
CREATE_CAPABILITY = {
    BucketType.STANDARD: Capability.ORG_MANAGE,
    BucketType.VIRTUAL: Capability.VIRTUAL_BUCKET_CREATE,
}
DELETE_CAPABILITY = {
    BucketType.STANDARD: Capability.ORG_MANAGE,
    BucketType.VIRTUAL: Capability.VIRTUAL_BUCKET_DELETE,
}


def _require(ctx: OrgContext, capability: Capability) -> None:
    if not ctx.can(capability):
        logger.warning(f"User {ctx.user.user_id} ({ctx.role.value}) lacks capability: {capability.value}")
        raise Forbidden(
            f"Insufficient role. Required capability: {capability.value}",
            reason="insufficient_role",
            resource_id=ctx.org_id,
            capability=capability.value
        )


def _bucket_to_dict(bucket: Bucket, org_id: str, provider_name=None, source_count: int = 0) -> dict:
    return {
        "id": bucket.id,
        "bucket_name": bucket.bucket_name,
        "bucket_type": bucket.bucket_type.value,
        "provider_id": bucket.provider_id,
        "provider_name": provider_name,
        "remote_bucket_name": bucket.remote_bucket_name,
        "source_count": source_count,
        "owned": bucket.org_id == org_id,
        "created_at": bucket.created_at.isoformat() if bucket.created_at else None,
    }


async def _visible_bucket(bucket_name: str, ctx: OrgContext, db: AsyncSession) -> Bucket:
    bucket = await bucket_service.get_bucket(bucket_name, db)
    if not await bucket_service.is_visible(bucket_name, ctx.org_id, db):
        raise NotFound(f"Bucket {bucket_name} not found", reason="bucket_not_found", resource_id=bucket_name)
    return bucket


@router.get("")
async def list_buckets(
    ctx: OrgContext = Depends(require_capability(Capability.BUCKET_READ)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """列出当前组织可见的存储桶（自有的和平台分配的）"""
    rows = await bucket_service.list_buckets(ctx.org_id, db)
    return {
        "buckets": [
            _bucket_to_dict(bucket, ctx.org_id, provider_name, count)
            for bucket, provider_name, count in rows
        ]
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_bucket(
    payload: CreateBucketPayload,
    request: Request,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    创建组织自有的存储桶

    - 标准桶需要 org:manage，并指定提供方和远端桶名
    - 虚拟桶需要 virtual-bucket:create，创建后没有源目录
    """
    bucket_type = BucketType(payload.bucket_type)
    _require(ctx, CREATE_CAPABILITY[bucket_type])

    bucket = await bucket_service.create_bucket(
        payload.bucket_name,
        bucket_type,
        db,
        org_id=ctx.org_id,
        provider_id=payload.provider_id,
        remote_bucket_name=payload.remote_bucket_name
    )
    await audit(db, request, ctx.user, "bucket.create", "bucket", bucket.bucket_name, org_id=ctx.org_id,
                bucket_type=bucket_type.value)
    return _bucket_to_dict(bucket, ctx.org_id)


@router.delete("/{bucket_name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_bucket(
    bucket_name: str,
    request: Request,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> None:
    """
    删除组织自有的存储桶

    平台分配的桶只能由平台管理员删除；仍被虚拟桶引用时返回 409
    """
    bucket = await _visible_bucket(bucket_name, ctx, db)
    _require(ctx, DELETE_CAPABILITY[bucket.bucket_type])
    if bucket.org_id != ctx.org_id:
        raise Forbidden(
            f"Bucket {bucket_name} is assigned by the platform and cannot be deleted here",
            reason="bucket_not_owned",
            resource_id=bucket_name
        )

    await bucket_service.delete_bucket(bucket, db)
    await audit(db, request, ctx.user, "bucket.delete", "bucket", bucket_name, org_id=ctx.org_id)


@router.get("/{bucket_name}/resolve")
async def resolve_bucket(
    bucket_name: str,
    ctx: OrgContext = Depends(require_capability(Capability.BUCKET_READ)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """逻辑桶名 → 物理位置（标准桶）或源目录列表（虚拟桶）"""
    await _visible_bucket(bucket_name, ctx, db)
    resolution = await bucket_resolver.resolve(bucket_name, db)
    return resolution.to_dict()


@router.get("/{bucket_name}/browse")
async def browse_bucket(
    bucket_name: str,
    prefix: str = Query("", description="要列出的目录前缀"),
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    浏览存储桶目录

    需要对该桶的读权限；能配置虚拟桶的角色可以直接浏览（用于选择源目录）
    """
    await _visible_bucket(bucket_name, ctx, db)
    if not ctx.can(Capability.VIRTUAL_BUCKET_CREATE):
        decision = await access_service.authorize(
            ctx.user.user_id, ctx.membership, bucket_name, BucketPermission.READ, db
        )
        if not decision:
            raise Forbidden(
                f"Access to bucket {bucket_name} denied",
                reason=decision.reason.value,
                resource_id=bucket_name
            )

    prefix = normalize_path(prefix)
    resolution = await bucket_resolver.resolve(bucket_name, db)
    if not isinstance(resolution, VirtualSet):
        return await storage_gateway.browse(resolution.route_read(prefix), prefix)

    # 虚拟桶：列出命中的源目录，根目录下额外显示各挂载点
    mounts = []
    if not prefix:
        for source in resolution.sources:
            mount = normalize_mount(source.mount_point)
            if mount:
                mounts.append({"name": source.display_name or mount.rstrip("/"), "prefix": mount})

    candidates = resolution.read_candidates(prefix)
    if not candidates:
        if mounts:
            return {"folders": mounts, "files": [], "prefix": prefix, "isTruncated": False}
        resolution.route_read(prefix)

    route = candidates[0]
    listing = await storage_gateway.browse(route, route.key)
    listing["folders"] = mounts + listing["folders"]
    listing["prefix"] = prefix
    listing["source"] = route.to_dict()
    return listing
