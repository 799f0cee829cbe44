"""
/virtual-buckets 端点 - 虚拟桶源目录配置
"""
import logging
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies.audit import audit
from app.dependencies.auth import OrgContext, require_capability
from db.session import get_db
from models.requests import AddVirtualSourcePayload, UpdateVirtualSourcePayload
from services.access_policy import Capability
from services.bucket_service import bucket_service
from services.exceptions import NotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/virtual-buckets", tags=["Virtual Buckets"])


def _source_to_dict(source, provider_id=None, provider_name=None) -> dict:
    return {
        "id": source.id,
        "source_bucket_name": source.source_bucket_name,
        "source_prefix": source.source_prefix,
        "display_name": source.display_name,
        "mount_point": source.mount_point,
        "sort_order": source.sort_order,
        "provider_id": provider_id,
        "provider_name": provider_name,
    }


async def _require_visible(bucket_name: str, ctx: OrgContext, db: AsyncSession) -> None:
    await bucket_service.get_virtual_bucket(bucket_name, db)
    if not await bucket_service.is_visible(bucket_name, ctx.org_id, db):
        raise NotFound(f"Bucket {bucket_name} not found", reason="bucket_not_found", resource_id=bucket_name)


@router.get("/{bucket_name}")
async def get_virtual_bucket(
    bucket_name: str,
    ctx: OrgContext = Depends(require_capability(Capability.BUCKET_READ)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    虚拟桶详情

    sources 按 sort_order 升序排列，第一个源同时是默认写入目标
    """
    await _require_visible(bucket_name, ctx, db)
    rows = await bucket_service.list_sources(bucket_name, db)
    return {
        "bucket_name": bucket_name,
        "bucket_type": "virtual",
        "sources": [_source_to_dict(source, provider_id, name) for source, provider_id, name in rows],
    }


@router.post("/{bucket_name}/sources", status_code=status.HTTP_201_CREATED)
async def add_source(
    bucket_name: str,
    payload: AddVirtualSourcePayload,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.VIRTUAL_BUCKET_CREATE)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    await _require_visible(bucket_name, ctx, db)
    source = await bucket_service.add_source(
        bucket_name,
        payload.source_bucket_name,
        ctx.org_id,
        db,
        source_prefix=payload.source_prefix,
        display_name=payload.display_name,
        sort_order=payload.sort_order,
        mount_point=payload.mount_point
    )
    await audit(db, request, ctx.user, "virtual_bucket.source.add", "bucket", bucket_name, org_id=ctx.org_id,
                source=payload.source_bucket_name, prefix=source.source_prefix)
    return _source_to_dict(source)


@router.put("/{bucket_name}/sources/{source_id}")
async def update_source(
    bucket_name: str,
    source_id: int,
    payload: UpdateVirtualSourcePayload,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.VIRTUAL_BUCKET_CREATE)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """修改显示名、顺序或挂载点"""
    await _require_visible(bucket_name, ctx, db)
    source = await bucket_service.update_source(
        bucket_name,
        source_id,
        db,
        display_name=payload.display_name,
        sort_order=payload.sort_order,
        mount_point=payload.mount_point
    )
    await audit(db, request, ctx.user, "virtual_bucket.source.update", "bucket", bucket_name,
                org_id=ctx.org_id, source_id=source_id)
    return _source_to_dict(source)


@router.delete("/{bucket_name}/sources/{source_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_source(
    bucket_name: str,
    source_id: int,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.VIRTUAL_BUCKET_CREATE)),
    db: AsyncSession = Depends(get_db)
) -> None:
    await _require_visible(bucket_name, ctx, db)
    await bucket_service.remove_source(bucket_name, source_id, db)
    await audit(db, request, ctx.user, "virtual_bucket.source.remove", "bucket", bucket_name,
                org_id=ctx.org_id, source_id=source_id)
