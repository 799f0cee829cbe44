"""
/platform 端点 - 平台管理（仅平台管理员）
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies.audit import audit
from app.dependencies.auth import User, require_super_admin
from app.routers.providers import provider_to_dict
from db.models import BucketType
from db.session import get_db
from models.requests import (
    AssignBucketPayload,
    CreateOrganizationPayload,
    CreateProviderPayload,
    CreateSourceBucketPayload,
    SuperAdminPayload,
    UpdateProviderPayload,
)
from services.audit_service import audit_service, serialize_entry
from services.bucket_service import bucket_service
from services.exceptions import NotFound
from services.membership_service import membership_service
from services.platform_service import platform_service
from services.provider_service import provider_service
from services.resolution_cache import resolution_cache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/platform", tags=["Platform"])


@router.get("/status")
async def platform_status(
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """平台概览：资源计数和解析缓存后端"""
    counts = await platform_service.status(db)
    return {
        "counts": counts,
        "resolution_cache": resolution_cache.backend,
    }


# ==================== 提供方 ====================

@router.get("/providers")
async def list_providers(
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> dict:
    providers = await provider_service.list_providers(db)
    return {"providers": [provider_to_dict(provider) for provider in providers]}


@router.post("/providers", status_code=status.HTTP_201_CREATED)
async def create_provider(
    payload: CreateProviderPayload,
    request: Request,
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """创建提供方；凭证加密存储，之后不会再返回"""
    provider = await provider_service.create_provider(
        payload.id,
        payload.name,
        payload.endpoint_url,
        payload.access_key_id,
        payload.secret_access_key,
        db,
        region=payload.region
    )
    await audit(db, request, user, "provider.create", "provider", provider.id)
    return provider_to_dict(provider)


@router.put("/providers/{provider_id}")
async def update_provider(
    provider_id: str,
    payload: UpdateProviderPayload,
    request: Request,
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """更新提供方；凭证字段留空表示保持不变"""
    provider = await provider_service.update_provider(
        provider_id,
        db,
        name=payload.name,
        endpoint_url=payload.endpoint_url,
        region=payload.region,
        access_key_id=payload.access_key_id,
        secret_access_key=payload.secret_access_key,
        enabled=payload.enabled
    )
    await audit(db, request, user, "provider.update", "provider", provider_id,
                credentials_changed=bool(payload.access_key_id or payload.secret_access_key))
    return provider_to_dict(provider)


@router.delete("/providers/{provider_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_provider(
    provider_id: str,
    request: Request,
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> None:
    await provider_service.delete_provider(provider_id, db)
    await audit(db, request, user, "provider.delete", "provider", provider_id)


# ==================== 源存储桶 ====================

@router.get("/buckets")
async def list_buckets(
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> dict:
    rows = await bucket_service.list_all_buckets(db)
    return {
        "buckets": [
            {
                "id": bucket.id,
                "bucket_name": bucket.bucket_name,
                "bucket_type": bucket.bucket_type.value,
                "provider_id": bucket.provider_id,
                "provider_name": provider_name,
                "remote_bucket_name": bucket.remote_bucket_name,
                "org_id": bucket.org_id,
                "org_name": org_name,
            }
            for bucket, provider_name, org_name in rows
        ]
    }


@router.post("/buckets", status_code=status.HTTP_201_CREATED)
async def create_source_bucket(
    payload: CreateSourceBucketPayload,
    request: Request,
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """创建平台源桶（不属于任何组织，通过分配对组织可见）"""
    bucket = await bucket_service.create_bucket(
        payload.bucket_name,
        BucketType.STANDARD,
        db,
        provider_id=payload.provider_id,
        remote_bucket_name=payload.remote_bucket_name
    )
    await audit(db, request, user, "bucket.create", "bucket", bucket.bucket_name, source=True)
    return {
        "id": bucket.id,
        "bucket_name": bucket.bucket_name,
        "bucket_type": bucket.bucket_type.value,
        "provider_id": bucket.provider_id,
        "remote_bucket_name": bucket.remote_bucket_name,
    }


@router.delete("/buckets/{bucket_name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_bucket(
    bucket_name: str,
    request: Request,
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> None:
    """删除任意存储桶；仍被虚拟桶引用时返回 409"""
    bucket = await bucket_service.get_bucket(bucket_name, db)
    await bucket_service.delete_bucket(bucket, db)
    await audit(db, request, user, "bucket.delete", "bucket", bucket_name)


# ==================== 组织 ====================

@router.get("/organizations")
async def list_organizations(
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> dict:
    rows = await platform_service.list_organizations(db)
    return {
        "organizations": [
            {
                "id": org.id,
                "name": org.name,
                "member_count": members,
                "bucket_count": buckets,
                "created_at": org.created_at.isoformat() if org.created_at else None,
            }
            for org, members, buckets in rows
        ]
    }


@router.post("/organizations", status_code=status.HTTP_201_CREATED)
async def create_organization(
    payload: CreateOrganizationPayload,
    request: Request,
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """创建组织，可同时指定第一个 owner（必须是已登录过的用户）"""
    owner = None
    if payload.owner_email:
        owner = await membership_service.get_user_by_email(payload.owner_email, db)
        if owner is None:
            raise NotFound(f"No user with email {payload.owner_email}", reason="user_not_found",
                           resource_id=payload.owner_email)

    org = await platform_service.create_organization(payload.name, db, owner=owner)
    await audit(db, request, user, "organization.create", "organization", org.id, org_id=org.id,
                owner=owner.id if owner else None)
    return {"id": org.id, "name": org.name, "owner_id": owner.id if owner else None}


@router.delete("/organizations/{org_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    org_id: str,
    request: Request,
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> None:
    await platform_service.delete_organization(org_id, db)
    await audit(db, request, user, "organization.delete", "organization", org_id)


# ==================== 用户 ====================

@router.get("/users")
async def list_users(
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> dict:
    rows = await platform_service.list_users(db)
    return {
        "users": [
            {
                "id": record.id,
                "email": record.email,
                "name": record.name,
                "is_super_admin": bool(record.is_super_admin),
                "org_count": count,
                "last_sign_in_at": record.last_sign_in_at.isoformat() if record.last_sign_in_at else None,
            }
            for record, count in rows
        ]
    }


@router.put("/users/{user_id}/super-admin")
async def set_super_admin(
    user_id: str,
    payload: SuperAdminPayload,
    request: Request,
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> dict:
    record = await platform_service.set_super_admin(user_id, payload.is_super_admin, db)
    await audit(db, request, user, "user.super_admin", "user", user_id, value=payload.is_super_admin)
    return {"id": record.id, "is_super_admin": bool(record.is_super_admin)}


# ==================== 分配 ====================

@router.get("/assignments")
async def list_assignments(
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> dict:
    rows = await bucket_service.list_assignments(db)
    return {
        "assignments": [
            {
                "id": assignment.id,
                "org_id": assignment.org_id,
                "org_name": org_name,
                "bucket_id": assignment.bucket_id,
                "bucket_name": bucket_name,
            }
            for assignment, org_name, bucket_name in rows
        ]
    }


@router.post("/assignments", status_code=status.HTTP_201_CREATED)
async def assign_bucket(
    payload: AssignBucketPayload,
    request: Request,
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """把存储桶分配给组织，重复分配返回 409"""
    assignment = await bucket_service.assign(payload.org_id, payload.bucket_id, db)
    await audit(db, request, user, "bucket.assign", "bucket", payload.bucket_id, org_id=payload.org_id)
    return {"id": assignment.id, "org_id": assignment.org_id, "bucket_id": assignment.bucket_id}


@router.delete("/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unassign_bucket(
    assignment_id: str,
    request: Request,
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> None:
    await bucket_service.unassign(assignment_id, db)
    await audit(db, request, user, "bucket.unassign", "assignment", assignment_id)


# ==================== 审计日志 ====================

@router.get("/audit-logs")
async def list_audit_logs(
    org_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """按时间倒序分页查询审计日志"""
    entries, total = await audit_service.list_entries(
        db, org_id=org_id, user_id=user_id, action=action, limit=limit, offset=offset
    )
    return {
        "logs": [serialize_entry(entry) for entry in entries],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
