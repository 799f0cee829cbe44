"""
/keys 端点 - S3 访问密钥
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies.audit import audit
from app.dependencies.auth import OrgContext, get_org_context
from db.models import AccessKey
from db.session import get_db
from models.requests import CreateKeyPayload, UpdateKeyPayload
from models.responses import AccessKeyInfo, AccessKeySecret
from services.access_policy import Capability
from services.acl_service import acl_service
from services.bucket_service import bucket_service
from services.exceptions import Forbidden
from services.key_service import is_expired, key_service
from services.membership_service import membership_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/keys", tags=["Access Keys"])


def _forbidden(ctx: OrgContext, capability: Capability) -> Forbidden:
    logger.warning(f"User {ctx.user.user_id} ({ctx.role.value}) lacks capability: {capability.value}")
    return Forbidden(
        f"Insufficient role. Required capability: {capability.value}",
        reason="insufficient_role",
        resource_id=ctx.org_id,
        capability=capability.value
    )


def _check_key_access(ctx: OrgContext, owner_id: str) -> None:
    """本人的密钥需要 key:own，他人的密钥需要 key:manage"""
    if ctx.can(Capability.KEY_MANAGE):
        return
    if owner_id != ctx.user.user_id:
        raise _forbidden(ctx, Capability.KEY_MANAGE)
    if not ctx.can(Capability.KEY_OWN):
        raise _forbidden(ctx, Capability.KEY_OWN)


async def _bucket_count(user_id: str, org_id: str, db: AsyncSession) -> int:
    """密钥持有者在本组织中有授权的存储桶数（直接授权或组授权）"""
    visible = await bucket_service.visible_bucket_names(org_id, db)
    granted = {bucket_name for bucket_name, _ in await acl_service.get_user_acl(user_id, db)}
    for group in await membership_service.groups_of(user_id, db, org_id=org_id):
        granted.update(bucket_name for bucket_name, _ in await acl_service.get_group_acl(group.id, db))
    return len(granted & visible)


async def _key_info(key: AccessKey, db: AsyncSession) -> AccessKeyInfo:
    return AccessKeyInfo(
        access_key_id=key.access_key_id,
        user_id=key.user_id,
        name=key.name,
        expiration=key.expiration,
        enabled=bool(key.enabled),
        expired=is_expired(key),
        bucket_count=await _bucket_count(key.user_id, key.org_id, db),
        created_at=key.created_at,
        rotated_at=key.rotated_at,
    )


@router.get("")
async def list_keys(
    user_id: Optional[str] = Query(None, description="按用户过滤"),
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    列出访问密钥（不含 Secret）

    key:manage 可以查看组织内全部密钥，否则只返回自己的密钥
    """
    if not ctx.can(Capability.KEY_MANAGE):
        _check_key_access(ctx, user_id or ctx.user.user_id)
        user_id = ctx.user.user_id

    keys = await key_service.list_keys(ctx.org_id, db, user_id=user_id)
    return {"keys": [(await _key_info(key, db)).model_dump(mode="json") for key in keys]}


@router.post("", response_model=AccessKeySecret, status_code=status.HTTP_201_CREATED)
async def create_key(
    payload: CreateKeyPayload,
    request: Request,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> AccessKeySecret:
    """
    创建访问密钥

    Secret 只在本次响应中返回一次
    """
    owner_id = payload.user_id or ctx.user.user_id
    _check_key_access(ctx, owner_id)
    await membership_service.require_membership(owner_id, ctx.org_id, db)

    key, secret = await key_service.create_key(
        owner_id, ctx.org_id, db, name=payload.name, expiration=payload.expiration
    )
    await audit(db, request, ctx.user, "key.create", "access_key", key.access_key_id, org_id=ctx.org_id,
                owner=owner_id)
    return AccessKeySecret(
        access_key_id=key.access_key_id,
        secret_key=secret,
        user_id=owner_id,
        name=key.name,
        expiration=key.expiration,
    )


@router.put("/{access_key_id}", response_model=AccessKeyInfo)
async def update_key(
    access_key_id: str,
    payload: UpdateKeyPayload,
    request: Request,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> AccessKeyInfo:
    """修改名称、启用状态或过期时间"""
    key = await key_service.get_key(access_key_id, ctx.org_id, db)
    _check_key_access(ctx, key.user_id)

    key = await key_service.update_key(
        key,
        db,
        name=payload.name,
        enabled=payload.enabled,
        expiration=payload.expiration,
        clear_expiration=payload.clear_expiration
    )
    await audit(db, request, ctx.user, "key.update", "access_key", access_key_id, org_id=ctx.org_id)
    return await _key_info(key, db)


@router.post("/{access_key_id}/rotate", response_model=AccessKeySecret)
async def rotate_key(
    access_key_id: str,
    request: Request,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> AccessKeySecret:
    """
    轮转 Secret

    旧 Secret 立即失效，新 Secret 只返回这一次
    """
    key = await key_service.get_key(access_key_id, ctx.org_id, db)
    _check_key_access(ctx, key.user_id)

    secret = await key_service.rotate_key(key, db)
    await audit(db, request, ctx.user, "key.rotate", "access_key", access_key_id, org_id=ctx.org_id)
    return AccessKeySecret(
        access_key_id=key.access_key_id,
        secret_key=secret,
        user_id=key.user_id,
        name=key.name,
        expiration=key.expiration,
    )


@router.delete("/{access_key_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_key(
    access_key_id: str,
    request: Request,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> None:
    key = await key_service.get_key(access_key_id, ctx.org_id, db)
    _check_key_access(ctx, key.user_id)

    await key_service.delete_key(key, db)
    await audit(db, request, ctx.user, "key.delete", "access_key", access_key_id, org_id=ctx.org_id)
