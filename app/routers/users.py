"""
/users 端点 - 组织用户及其存储桶权限
"""
import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies.audit import audit
from app.dependencies.auth import OrgContext, get_org_context, require_capability
from db.session import get_db
from models.requests import PermissionPayload, UserAclPayload
from services.access_policy import Capability
from services.acl_service import acl_service
from services.bucket_service import bucket_service
from services.exceptions import Forbidden, NotFound
from services.membership_service import membership_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


async def _require_visible_bucket(bucket_name: str, ctx: OrgContext, db: AsyncSession) -> None:
    if not await bucket_service.is_visible(bucket_name, ctx.org_id, db):
        raise NotFound(f"Bucket {bucket_name} not found", reason="bucket_not_found", resource_id=bucket_name)


@router.get("")
async def list_users(
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """列出当前组织的用户（含角色和所属用户组）"""
    rows = await membership_service.list_org_users(ctx.org_id, db)
    users = []
    for user, membership in rows:
        groups = await membership_service.groups_of(user.id, db, org_id=ctx.org_id)
        users.append({
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "role": membership.role.value,
            "groups": [group.id for group in groups],
            "last_sign_in_at": user.last_sign_in_at.isoformat() if user.last_sign_in_at else None,
        })
    return {"users": users}


@router.get("/{user_id}/acl")
async def get_user_acl(
    user_id: str,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    用户的直接授权列表

    本人可以查看自己的授权，查看他人需要 acl:manage
    """
    if user_id != ctx.user.user_id and not ctx.can(Capability.ACL_MANAGE):
        raise Forbidden(
            "Insufficient role. Required capability: acl:manage",
            reason="insufficient_role",
            resource_id=user_id
        )
    await membership_service.require_membership(user_id, ctx.org_id, db)

    visible = await bucket_service.visible_bucket_names(ctx.org_id, db)
    entries = await acl_service.get_user_acl(user_id, db)
    return {
        "user_id": user_id,
        "acls": [
            {"bucket_name": bucket_name, "permission": permission.value}
            for bucket_name, permission in entries
            if bucket_name in visible
        ],
    }


@router.put("/{user_id}/acl")
async def replace_user_acl(
    user_id: str,
    payload: UserAclPayload,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.ACL_MANAGE)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    整体替换用户在当前组织可见存储桶上的授权

    其它组织的桶上的条目不受影响
    """
    await membership_service.require_membership(user_id, ctx.org_id, db)
    entries = payload.entries()
    for entry in entries:
        await _require_visible_bucket(entry.bucket_name, ctx, db)

    visible = await bucket_service.visible_bucket_names(ctx.org_id, db)
    result = await acl_service.replace_user_acl(
        user_id,
        [(entry.bucket_name, entry.permission) for entry in entries],
        db,
        scope=visible
    )
    await audit(db, request, ctx.user, "acl.replace", "user", user_id, org_id=ctx.org_id,
                entries=len(result))
    return {
        "user_id": user_id,
        "acls": [{"bucket_name": name, "permission": permission.value} for name, permission in result],
    }


@router.put("/{user_id}/acl/{bucket_name}")
async def set_user_permission(
    user_id: str,
    bucket_name: str,
    payload: PermissionPayload,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.ACL_MANAGE)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """设置单个存储桶的权限，permission 为 none 或空时移除"""
    await membership_service.require_membership(user_id, ctx.org_id, db)
    await _require_visible_bucket(bucket_name, ctx, db)

    permission = await acl_service.set_user_permission(user_id, bucket_name, payload.permission, db)
    value = permission.value if permission else None
    await audit(db, request, ctx.user, "acl.set", "user", user_id, org_id=ctx.org_id,
                bucket=bucket_name, permission=value)
    return {"user_id": user_id, "bucket_name": bucket_name, "permission": value}


@router.delete("/{user_id}/acl/{bucket_name}")
async def remove_user_permission(
    user_id: str,
    bucket_name: str,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.ACL_MANAGE)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """移除单个存储桶的直接授权（不存在时也视为成功）"""
    await membership_service.require_membership(user_id, ctx.org_id, db)
    await _require_visible_bucket(bucket_name, ctx, db)

    await acl_service.set_user_permission(user_id, bucket_name, None, db)
    await audit(db, request, ctx.user, "acl.remove", "user", user_id, org_id=ctx.org_id, bucket=bucket_name)
    return {"user_id": user_id, "bucket_name": bucket_name, "permission": None}
