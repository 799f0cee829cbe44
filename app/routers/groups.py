"""
/groups 端点 - 用户组、组成员和组授权
"""
import logging
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies.audit import audit
from app.dependencies.auth import OrgContext, get_org_context, require_capability
from db.session import get_db
from models.requests import (
    AddGroupMemberPayload,
    CreateGroupPayload,
    GrantGroupAccessPayload,
    UpdateGroupPayload,
)
from services.access_policy import Capability
from services.acl_service import acl_service
from services.bucket_service import bucket_service
from services.exceptions import NotFound
from services.membership_service import membership_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["Groups"])


def _group_to_dict(group, member_count: int = 0) -> dict:
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "member_count": member_count,
    }


@router.get("")
async def list_groups(
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """列出当前组织的用户组"""
    rows = await membership_service.list_groups(ctx.org_id, db)
    return {"groups": [_group_to_dict(group, count) for group, count in rows]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_group(
    payload: CreateGroupPayload,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.GROUP_MANAGE)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    group = await membership_service.create_group(
        payload.id, payload.name, ctx.org_id, db, description=payload.description
    )
    await audit(db, request, ctx.user, "group.create", "group", group.id, org_id=ctx.org_id)
    return _group_to_dict(group)


@router.get("/{group_id}")
async def get_group(
    group_id: str,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """用户组详情：成员列表和存储桶授权"""
    group = await membership_service.get_group(group_id, ctx.org_id, db)
    members = await membership_service.list_group_members(group_id, db)
    access = await acl_service.get_group_acl(group_id, db)

    result = _group_to_dict(group, len(members))
    result["members"] = [
        {"id": user.id, "email": user.email, "name": user.name, "added_at": edge.created_at.isoformat()
         if edge.created_at else None}
        for user, edge in members
    ]
    result["access"] = [
        {"bucket": bucket_name, "permission": permission.value}
        for bucket_name, permission in access
    ]
    return result


@router.put("/{group_id}")
async def update_group(
    group_id: str,
    payload: UpdateGroupPayload,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.GROUP_MANAGE)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """更新名称和描述（ID 不可修改）"""
    group = await membership_service.update_group(
        group_id, ctx.org_id, db, name=payload.name, description=payload.description
    )
    await audit(db, request, ctx.user, "group.update", "group", group_id, org_id=ctx.org_id)
    return _group_to_dict(group)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(
    group_id: str,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.GROUP_MANAGE)),
    db: AsyncSession = Depends(get_db)
) -> None:
    await membership_service.delete_group(group_id, ctx.org_id, db)
    await audit(db, request, ctx.user, "group.delete", "group", group_id, org_id=ctx.org_id)


# ==================== 组成员 ====================

@router.post("/{group_id}/members", status_code=status.HTTP_201_CREATED)
async def add_group_member(
    group_id: str,
    payload: AddGroupMemberPayload,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.GROUP_MANAGE)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """把组织成员加入用户组，重复添加返回 409"""
    await membership_service.add_group_member(group_id, payload.userId, ctx.org_id, db)
    await audit(db, request, ctx.user, "group.member.add", "group", group_id, org_id=ctx.org_id,
                user=payload.userId)
    return {"group_id": group_id, "user_id": payload.userId}


@router.delete("/{group_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_group_member(
    group_id: str,
    user_id: str,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.GROUP_MANAGE)),
    db: AsyncSession = Depends(get_db)
) -> None:
    await membership_service.remove_group_member(group_id, user_id, ctx.org_id, db)
    await audit(db, request, ctx.user, "group.member.remove", "group", group_id, org_id=ctx.org_id,
                user=user_id)


# ==================== 组授权 ====================

@router.post("/{group_id}/access")
async def grant_group_access(
    group_id: str,
    payload: GrantGroupAccessPayload,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.ACL_MANAGE)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """设置用户组对存储桶的权限（已存在时覆盖）"""
    await membership_service.get_group(group_id, ctx.org_id, db)
    if not await bucket_service.is_visible(payload.bucket, ctx.org_id, db):
        raise NotFound(f"Bucket {payload.bucket} not found", reason="bucket_not_found",
                       resource_id=payload.bucket)

    permission = await acl_service.set_group_permission(group_id, payload.bucket, payload.permission, db)
    await audit(db, request, ctx.user, "acl.set", "group", group_id, org_id=ctx.org_id,
                bucket=payload.bucket, permission=permission.value)
    return {"group_id": group_id, "bucket": payload.bucket, "permission": permission.value}


@router.delete("/{group_id}/access/{bucket_name}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_group_access(
    group_id: str,
    bucket_name: str,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.ACL_MANAGE)),
    db: AsyncSession = Depends(get_db)
) -> None:
    await membership_service.get_group(group_id, ctx.org_id, db)
    await acl_service.set_group_permission(group_id, bucket_name, None, db)
    await audit(db, request, ctx.user, "acl.remove", "group", group_id, org_id=ctx.org_id, bucket=bucket_name)
