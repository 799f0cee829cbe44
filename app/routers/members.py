"""
/organization/members 端点 - 组织成员管理
"""
import logging
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies.audit import audit
from app.dependencies.auth import OrgContext, get_org_context, require_capability
from db.models import OrgRole
from db.session import get_db
from models.requests import ChangeRolePayload, InviteMemberPayload
from services.access_policy import Capability
from services.exceptions import Forbidden, NotFound
from services.key_service import key_service
from services.membership_service import membership_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/organization/members", tags=["Members"])


def _require_owner_rights(ctx: OrgContext) -> None:
    """授予或移除 owner 身份只有 owner 能做"""
    if not ctx.can(Capability.MEMBER_CHANGE_ROLE):
        raise Forbidden(
            "Only owners can grant or revoke the owner role",
            reason="insufficient_role",
            resource_id=ctx.org_id,
            capability=Capability.MEMBER_CHANGE_ROLE.value
        )


@router.get("")
async def list_members(
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> dict:
    rows = await membership_service.list_org_users(ctx.org_id, db)
    return {
        "members": [
            {
                "user_id": user.id,
                "email": user.email,
                "name": user.name,
                "role": membership.role.value,
                "joined_at": membership.created_at.isoformat() if membership.created_at else None,
            }
            for user, membership in rows
        ]
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def invite_member(
    payload: InviteMemberPayload,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.MEMBER_INVITE)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    把已登录过的用户加入当前组织

    用户在首次登录时创建；未知邮箱返回 404
    """
    if payload.role == OrgRole.OWNER.value:
        _require_owner_rights(ctx)

    user = await membership_service.get_user_by_email(payload.email, db)
    if user is None:
        raise NotFound(f"No user with email {payload.email}", reason="user_not_found", resource_id=payload.email)

    membership = await membership_service.add_member(user.id, ctx.org_id, payload.role, db)
    await audit(db, request, ctx.user, "member.add", "user", user.id, org_id=ctx.org_id, role=payload.role)
    return {"user_id": user.id, "email": user.email, "role": membership.role.value}


@router.put("/{user_id}")
async def change_role(
    user_id: str,
    payload: ChangeRolePayload,
    request: Request,
    ctx: OrgContext = Depends(require_capability(Capability.MEMBER_CHANGE_ROLE)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """修改成员角色；降级最后一个 owner 返回 409"""
    membership = await membership_service.change_role(user_id, ctx.org_id, payload.role, db)
    await audit(db, request, ctx.user, "member.change_role", "user", user_id, org_id=ctx.org_id,
                role=payload.role)
    return {"user_id": user_id, "role": membership.role.value}


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    user_id: str,
    request: Request,
    ctx: OrgContext = Depends(get_org_context),
    db: AsyncSession = Depends(get_db)
) -> None:
    """
    移除成员（成员可以自己退出组织）

    同时删除该成员在本组织的访问密钥；移除最后一个 owner 返回 409
    """
    if user_id != ctx.user.user_id:
        if not ctx.can(Capability.MEMBER_REMOVE):
            raise Forbidden(
                "Insufficient role. Required capability: member:remove",
                reason="insufficient_role",
                resource_id=ctx.org_id,
                capability=Capability.MEMBER_REMOVE.value
            )
        target = await membership_service.require_membership(user_id, ctx.org_id, db)
        if target.role == OrgRole.OWNER:
            _require_owner_rights(ctx)

    # 密钥删除与成员关系删除在同一次提交中完成
    await key_service.delete_user_keys(user_id, ctx.org_id, db, commit=False)
    await membership_service.remove_member(user_id, ctx.org_id, db)
    await audit(db, request, ctx.user, "member.remove", "user", user_id, org_id=ctx.org_id)
