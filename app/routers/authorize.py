"""
/authorize 端点 - 访问决策与路由
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies.auth import get_current_user, User
from config.settings import settings
from db.models import BucketPermission
from db.session import get_db
from models.requests import AuthorizePayload
from models.responses import AuthorizeResponse, RouteInfo
from services.access_service import access_service
from services.bucket_resolver import bucket_resolver
from services.membership_service import membership_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Authorize"])


@router.post("/authorize", response_model=AuthorizeResponse)
async def authorize(
    payload: AuthorizePayload,
    user: User = Depends(get_current_user),
    org_id: Optional[str] = Header(None, alias=settings.organization_header),
    db: AsyncSession = Depends(get_db)
) -> AuthorizeResponse:
    """
    判断当前用户能否以指定权限访问存储桶中的路径

    拒绝不是错误：返回 allowed=false 和原因代码
    （no_organization_context / insufficient_role / bucket_not_in_organization /
    insufficient_bucket_acl）。允许时附带解析后的物理目标：
    读取返回按优先级排列的候选源，写入返回唯一目标
    """
    membership = await membership_service.is_member(user.user_id, org_id, db) if org_id else None
    requested = BucketPermission(payload.permission)

    decision = await access_service.authorize(user.user_id, membership, payload.bucket_name, requested, db)
    effective = decision.effective_permission.value if decision.effective_permission else None
    if not decision:
        return AuthorizeResponse(allowed=False, reason=decision.reason.value, effective_permission=effective)

    resolution = await bucket_resolver.resolve(payload.bucket_name, db)
    if requested == BucketPermission.READ:
        candidates = [RouteInfo(**route.to_dict()) for route in resolution.read_candidates(payload.path)]
        target = RouteInfo(**resolution.route_read(payload.path).to_dict())
    else:
        candidates = []
        target = RouteInfo(**resolution.route_write(payload.path).to_dict())

    return AuthorizeResponse(
        allowed=True,
        effective_permission=effective,
        target=target,
        candidates=candidates,
    )
