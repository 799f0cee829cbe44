"""
/acls 端点 - 权限矩阵
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies.auth import OrgContext, require_capability
from db.session import get_db
from models.responses import AclMatrixResponse
from services.access_policy import Capability
from services.acl_service import acl_service
from services.bucket_service import bucket_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/acls", tags=["ACLs"])


@router.get("/users", response_model=AclMatrixResponse)
async def get_user_acl_matrix(
    ctx: OrgContext = Depends(require_capability(Capability.ACL_MANAGE)),
    db: AsyncSession = Depends(get_db)
) -> AclMatrixResponse:
    """
    用户权限矩阵 {user_id: {bucket_name: permission}}

    只包含当前组织的成员和可见的存储桶；缺失的键表示无权限
    """
    buckets = await bucket_service.visible_bucket_names(ctx.org_id, db)
    matrix = await acl_service.get_user_acl_matrix(db, buckets=buckets, org_id=ctx.org_id)
    return AclMatrixResponse(acls=matrix)


@router.get("/groups", response_model=AclMatrixResponse)
async def get_group_acl_matrix(
    ctx: OrgContext = Depends(require_capability(Capability.ACL_MANAGE)),
    db: AsyncSession = Depends(get_db)
) -> AclMatrixResponse:
    """用户组权限矩阵 {group_id: {bucket_name: permission}}"""
    buckets = await bucket_service.visible_bucket_names(ctx.org_id, db)
    matrix = await acl_service.get_group_acl_matrix(db, buckets=buckets, org_id=ctx.org_id)
    return AclMatrixResponse(acls=matrix)
