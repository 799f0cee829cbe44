"""
/locks 端点 - 活动文件锁（只读，仅供参考）
"""
import logging
from fastapi import APIRouter, Depends

from app.dependencies.auth import OrgContext, require_capability
from services.access_policy import Capability
from services.storage_gateway import storage_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/locks", tags=["Locks"])


@router.get("/list")
async def list_locks(
    ctx: OrgContext = Depends(require_capability(Capability.BUCKET_READ))
) -> dict:
    """从存储网关转发当前的文件锁列表；网关不可用时返回 503"""
    locks = await storage_gateway.list_locks()
    return {"locks": locks}
