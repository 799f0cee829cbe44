"""
/admin/providers 端点 - 组织可见的存储提供方（只读）
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies.auth import OrgContext, require_capability
from db.models import Provider
from db.session import get_db
from services.access_policy import Capability
from services.provider_service import provider_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/providers", tags=["Providers"])


def provider_to_dict(provider: Provider) -> dict:
    """凭证只写，永远不出现在响应中"""
    return {
        "id": provider.id,
        "name": provider.name,
        "endpoint_url": provider.endpoint_url,
        "region": provider.region,
        "enabled": bool(provider.enabled),
        "has_credentials": bool(provider.access_key_id and provider.secret_access_key),
        "created_at": provider.created_at.isoformat() if provider.created_at else None,
    }


@router.get("")
async def list_providers(
    ctx: OrgContext = Depends(require_capability(Capability.PROVIDER_READ)),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """列出已启用的提供方，用于创建标准桶时选择"""
    providers = await provider_service.list_providers(db, enabled_only=True)
    return {"providers": [provider_to_dict(provider) for provider in providers]}
