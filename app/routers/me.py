"""
/me 端点 - 当前用户与所属组织
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies.auth import get_current_user, User
from db.session import get_db
from services.access_policy import capabilities_of
from services.membership_service import membership_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Me"])


@router.get("/me")
async def get_me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    返回当前用户及其所属组织

    不需要组织请求头；控制台用它来选择当前组织
    """
    organizations = await membership_service.organizations_of(user.user_id, db)
    return {
        "user": user.model_dump(),
        "organizations": [
            {
                "id": org.id,
                "name": org.name,
                "role": role.value,
                "capabilities": sorted(cap.value for cap in capabilities_of(role)),
            }
            for org, role in organizations
        ],
    }
