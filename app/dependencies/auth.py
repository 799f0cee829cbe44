"""
认证和授权依赖
"""
import logging
from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from db.models import OrgMembership, OrgRole
from db.session import get_db
from services.access_policy import Capability, has_capability
from services.exceptions import Forbidden
from services.membership_service import membership_service

logger = logging.getLogger(__name__)

# HTTP Bearer token 安全方案（缺少 token 时由 get_current_user 返回 401）
security = HTTPBearer(auto_error=False)


class User(BaseModel):
    """当前用户信息"""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    is_super_admin: bool = False


@dataclass
class OrgContext:
    """当前请求的组织上下文"""
    user: User
    membership: OrgMembership

    @property
    def org_id(self) -> str:
        return self.membership.org_id

    @property
    def role(self) -> OrgRole:
        return self.membership.role

    def can(self, capability: Capability) -> bool:
        return has_capability(self.role, capability)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    从 JWT token 中解析当前用户，首次登录时在本地创建用户记录

    Args:
        credentials: HTTP Authorization 凭证
        db: 数据库会话

    Returns:
        User 对象

    Raises:
        HTTPException: 如果 token 缺失、无效或过期
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience
        )
    except JWTError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise credentials_exception from e

    user_id: Optional[str] = payload.get("sub")
    if user_id is None:
        logger.warning("JWT payload missing 'sub' field")
        raise credentials_exception

    record = await membership_service.sync_user(user_id, payload.get("email"), payload.get("name"), db)

    logger.debug(f"Authenticated user: {user_id}")
    return User(
        user_id=record.id,
        email=record.email,
        name=record.name,
        is_super_admin=bool(record.is_super_admin)
    )


async def get_org_context(
    user: User = Depends(get_current_user),
    org_id: Optional[str] = Header(None, alias=settings.organization_header),
    db: AsyncSession = Depends(get_db)
) -> OrgContext:
    """
    解析组织上下文，缺少或无法解析时拒绝请求

    Raises:
        Forbidden: missing_organization / not_a_member
    """
    if not org_id:
        raise Forbidden(
            f"Missing {settings.organization_header} header",
            reason="missing_organization"
        )

    membership = await membership_service.is_member(user.user_id, org_id, db)
    if membership is None:
        logger.warning(f"User {user.user_id} is not a member of org {org_id}")
        raise Forbidden(
            f"User is not a member of organization {org_id}",
            reason="not_a_member",
            resource_id=org_id
        )
    return OrgContext(user=user, membership=membership)


def require_capability(capability: Capability):
    """
    创建一个依赖，要求当前角色具有特定的组织能力

    Args:
        capability: 所需的能力

    Returns:
        依赖函数
    """
    async def capability_checker(ctx: OrgContext = Depends(get_org_context)) -> OrgContext:
        if not ctx.can(capability):
            logger.warning(f"User {ctx.user.user_id} ({ctx.role.value}) lacks capability: {capability.value}")
            raise Forbidden(
                f"Insufficient role. Required capability: {capability.value}",
                reason="insufficient_role",
                resource_id=ctx.org_id,
                capability=capability.value
            )
        return ctx

    return capability_checker


async def require_super_admin(user: User = Depends(get_current_user)) -> User:
    """平台接口只对平台管理员开放"""
    if not user.is_super_admin:
        logger.warning(f"User {user.user_id} attempted a platform operation")
        raise Forbidden("Platform administrator required", reason="not_super_admin", resource_id=user.user_id)
    return user


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
