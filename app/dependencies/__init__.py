"""依赖注入"""
from .auth import (
    User,
    OrgContext,
    get_current_user,
    get_org_context,
    require_capability,
    require_super_admin,
    client_ip,
)

__all__ = [
    "User",
    "OrgContext",
    "get_current_user",
    "get_org_context",
    "require_capability",
    "require_super_admin",
    "client_ip",
]
