"""
访问策略（纯函数）

- 角色 → 能力 静态表
- 有效权限计算：直接授权与所有组授权取最大值
- 访问决策：先检查组织能力，再检查存储桶 ACL

这里不访问数据库，也不抛出“无权限”异常；拒绝以 AccessDecision 返回
"""
import enum
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from db.models import BucketPermission, OrgRole
from services.exceptions import ValidationError


class Capability(str, enum.Enum):
    """组织级能力"""
    ORG_MANAGE = "org:manage"
    ORG_DELETE = "org:delete"
    BUCKET_READ = "bucket:read"
    BUCKET_WRITE = "bucket:write"
    VIRTUAL_BUCKET_CREATE = "virtual-bucket:create"
    VIRTUAL_BUCKET_DELETE = "virtual-bucket:delete"
    PROVIDER_READ = "provider:read"
    ACL_MANAGE = "acl:manage"
    GROUP_MANAGE = "group:manage"
    MEMBER_INVITE = "member:invite"
    MEMBER_REMOVE = "member:remove"
    MEMBER_CHANGE_ROLE = "member:change-role"
    KEY_MANAGE = "key:manage"
    KEY_OWN = "key:own"
    AUDIT_READ = "audit:read"


# 角色之间不是严格的包含关系，必须逐项列出
ROLE_CAPABILITIES: dict[OrgRole, frozenset[Capability]] = {
    OrgRole.OWNER: frozenset(Capability),
    OrgRole.ADMIN: frozenset({
        Capability.BUCKET_READ,
        Capability.BUCKET_WRITE,
        Capability.VIRTUAL_BUCKET_CREATE,
        Capability.VIRTUAL_BUCKET_DELETE,
        Capability.PROVIDER_READ,
        Capability.ACL_MANAGE,
        Capability.GROUP_MANAGE,
        Capability.MEMBER_INVITE,
        Capability.MEMBER_REMOVE,
        Capability.KEY_MANAGE,
        Capability.KEY_OWN,
        Capability.AUDIT_READ,
    }),
    OrgRole.MEMBER: frozenset({
        Capability.BUCKET_READ,
        Capability.BUCKET_WRITE,
        Capability.PROVIDER_READ,
        Capability.KEY_OWN,
    }),
    OrgRole.VIEWER: frozenset({
        Capability.BUCKET_READ,
        Capability.PROVIDER_READ,
        Capability.KEY_OWN,
    }),
}

# 请求的存储桶权限所需的组织能力
PERMISSION_CAPABILITY: dict[BucketPermission, Capability] = {
    BucketPermission.READ: Capability.BUCKET_READ,
    BucketPermission.WRITE: Capability.BUCKET_WRITE,
    BucketPermission.ADMIN: Capability.BUCKET_WRITE,
}


class DenyReason(str, enum.Enum):
    """拒绝原因代码"""
    NO_ORGANIZATION_CONTEXT = "no_organization_context"
    INSUFFICIENT_ROLE = "insufficient_role"
    BUCKET_NOT_IN_ORGANIZATION = "bucket_not_in_organization"
    INSUFFICIENT_BUCKET_ACL = "insufficient_bucket_acl"


@dataclass(frozen=True)
class AccessDecision:
    """访问决策：Allow 或 Deny(reason)"""
    allowed: bool
    reason: Optional[DenyReason] = None
    effective_permission: Optional[BucketPermission] = None

    @classmethod
    def allow(cls, effective: BucketPermission) -> "AccessDecision":
        return cls(allowed=True, effective_permission=effective)

    @classmethod
    def deny(
        cls,
        reason: DenyReason,
        effective: Optional[BucketPermission] = None
    ) -> "AccessDecision":
        return cls(allowed=False, reason=reason, effective_permission=effective)

    def __bool__(self) -> bool:
        return self.allowed


def parse_role(value: Any) -> OrgRole:
    """在边界处把字符串转换为角色枚举，未知值直接拒绝"""
    if isinstance(value, OrgRole):
        return value
    try:
        return OrgRole(str(value).lower())
    except ValueError:
        raise ValidationError(f"Unknown role: {value}", reason="invalid_role", resource_id=str(value))


def parse_permission(value: Any) -> Optional[BucketPermission]:
    """None / "none" / 空字符串 表示无权限"""
    if value is None or isinstance(value, BucketPermission):
        return value
    text = str(value).lower()
    if text in ("", "none"):
        return None
    try:
        return BucketPermission(text)
    except ValueError:
        raise ValidationError(
            f"Unknown permission: {value}",
            reason="invalid_permission",
            resource_id=str(value)
        )


def capabilities_of(role: Any) -> frozenset[Capability]:
    """
    返回角色的能力集合

    未知角色返回空集合（默认拒绝）
    """
    if not isinstance(role, OrgRole):
        try:
            role = OrgRole(role)
        except ValueError:
            return frozenset()
    return ROLE_CAPABILITIES.get(role, frozenset())


def has_capability(role: Any, capability: Capability) -> bool:
    return capability in capabilities_of(role)


def max_permission(permissions: Iterable[Optional[BucketPermission]]) -> Optional[BucketPermission]:
    """取最高权限，None 为最小值"""
    best: Optional[BucketPermission] = None
    for permission in permissions:
        if permission is None:
            continue
        if best is None or permission.rank > best.rank:
            best = permission
    return best


def effective_permission(
    direct: Optional[BucketPermission],
    group_grants: Iterable[Optional[BucketPermission]] = ()
) -> Optional[BucketPermission]:
    """有效权限 = max(直接授权, 所有所属组的授权)"""
    return max_permission([direct, *group_grants])


def satisfies(effective: Optional[BucketPermission], requested: BucketPermission) -> bool:
    """admin 隐含 write 和 read，write 隐含 read"""
    return effective is not None and effective.rank >= requested.rank


def decide(
    role: Optional[OrgRole],
    requested: BucketPermission,
    direct: Optional[BucketPermission] = None,
    group_grants: Iterable[Optional[BucketPermission]] = (),
    bucket_visible: bool = True
) -> AccessDecision:
    """
    访问决策

    Args:
        role: 用户在当前组织中的角色，None 表示没有组织上下文
        requested: 请求的权限
        direct: 用户对该桶的直接授权
        group_grants: 用户所属各组对该桶的授权
        bucket_visible: 该桶是否属于（或已分配给）当前组织

    Returns:
        AccessDecision
    """
    if role is None:
        return AccessDecision.deny(DenyReason.NO_ORGANIZATION_CONTEXT)

    # 组织能力是必要条件，先于 ACL 检查
    if not has_capability(role, PERMISSION_CAPABILITY[requested]):
        return AccessDecision.deny(DenyReason.INSUFFICIENT_ROLE)

    if not bucket_visible:
        return AccessDecision.deny(DenyReason.BUCKET_NOT_IN_ORGANIZATION)

    effective = effective_permission(direct, group_grants)
    if satisfies(effective, requested):
        return AccessDecision.allow(effective)
    return AccessDecision.deny(DenyReason.INSUFFICIENT_BUCKET_ACL, effective)
