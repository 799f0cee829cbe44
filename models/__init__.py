"""数据模型"""
from .requests import (
    AclEntry,
    UserAclPayload,
    PermissionPayload,
    GrantGroupAccessPayload,
    CreateGroupPayload,
    UpdateGroupPayload,
    AddGroupMemberPayload,
    CreateBucketPayload,
    AddVirtualSourcePayload,
    UpdateVirtualSourcePayload,
    CreateKeyPayload,
    UpdateKeyPayload,
    InviteMemberPayload,
    ChangeRolePayload,
    AuthorizePayload,
    CreateProviderPayload,
    UpdateProviderPayload,
    CreateSourceBucketPayload,
    CreateOrganizationPayload,
    AssignBucketPayload,
    SuperAdminPayload,
)
from .responses import (
    ErrorResponse,
    AclMatrixResponse,
    RouteInfo,
    AuthorizeResponse,
    AccessKeyInfo,
    AccessKeySecret,
)

__all__ = [
    "AclEntry",
    "UserAclPayload",
    "PermissionPayload",
    "GrantGroupAccessPayload",
    "CreateGroupPayload",
    "UpdateGroupPayload",
    "AddGroupMemberPayload",
    "CreateBucketPayload",
    "AddVirtualSourcePayload",
    "UpdateVirtualSourcePayload",
    "CreateKeyPayload",
    "UpdateKeyPayload",
    "InviteMemberPayload",
    "ChangeRolePayload",
    "AuthorizePayload",
    "CreateProviderPayload",
    "UpdateProviderPayload",
    "CreateSourceBucketPayload",
    "CreateOrganizationPayload",
    "AssignBucketPayload",
    "SuperAdminPayload",
    "ErrorResponse",
    "AclMatrixResponse",
    "RouteInfo",
    "AuthorizeResponse",
    "AccessKeyInfo",
    "AccessKeySecret",
]
