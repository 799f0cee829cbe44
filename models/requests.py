"""
请求模型定义
"""
import re
from datetime import datetime, timezone
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

PermissionValue = Literal["read", "write", "admin"]
RoleValue = Literal["owner", "admin", "member", "viewer"]

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """数据库统一存储不带时区的 UTC 时间"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class AclEntry(BaseModel):
    """单条存储桶权限"""
    bucket_name: str = Field(..., description="存储桶名称")
    permission: PermissionValue = Field(..., description="权限")


class UserAclPayload(BaseModel):
    """
    PUT /users/{id}/acl 的请求体（整表替换）

    兼容旧格式 allowed_buckets
    """
    acls: Optional[List[AclEntry]] = None
    allowed_buckets: Optional[List[AclEntry]] = None

    def entries(self) -> List[AclEntry]:
        return list(self.acls if self.acls is not None else (self.allowed_buckets or []))

    class Config:
        json_schema_extra = {
            "example": {
                "acls": [
                    {"bucket_name": "dailies", "permission": "write"},
                    {"bucket_name": "renders", "permission": "read"}
                ]
            }
        }


class PermissionPayload(BaseModel):
    """单条权限设置；None 表示移除"""
    permission: Optional[Literal["read", "write", "admin", "none"]] = None


class GrantGroupAccessPayload(BaseModel):
    """POST /groups/{id}/access 的请求体"""
    bucket: str = Field(..., description="存储桶名称")
    permission: PermissionValue = Field(..., description="权限")


class CreateGroupPayload(BaseModel):
    """创建用户组"""
    id: str = Field(..., description="组 ID（slug）", pattern=r"^[a-z0-9-]+$")
    name: str = Field(..., min_length=1, max_length=128)
    description: Optional[str] = Field(None, max_length=255)

    class Config:
        json_schema_extra = {
            "example": {"id": "comp-artists", "name": "Comp Artists", "description": "Compositing team"}
        }


class UpdateGroupPayload(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=128)
    description: Optional[str] = Field(None, max_length=255)


class AddGroupMemberPayload(BaseModel):
    userId: str = Field(..., description="用户 ID")


class CreateBucketPayload(BaseModel):
    """创建存储桶"""
    bucket_name: str = Field(..., pattern=r"^[a-z0-9.-]{3,63}$")
    bucket_type: Literal["standard", "virtual"] = "standard"
    provider_id: Optional[str] = None
    remote_bucket_name: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "bucket_name": "dailies",
                "bucket_type": "standard",
                "provider_id": "wasabi-east",
                "remote_bucket_name": "studio-dailies-prod"
            }
        }


class AddVirtualSourcePayload(BaseModel):
    """为虚拟桶添加源目录"""
    source_bucket_name: str
    source_prefix: str = ""
    display_name: Optional[str] = None
    sort_order: Optional[int] = Field(None, ge=0)
    mount_point: Optional[str] = None


class UpdateVirtualSourcePayload(BaseModel):
    display_name: Optional[str] = None
    sort_order: Optional[int] = Field(None, ge=0)
    mount_point: Optional[str] = None


class CreateKeyPayload(BaseModel):
    """创建访问密钥"""
    name: Optional[str] = Field(None, max_length=128)
    expiration: Optional[datetime] = Field(None, description="过期时间，空表示永不过期")
    user_id: Optional[str] = Field(None, description="为其他成员创建（需要 key:manage）")

    @field_validator("expiration")
    @classmethod
    def normalize_expiration(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_utc(value)


class UpdateKeyPayload(BaseModel):
    name: Optional[str] = Field(None, max_length=128)
    enabled: Optional[bool] = None
    expiration: Optional[datetime] = None
    clear_expiration: bool = False

    @field_validator("expiration")
    @classmethod
    def normalize_expiration(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_utc(value)


class InviteMemberPayload(BaseModel):
    """邀请已存在的用户加入组织"""
    email: str
    role: RoleValue = "member"

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        if not EMAIL_RE.match(value):
            raise ValueError("Invalid email address")
        return value


class ChangeRolePayload(BaseModel):
    role: RoleValue


class AuthorizePayload(BaseModel):
    """POST /authorize 的请求体"""
    bucket_name: str
    permission: PermissionValue = "read"
    path: str = ""

    class Config:
        json_schema_extra = {
            "example": {"bucket_name": "show-assets", "permission": "write", "path": "plates/sh010/v001.exr"}
        }


class CreateProviderPayload(BaseModel):
    """创建存储提供方（凭证只写）"""
    id: str = Field(..., pattern=r"^[a-z0-9-]+$")
    name: str = Field(..., min_length=1, max_length=128)
    endpoint_url: str
    region: Optional[str] = "us-east-1"
    access_key_id: str = Field(..., min_length=1)
    secret_access_key: str = Field(..., min_length=1)

    @field_validator("endpoint_url")
    @classmethod
    def check_url(cls, value: str) -> str:
        if not re.match(r"^https?://[^\s/]+", value):
            raise ValueError("endpoint_url must be an http(s) URL")
        return value


class UpdateProviderPayload(BaseModel):
    name: Optional[str] = None
    endpoint_url: Optional[str] = None
    region: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    enabled: Optional[bool] = None


class CreateSourceBucketPayload(BaseModel):
    """平台源桶（总是标准桶）"""
    bucket_name: str = Field(..., pattern=r"^[a-z0-9.-]{3,63}$")
    remote_bucket_name: str = Field(..., min_length=1)
    provider_id: str


class CreateOrganizationPayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    owner_email: Optional[str] = None


class AssignBucketPayload(BaseModel):
    org_id: str
    bucket_id: str


class SuperAdminPayload(BaseModel):
    is_super_admin: bool
