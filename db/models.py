"""数据库模型定义"""
from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, ForeignKey,
    Index, JSON, UniqueConstraint, Enum as SQLEnum
)
from sqlalchemy.sql import func
from db.base import Base
import enum
from datetime import datetime


class OrgRole(str, enum.Enum):
    """组织角色（封闭枚举）"""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class BucketPermission(str, enum.Enum):
    """存储桶权限，顺序：admin > write > read"""
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _PERMISSION_RANK[self]


_PERMISSION_RANK = {
    BucketPermission.READ: 1,
    BucketPermission.WRITE: 2,
    BucketPermission.ADMIN: 3,
}


class BucketType(str, enum.Enum):
    """存储桶类型"""
    STANDARD = "standard"
    VIRTUAL = "virtual"


class Organization(Base):
    """组织表"""
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, comment="组织 ID（UUID）")
    name = Column(String(128), nullable=False, comment="组织名称")
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        {'comment': '组织表'},
    )


class User(Base):
    """用户表 - 首次登录时从身份提供方同步"""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, comment="身份提供方用户 ID")
    email = Column(String(255), nullable=False, unique=True, comment="邮箱")
    name = Column(String(128), nullable=True, comment="显示名称")
    is_super_admin = Column(Boolean, nullable=False, default=False, comment="平台管理员")
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), nullable=False)
    last_sign_in_at = Column(DateTime, nullable=True, comment="最后登录时间")

    __table_args__ = (
        {'comment': '用户表'},
    )


class OrgMembership(Base):
    """组织成员表 - 每个用户在每个组织中只有一个角色"""
    __tablename__ = "org_memberships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    org_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    role = Column(SQLEnum(OrgRole), nullable=False, default=OrgRole.MEMBER)
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'org_id', name='uq_membership_user_org'),
        {'comment': '组织成员表'},
    )


class Group(Base):
    """用户组表"""
    __tablename__ = "groups"

    id = Column(String(64), primary_key=True, comment="组 ID（slug，不可变）")
    org_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(128), nullable=False, comment="组名称")
    description = Column(String(255), nullable=True, comment="描述")
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        {'comment': '用户组表'},
    )


class GroupMembership(Base):
    """组成员表（多对多，无重复边）"""
    __tablename__ = "group_memberships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(String(64), ForeignKey("groups.id"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('group_id', 'user_id', name='uq_group_member'),
        {'comment': '组成员表'},
    )


class Provider(Base):
    """存储提供方表 - 平台级资源，凭证加密存储且只写"""
    __tablename__ = "providers"

    id = Column(String(64), primary_key=True, comment="提供方 ID")
    name = Column(String(128), nullable=False, comment="名称")
    endpoint_url = Column(String(512), nullable=False, comment="S3 兼容端点")
    region = Column(String(64), nullable=False, default="us-east-1")
    access_key_id = Column(Text, nullable=False, comment="加密后的 Access Key ID")
    secret_access_key = Column(Text, nullable=False, comment="加密后的 Secret")
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        {'comment': '存储提供方表'},
    )


class Bucket(Base):
    """逻辑存储桶表"""
    __tablename__ = "buckets"

    id = Column(String(36), primary_key=True, comment="存储桶 ID（UUID）")
    bucket_name = Column(String(63), nullable=False, unique=True, comment="逻辑名称")
    bucket_type = Column(SQLEnum(BucketType), nullable=False, default=BucketType.STANDARD)
    provider_id = Column(String(64), ForeignKey("providers.id"), nullable=True, comment="标准桶的提供方")
    remote_bucket_name = Column(String(255), nullable=True, comment="标准桶的远端桶名")
    org_id = Column(String(36), ForeignKey("organizations.id"), nullable=True, index=True,
                    comment="所属组织（平台源桶为空）")
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_bucket_provider', 'provider_id'),
        {'comment': '逻辑存储桶表'},
    )


class BucketAssignment(Base):
    """存储桶与组织的分配关系（多对多）"""
    __tablename__ = "bucket_assignments"

    id = Column(String(36), primary_key=True, comment="分配 ID（UUID）")
    org_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    bucket_id = Column(String(36), ForeignKey("buckets.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('org_id', 'bucket_id', name='uq_assignment_org_bucket'),
        {'comment': '存储桶分配表'},
    )


class VirtualBucketSource(Base):
    """虚拟桶的源目录，按 sort_order 升序读取，最小者为默认写入目标"""
    __tablename__ = "virtual_bucket_sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    virtual_bucket_name = Column(String(63), ForeignKey("buckets.bucket_name"), nullable=False, index=True)
    source_bucket_name = Column(String(63), ForeignKey("buckets.bucket_name"), nullable=False, index=True)
    source_prefix = Column(String(1024), nullable=False, default="", comment="源目录前缀，空表示桶根")
    display_name = Column(String(128), nullable=True)
    mount_point = Column(String(1024), nullable=False, default="", comment="在虚拟桶中的挂载路径")
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_virtual_sort', 'virtual_bucket_name', 'sort_order'),
        {'comment': '虚拟桶源目录表'},
    )


class AccessKey(Base):
    """S3 访问密钥表 - Secret 只在创建/轮转时返回一次"""
    __tablename__ = "access_keys"

    access_key_id = Column(String(32), primary_key=True, comment="Access Key ID")
    secret_value = Column(Text, nullable=False, comment="加密后的 Secret")
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    org_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(128), nullable=True)
    expiration = Column(DateTime, nullable=True, comment="过期时间，空表示永不过期")
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), nullable=False)
    rotated_at = Column(DateTime, nullable=True, comment="最后轮转时间")

    __table_args__ = (
        {'comment': '访问密钥表'},
    )


class UserAcl(Base):
    """用户存储桶权限（稀疏矩阵，每个用户+桶最多一行）"""
    __tablename__ = "user_acls"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    bucket_name = Column(String(63), nullable=False, index=True)
    permission = Column(SQLEnum(BucketPermission), nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'bucket_name', name='uq_user_acl'),
        {'comment': '用户存储桶权限表'},
    )


class GroupAcl(Base):
    """用户组存储桶权限（稀疏矩阵，每个组+桶最多一行）"""
    __tablename__ = "group_acls"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(String(64), ForeignKey("groups.id"), nullable=False)
    bucket_name = Column(String(63), nullable=False, index=True)
    permission = Column(SQLEnum(BucketPermission), nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('group_id', 'bucket_name', name='uq_group_acl'),
        {'comment': '用户组存储桶权限表'},
    )


class AuditLog(Base):
    """审计日志表 - 只追加，写入后不可修改"""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, comment="日志 ID（UUID）")
    user_id = Column(String(64), nullable=False, index=True, comment="操作用户 ID")
    user_email = Column(String(255), nullable=True, comment="操作用户邮箱")
    org_id = Column(String(36), nullable=True, index=True, comment="组织 ID")

    # 操作信息
    action = Column(String(64), nullable=False, index=True, comment="操作类型（bucket:create, acl:set 等）")
    resource_type = Column(String(64), nullable=False, comment="资源类型（bucket, group 等）")
    resource_id = Column(String(256), nullable=True, comment="资源 ID")

    details = Column(JSON, nullable=True, comment="操作详情（JSON）")
    ip_address = Column(String(64), nullable=True, comment="客户端 IP")
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        Index('idx_audit_org_time', 'org_id', 'created_at'),
        {'comment': '审计日志表'},
    )
