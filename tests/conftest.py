"""
Pytest 配置和 fixtures
"""
import os
import tempfile

# 必须在导入应用之前设置：测试使用临时 SQLite 数据库
_DB_DIR = tempfile.mkdtemp(prefix="vfx-admin-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")

import uuid
import pytest
from fastapi.testclient import TestClient
from jose import jwt
from datetime import datetime, timedelta

from app.main import app
from config.settings import settings
from db.base import Base
from db.models import (
    Bucket, BucketAssignment, BucketPermission, BucketType, Group, GroupAcl, GroupMembership,
    Organization, OrgMembership, OrgRole, Provider, User, UserAcl, VirtualBucketSource
)
from db.session import SessionLocal, sync_engine
from services.encryption import encryption_service


@pytest.fixture(autouse=True)
def setup_database():
    """每个测试使用全新的表"""
    Base.metadata.create_all(bind=sync_engine)
    yield
    Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture
def client():
    """测试客户端"""
    return TestClient(app)


def make_token(user_id: str, email: str = None, name: str = None, audience: str = None,
               expires_in: timedelta = timedelta(minutes=30)) -> str:
    """生成测试 JWT token"""
    payload = {
        "sub": user_id,
        "email": email or f"{user_id}@example.com",
        "name": name or user_id,
        "aud": audience or settings.jwt_audience,
        "exp": datetime.utcnow() + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def auth_headers(user_id: str, org_id: str = None) -> dict:
    """认证请求头（可带组织上下文）"""
    headers = {"Authorization": f"Bearer {make_token(user_id)}"}
    if org_id:
        headers[settings.organization_header] = org_id
    return headers


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture
def headers():
    return auth_headers


class Seed:
    """直接写数据库的测试数据工具"""

    def _add(self, *records):
        with SessionLocal() as session:
            session.add_all(records)
            session.commit()
        return records[0]

    def user(self, user_id: str, super_admin: bool = False) -> str:
        self._add(User(id=user_id, email=f"{user_id}@example.com", name=user_id, is_super_admin=super_admin))
        return user_id

    def org(self, name: str = "Studio") -> str:
        org_id = str(uuid.uuid4())
        self._add(Organization(id=org_id, name=name))
        return org_id

    def member(self, user_id: str, org_id: str, role: OrgRole) -> None:
        self._add(OrgMembership(user_id=user_id, org_id=org_id, role=role))

    def provider(self, provider_id: str = "wasabi") -> str:
        self._add(Provider(
            id=provider_id,
            name=provider_id.title(),
            endpoint_url="https://s3.example.com",
            region="us-east-1",
            access_key_id=encryption_service.encrypt("AKIAEXAMPLE"),
            secret_access_key=encryption_service.encrypt("secret"),
            enabled=True,
        ))
        return provider_id

    def bucket(self, bucket_name: str, org_id: str = None, provider_id: str = "wasabi",
               remote_bucket_name: str = None) -> str:
        bucket_id = str(uuid.uuid4())
        self._add(Bucket(
            id=bucket_id,
            bucket_name=bucket_name,
            bucket_type=BucketType.STANDARD,
            provider_id=provider_id,
            remote_bucket_name=remote_bucket_name or f"remote-{bucket_name}",
            org_id=org_id,
        ))
        return bucket_id

    def virtual_bucket(self, bucket_name: str, org_id: str) -> str:
        bucket_id = str(uuid.uuid4())
        self._add(Bucket(id=bucket_id, bucket_name=bucket_name, bucket_type=BucketType.VIRTUAL, org_id=org_id))
        return bucket_id

    def source(self, virtual_bucket_name: str, source_bucket_name: str, sort_order: int,
               source_prefix: str = "", mount_point: str = "") -> int:
        source = VirtualBucketSource(
            virtual_bucket_name=virtual_bucket_name,
            source_bucket_name=source_bucket_name,
            source_prefix=source_prefix,
            mount_point=mount_point,
            sort_order=sort_order,
        )
        self._add(source)
        return source.id

    def assign(self, org_id: str, bucket_id: str) -> None:
        self._add(BucketAssignment(id=str(uuid.uuid4()), org_id=org_id, bucket_id=bucket_id))

    def grant_user(self, user_id: str, bucket_name: str, permission: BucketPermission) -> None:
        self._add(UserAcl(user_id=user_id, bucket_name=bucket_name, permission=permission))

    def group(self, group_id: str, org_id: str, members=()) -> str:
        self._add(Group(id=group_id, org_id=org_id, name=group_id.title()))
        for user_id in members:
            self._add(GroupMembership(group_id=group_id, user_id=user_id))
        return group_id

    def grant_group(self, group_id: str, bucket_name: str, permission: BucketPermission) -> None:
        self._add(GroupAcl(group_id=group_id, bucket_name=bucket_name, permission=permission))


@pytest.fixture
def seed():
    return Seed()


@pytest.fixture
def studio(seed):
    """
    一个组织：owner / admin / member / viewer 各一人，
    一个提供方和两个组织自有的标准桶（dailies、renders）
    """
    org_id = seed.org("Studio")
    for user_id, role in (
        ("olivia", OrgRole.OWNER),
        ("adam", OrgRole.ADMIN),
        ("mia", OrgRole.MEMBER),
        ("victor", OrgRole.VIEWER),
    ):
        seed.user(user_id)
        seed.member(user_id, org_id, role)
    seed.provider("wasabi")
    seed.bucket("dailies", org_id=org_id)
    seed.bucket("renders", org_id=org_id)
    return org_id
