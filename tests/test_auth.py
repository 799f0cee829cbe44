"""
认证和授权测试
"""
from datetime import timedelta

from fastapi import status


def test_health_check_no_auth(client):
    """健康检查端点不需要认证"""
    response = client.get("/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "healthy"


def test_me_without_token(client):
    """没有 token 应该返回 401"""
    response = client.get("/me")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_me_with_invalid_token(client):
    """无效 token 应该返回 401"""
    response = client.get("/me", headers={"Authorization": "Bearer invalid-token"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_wrong_audience_is_rejected(client, token_factory):
    token = token_factory("mia", audience="some-other-app")
    response = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_expired_token_is_rejected(client, token_factory):
    token = token_factory("mia", expires_in=timedelta(minutes=-5))
    response = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_first_sign_in_creates_user(client, headers):
    """有效 token 应该通过认证，并在本地创建用户"""
    response = client.get("/me", headers=headers("nora"))
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["user"]["user_id"] == "nora"
    assert data["user"]["email"] == "nora@example.com"
    assert data["organizations"] == []


def test_org_endpoints_require_organization_header(client, headers, studio):
    response = client.get("/buckets", headers=headers("mia"))
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error_code"] == "FORBIDDEN"
