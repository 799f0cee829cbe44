"""
访问密钥测试
"""
from datetime import datetime, timedelta

from fastapi import status

from db.models import BucketPermission, OrgRole
from db.session import AsyncSessionLocal
from services.key_service import key_service


def test_create_key_returns_secret_once(client, headers, studio):
    response = client.post("/keys", json={"name": "workstation"}, headers=headers("mia", studio))
    assert response.status_code == status.HTTP_201_CREATED
    created = response.json()
    assert created["user_id"] == "mia"
    assert created["secret_key"]

    keys = client.get("/keys", headers=headers("mia", studio)).json()["keys"]
    assert len(keys) == 1
    assert keys[0]["access_key_id"] == created["access_key_id"]
    assert "secret_key" not in keys[0]
    assert keys[0]["enabled"] is True


def test_viewer_can_own_keys(client, headers, studio):
    response = client.post("/keys", json={}, headers=headers("victor", studio))
    assert response.status_code == status.HTTP_201_CREATED


def test_bucket_count_includes_group_grants(client, headers, seed, studio):
    seed.grant_user("mia", "dailies", BucketPermission.READ)
    seed.group("comp", studio, members=["mia"])
    seed.grant_group("comp", "renders", BucketPermission.WRITE)
    seed.grant_group("comp", "dailies", BucketPermission.WRITE)

    client.post("/keys", json={}, headers=headers("mia", studio))
    keys = client.get("/keys", headers=headers("mia", studio)).json()["keys"]
    assert keys[0]["bucket_count"] == 2


def test_members_only_see_their_own_keys(client, headers, studio):
    client.post("/keys", json={"name": "mine"}, headers=headers("mia", studio))
    client.post("/keys", json={"name": "admin"}, headers=headers("adam", studio))

    keys = client.get("/keys", headers=headers("mia", studio)).json()["keys"]
    assert [k["name"] for k in keys] == ["mine"]

    response = client.get("/keys", params={"user_id": "adam"}, headers=headers("mia", studio))
    assert response.status_code == status.HTTP_403_FORBIDDEN

    keys = client.get("/keys", headers=headers("adam", studio)).json()["keys"]
    assert {k["name"] for k in keys} == {"mine", "admin"}


def test_create_key_for_another_member(client, headers, seed, studio):
    response = client.post("/keys", json={"user_id": "victor"}, headers=headers("mia", studio))
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = client.post("/keys", json={"user_id": "victor"}, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["user_id"] == "victor"

    seed.user("stranger")
    response = client.post("/keys", json={"user_id": "stranger"}, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_expiration_must_be_in_the_future(client, headers, studio):
    past = (datetime.utcnow() - timedelta(days=1)).isoformat()
    response = client.post("/keys", json={"expiration": past}, headers=headers("mia", studio))
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["details"]["reason"] == "expiration_in_past"


def test_rotate_returns_new_secret(client, headers, studio):
    created = client.post("/keys", json={}, headers=headers("mia", studio)).json()

    response = client.post(f"/keys/{created['access_key_id']}/rotate", headers=headers("mia", studio))
    assert response.status_code == status.HTTP_200_OK
    rotated = response.json()
    assert rotated["access_key_id"] == created["access_key_id"]
    assert rotated["secret_key"] != created["secret_key"]

    keys = client.get("/keys", headers=headers("mia", studio)).json()["keys"]
    assert keys[0]["rotated_at"] is not None


def test_disable_key(client, headers, studio):
    created = client.post("/keys", json={}, headers=headers("mia", studio)).json()
    response = client.put(f"/keys/{created['access_key_id']}", json={"enabled": False},
                          headers=headers("mia", studio))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["enabled"] is False


def test_member_cannot_touch_others_keys(client, headers, studio):
    created = client.post("/keys", json={}, headers=headers("adam", studio)).json()
    url = f"/keys/{created['access_key_id']}"
    assert client.delete(url, headers=headers("mia", studio)).status_code == status.HTTP_403_FORBIDDEN
    assert client.post(f"{url}/rotate", headers=headers("mia", studio)).status_code == status.HTTP_403_FORBIDDEN
    assert client.delete(url, headers=headers("adam", studio)).status_code == status.HTTP_204_NO_CONTENT


def test_key_from_another_organization_is_not_found(client, headers, seed, studio):
    created = client.post("/keys", json={}, headers=headers("mia", studio)).json()
    other_org = seed.org("Other")
    seed.member("mia", other_org, OrgRole.MEMBER)
    response = client.delete(f"/keys/{created['access_key_id']}", headers=headers("mia", other_org))
    assert response.status_code == status.HTTP_404_NOT_FOUND


async def test_rotation_invalidates_old_secret(seed, studio):
    async with AsyncSessionLocal() as db:
        key, old_secret = await key_service.create_key("mia", studio, db, name="render-node")
        assert await key_service.verify_secret(key.access_key_id, old_secret, db)

        new_secret = await key_service.rotate_key(key, db)
        assert not await key_service.verify_secret(key.access_key_id, old_secret, db)
        assert await key_service.verify_secret(key.access_key_id, new_secret, db)

        await key_service.update_key(key, db, enabled=False)
        assert not await key_service.verify_secret(key.access_key_id, new_secret, db)
