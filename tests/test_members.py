"""
组织成员测试
"""
from fastapi import status

from db.models import OrgRole


def test_list_members(client, headers, studio):
    members = client.get("/organization/members", headers=headers("victor", studio)).json()["members"]
    assert {m["user_id"]: m["role"] for m in members} == {
        "olivia": "owner",
        "adam": "admin",
        "mia": "member",
        "victor": "viewer",
    }


def test_invite_existing_user(client, headers, seed, studio):
    seed.user("nora")
    response = client.post("/organization/members", json={"email": "nora@example.com", "role": "viewer"},
                           headers=headers("adam", studio))
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json() == {"user_id": "nora", "email": "nora@example.com", "role": "viewer"}


def test_invite_unknown_email(client, headers, studio):
    response = client.post("/organization/members", json={"email": "ghost@example.com"},
                           headers=headers("adam", studio))
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["details"]["reason"] == "user_not_found"


def test_duplicate_membership(client, headers, studio):
    response = client.post("/organization/members", json={"email": "mia@example.com"},
                           headers=headers("adam", studio))
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["details"]["reason"] == "already_member"


def test_admin_cannot_invite_owner(client, headers, seed, studio):
    seed.user("nora")
    response = client.post("/organization/members", json={"email": "nora@example.com", "role": "owner"},
                           headers=headers("adam", studio))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_invalid_email(client, headers, studio):
    response = client.post("/organization/members", json={"email": "not-an-email"}, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_change_role_requires_owner(client, headers, studio):
    response = client.put("/organization/members/mia", json={"role": "admin"}, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = client.put("/organization/members/mia", json={"role": "admin"}, headers=headers("olivia", studio))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["role"] == "admin"


def test_last_owner_cannot_be_demoted(client, headers, studio):
    response = client.put("/organization/members/olivia", json={"role": "admin"}, headers=headers("olivia", studio))
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["details"]["reason"] == "last_owner"


def test_last_owner_cannot_leave(client, headers, studio):
    response = client.delete("/organization/members/olivia", headers=headers("olivia", studio))
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["details"]["reason"] == "last_owner"


def test_rejected_removal_keeps_access_keys(client, headers, studio):
    created = client.post("/keys", json={"name": "workstation"}, headers=headers("olivia", studio))
    assert created.status_code == status.HTTP_201_CREATED

    response = client.delete("/organization/members/olivia", headers=headers("olivia", studio))
    assert response.status_code == status.HTTP_409_CONFLICT

    keys = client.get("/keys", headers=headers("olivia", studio)).json()["keys"]
    assert [key["name"] for key in keys] == ["workstation"]


def test_owner_can_be_demoted_when_another_owner_exists(client, headers, seed, studio):
    seed.user("otto")
    seed.member("otto", studio, OrgRole.OWNER)
    response = client.put("/organization/members/olivia", json={"role": "admin"}, headers=headers("otto", studio))
    assert response.status_code == status.HTTP_200_OK


def test_remove_member_drops_group_edges_and_keys(client, headers, seed, studio):
    seed.group("comp", studio, members=["mia"])
    created = client.post("/keys", json={"name": "laptop"}, headers=headers("mia", studio))
    assert created.status_code == status.HTTP_201_CREATED

    response = client.delete("/organization/members/mia", headers=headers("adam", studio))
    assert response.status_code == status.HTTP_204_NO_CONTENT

    assert client.get("/groups/comp", headers=headers("adam", studio)).json()["members"] == []
    assert client.get("/keys", headers=headers("adam", studio)).json()["keys"] == []


def test_viewer_cannot_remove_others_but_can_leave(client, headers, studio):
    assert client.delete("/organization/members/mia", headers=headers("victor", studio)).status_code == 403
    assert client.delete("/organization/members/victor", headers=headers("victor", studio)).status_code == 204


def test_admin_cannot_remove_owner(client, headers, seed, studio):
    seed.user("otto")
    seed.member("otto", studio, OrgRole.OWNER)
    response = client.delete("/organization/members/otto", headers=headers("adam", studio))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_me_lists_organizations(client, headers, studio):
    data = client.get("/me", headers=headers("mia")).json()
    assert data["user"]["user_id"] == "mia"
    assert data["organizations"][0]["id"] == studio
    assert data["organizations"][0]["role"] == "member"
    assert "bucket:write" in data["organizations"][0]["capabilities"]
