"""
用户组测试
"""
from fastapi import status

from db.models import BucketPermission


def test_create_and_list_groups(client, headers, studio):
    payload = {"id": "comp-artists", "name": "Comp Artists", "description": "Compositing"}
    response = client.post("/groups", json=payload, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_201_CREATED

    groups = client.get("/groups", headers=headers("victor", studio)).json()["groups"]
    assert groups == [{"id": "comp-artists", "name": "Comp Artists", "description": "Compositing",
                       "member_count": 0}]


def test_group_id_must_be_a_slug(client, headers, studio):
    response = client.post("/groups", json={"id": "Comp Artists", "name": "x"}, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_duplicate_group_id(client, headers, seed, studio):
    seed.group("comp", studio)
    response = client.post("/groups", json={"id": "comp", "name": "Comp"}, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["details"]["reason"] == "duplicate_group"


def test_members_cannot_manage_groups(client, headers, studio):
    response = client.post("/groups", json={"id": "comp", "name": "Comp"}, headers=headers("mia", studio))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_group_details(client, headers, seed, studio):
    seed.group("comp", studio, members=["mia"])
    seed.grant_group("comp", "renders", BucketPermission.WRITE)

    data = client.get("/groups/comp", headers=headers("mia", studio)).json()
    assert data["member_count"] == 1
    assert [m["id"] for m in data["members"]] == ["mia"]
    assert data["access"] == [{"bucket": "renders", "permission": "write"}]


def test_group_from_other_organization_is_not_found(client, headers, seed, studio):
    other_org = seed.org("Other")
    seed.group("elsewhere", other_org)
    response = client.get("/groups/elsewhere", headers=headers("adam", studio))
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_update_group(client, headers, seed, studio):
    seed.group("comp", studio)
    response = client.put("/groups/comp", json={"name": "Compositing"}, headers=headers("adam", studio))
    assert response.json()["name"] == "Compositing"


def test_add_and_remove_group_member(client, headers, seed, studio):
    seed.group("comp", studio)

    response = client.post("/groups/comp/members", json={"userId": "mia"}, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_201_CREATED

    duplicate = client.post("/groups/comp/members", json={"userId": "mia"}, headers=headers("adam", studio))
    assert duplicate.status_code == status.HTTP_409_CONFLICT
    assert duplicate.json()["details"]["reason"] == "already_group_member"

    response = client.delete("/groups/comp/members/mia", headers=headers("adam", studio))
    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert client.get("/groups/comp", headers=headers("adam", studio)).json()["members"] == []


def test_only_organization_members_can_join(client, headers, seed, studio):
    seed.group("comp", studio)
    seed.user("stranger")
    response = client.post("/groups/comp/members", json={"userId": "stranger"}, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_grant_and_revoke_group_access(client, headers, seed, studio):
    seed.group("comp", studio, members=["mia"])

    response = client.post("/groups/comp/access", json={"bucket": "dailies", "permission": "read"},
                           headers=headers("adam", studio))
    assert response.status_code == status.HTTP_200_OK
    response = client.post("/groups/comp/access", json={"bucket": "dailies", "permission": "write"},
                           headers=headers("adam", studio))
    assert response.json()["permission"] == "write"
    assert client.get("/acls/groups", headers=headers("adam", studio)).json()["acls"] == {
        "comp": {"dailies": "write"}
    }

    response = client.delete("/groups/comp/access/dailies", headers=headers("adam", studio))
    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert client.get("/acls/groups", headers=headers("adam", studio)).json()["acls"] == {}


def test_delete_group_removes_edges_and_grants(client, headers, seed, studio):
    seed.group("comp", studio, members=["mia"])
    seed.grant_group("comp", "dailies", BucketPermission.WRITE)

    response = client.delete("/groups/comp", headers=headers("adam", studio))
    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert client.get("/acls/groups", headers=headers("adam", studio)).json()["acls"] == {}
    users = client.get("/users", headers=headers("adam", studio)).json()["users"]
    assert next(u for u in users if u["id"] == "mia")["groups"] == []
