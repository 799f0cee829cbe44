"""
存储桶 ACL 测试
"""
from fastapi import status

from db.models import BucketPermission, OrgRole


def test_user_matrix_is_sparse(client, headers, seed, studio):
    seed.grant_user("mia", "dailies", BucketPermission.WRITE)
    seed.grant_user("victor", "renders", BucketPermission.READ)

    response = client.get("/acls/users", headers=headers("adam", studio))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["acls"] == {
        "mia": {"dailies": "write"},
        "victor": {"renders": "read"},
    }


def test_matrix_only_includes_organization_buckets(client, headers, seed, studio):
    other_org = seed.org("Other")
    seed.bucket("foreign", org_id=other_org)
    seed.grant_user("mia", "foreign", BucketPermission.ADMIN)
    seed.grant_user("mia", "dailies", BucketPermission.READ)

    response = client.get("/acls/users", headers=headers("olivia", studio))
    assert response.json()["acls"] == {"mia": {"dailies": "read"}}


def test_group_matrix(client, headers, seed, studio):
    seed.group("comp", studio, members=["mia"])
    seed.grant_group("comp", "renders", BucketPermission.WRITE)

    response = client.get("/acls/groups", headers=headers("adam", studio))
    assert response.json()["acls"] == {"comp": {"renders": "write"}}


def test_matrix_requires_acl_manage(client, headers, studio):
    response = client.get("/acls/users", headers=headers("mia", studio))
    assert response.status_code == status.HTTP_403_FORBIDDEN
    body = response.json()
    assert body["error_code"] == "FORBIDDEN"
    assert body["details"]["reason"] == "insufficient_role"


def test_missing_organization_header(client, headers, studio):
    response = client.get("/acls/users", headers=headers("adam"))
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["details"]["reason"] == "missing_organization"


def test_not_a_member(client, headers, seed, studio):
    seed.user("stranger")
    response = client.get("/acls/users", headers=headers("stranger", studio))
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["details"]["reason"] == "not_a_member"


def test_set_user_permission_upserts(client, headers, studio):
    url = "/users/mia/acl/dailies"
    assert client.put(url, json={"permission": "read"}, headers=headers("adam", studio)).status_code == 200
    response = client.put(url, json={"permission": "admin"}, headers=headers("adam", studio))
    assert response.json()["permission"] == "admin"

    matrix = client.get("/acls/users", headers=headers("adam", studio)).json()["acls"]
    assert matrix == {"mia": {"dailies": "admin"}}


def test_set_permission_none_removes_row(client, headers, seed, studio):
    seed.grant_user("mia", "dailies", BucketPermission.WRITE)

    response = client.put("/users/mia/acl/dailies", json={"permission": "none"}, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["permission"] is None
    assert client.get("/acls/users", headers=headers("adam", studio)).json()["acls"] == {}


def test_delete_user_permission(client, headers, seed, studio):
    seed.grant_user("mia", "dailies", BucketPermission.WRITE)
    response = client.delete("/users/mia/acl/dailies", headers=headers("adam", studio))
    assert response.status_code == status.HTTP_200_OK
    assert client.get("/acls/users", headers=headers("adam", studio)).json()["acls"] == {}


def test_unknown_bucket_is_not_found(client, headers, studio):
    response = client.put("/users/mia/acl/missing", json={"permission": "read"}, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["details"]["reason"] == "bucket_not_found"


def test_invalid_permission_is_rejected(client, headers, studio):
    response = client.put("/users/mia/acl/dailies", json={"permission": "owner"}, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_user_outside_organization_is_not_found(client, headers, seed, studio):
    seed.user("stranger")
    response = client.put("/users/stranger/acl/dailies", json={"permission": "read"},
                          headers=headers("adam", studio))
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_replace_user_acl(client, headers, seed, studio):
    seed.grant_user("mia", "dailies", BucketPermission.ADMIN)
    payload = {"acls": [{"bucket_name": "renders", "permission": "read"}]}

    response = client.put("/users/mia/acl", json=payload, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_200_OK

    acl = client.get("/users/mia/acl", headers=headers("adam", studio)).json()["acls"]
    assert acl == [{"bucket_name": "renders", "permission": "read"}]


def test_replace_keeps_other_organizations_entries(client, headers, seed, studio):
    other_org = seed.org("Other")
    seed.bucket("foreign", org_id=other_org)
    seed.grant_user("mia", "foreign", BucketPermission.WRITE)

    client.put("/users/mia/acl", json={"allowed_buckets": []}, headers=headers("adam", studio))

    seed.member("mia", other_org, OrgRole.MEMBER)
    seed.user("otto")
    seed.member("otto", other_org, OrgRole.OWNER)
    matrix = client.get("/acls/users", headers=headers("otto", other_org)).json()["acls"]
    assert matrix == {"mia": {"foreign": "write"}}


def test_replace_rejects_duplicate_buckets(client, headers, studio):
    payload = {"acls": [
        {"bucket_name": "dailies", "permission": "read"},
        {"bucket_name": "dailies", "permission": "write"},
    ]}
    response = client.put("/users/mia/acl", json=payload, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["details"]["reason"] == "duplicate_bucket"


def test_users_can_read_their_own_acl(client, headers, seed, studio):
    seed.grant_user("victor", "renders", BucketPermission.READ)
    assert client.get("/users/victor/acl", headers=headers("victor", studio)).status_code == 200
    assert client.get("/users/mia/acl", headers=headers("victor", studio)).status_code == 403


def test_acl_changes_are_audited(client, headers, seed, studio):
    seed.user("root", super_admin=True)
    client.put("/users/mia/acl/dailies", json={"permission": "write"}, headers=headers("adam", studio))

    logs = client.get("/platform/audit-logs", params={"org_id": studio}, headers=headers("root")).json()
    assert logs["total"] == 1
    entry = logs["logs"][0]
    assert entry["action"] == "acl.set"
    assert entry["userId"] == "adam"
    assert entry["details"] == {"bucket": "dailies", "permission": "write"}


def test_user_matrix_excludes_members_of_other_organizations(client, headers, seed, studio):
    other = seed.org("Other")
    shared_id = seed.bucket("shared")
    seed.assign(studio, shared_id)
    seed.assign(other, shared_id)
    seed.user("ollie")
    seed.member("ollie", other, OrgRole.MEMBER)
    seed.grant_user("ollie", "shared", BucketPermission.READ)
    seed.grant_user("mia", "shared", BucketPermission.WRITE)

    response = client.get("/acls/users", headers=headers("olivia", studio))
    assert response.json()["acls"] == {"mia": {"shared": "write"}}
