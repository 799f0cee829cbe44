"""
存储桶、虚拟桶和浏览测试
"""
import httpx
import pytest
from fastapi import status

from db.models import BucketPermission
from services.storage_gateway import storage_gateway


@pytest.fixture
def gateway(monkeypatch):
    """模拟存储网关，记录收到的请求"""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if request.url.path == "/locks/list":
            return httpx.Response(200, json={"locks": [{"path": "dailies/a.mov", "owner": "mia"}]})
        prefix = request.url.params.get("prefix", "")
        return httpx.Response(200, json={
            "folders": [{"name": "sh010", "prefix": f"{prefix}sh010/"}],
            "files": [{"key": f"{prefix}notes.txt", "size": 12, "lastModified": "2024-01-01T00:00:00Z"}],
            "isTruncated": False,
        })

    monkeypatch.setattr(storage_gateway, "transport", httpx.MockTransport(handler))
    return calls


def test_list_buckets_includes_assigned(client, headers, seed, studio):
    platform_bucket = seed.bucket("library", org_id=None)
    seed.assign(studio, platform_bucket)
    seed.bucket("hidden", org_id=None)

    buckets = client.get("/buckets", headers=headers("victor", studio)).json()["buckets"]
    names = {b["bucket_name"]: b["owned"] for b in buckets}
    assert names == {"dailies": True, "renders": True, "library": False}


def test_owner_creates_standard_bucket(client, headers, studio):
    payload = {"bucket_name": "plates", "bucket_type": "standard", "provider_id": "wasabi",
               "remote_bucket_name": "studio-plates"}
    response = client.post("/buckets", json=payload, headers=headers("olivia", studio))
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["remote_bucket_name"] == "studio-plates"


def test_admin_cannot_create_standard_bucket(client, headers, studio):
    payload = {"bucket_name": "plates", "provider_id": "wasabi", "remote_bucket_name": "studio-plates"}
    response = client.post("/buckets", json=payload, headers=headers("adam", studio))
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["details"]["capability"] == "org:manage"


def test_admin_creates_virtual_bucket(client, headers, studio):
    response = client.post("/buckets", json={"bucket_name": "show-assets", "bucket_type": "virtual"},
                           headers=headers("adam", studio))
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["bucket_type"] == "virtual"


def test_standard_bucket_requires_mapping(client, headers, studio):
    response = client.post("/buckets", json={"bucket_name": "plates"}, headers=headers("olivia", studio))
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["details"]["reason"] == "missing_mapping"


def test_duplicate_bucket_name(client, headers, studio):
    payload = {"bucket_name": "dailies", "provider_id": "wasabi", "remote_bucket_name": "x"}
    response = client.post("/buckets", json=payload, headers=headers("olivia", studio))
    assert response.status_code == status.HTTP_409_CONFLICT


def test_delete_bucket_referenced_by_virtual_bucket(client, headers, seed, studio):
    seed.virtual_bucket("show-assets", studio)
    seed.source("show-assets", "dailies", 0)

    response = client.delete("/buckets/dailies", headers=headers("olivia", studio))
    assert response.status_code == status.HTTP_409_CONFLICT
    details = response.json()["details"]
    assert details["reason"] == "bucket_in_use"
    assert details["referenced_by"] == ["show-assets"]


def test_delete_bucket_removes_grants(client, headers, seed, studio):
    seed.grant_user("mia", "renders", BucketPermission.READ)
    seed.group("comp", studio)
    seed.grant_group("comp", "renders", BucketPermission.WRITE)

    response = client.delete("/buckets/renders", headers=headers("olivia", studio))
    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert client.get("/acls/users", headers=headers("olivia", studio)).json()["acls"] == {}
    assert client.get("/acls/groups", headers=headers("olivia", studio)).json()["acls"] == {}


def test_assigned_bucket_cannot_be_deleted_by_organization(client, headers, seed, studio):
    seed.assign(studio, seed.bucket("library", org_id=None))
    response = client.delete("/buckets/library", headers=headers("olivia", studio))
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["details"]["reason"] == "bucket_not_owned"


def test_resolve_standard_bucket(client, headers, studio):
    data = client.get("/buckets/dailies/resolve", headers=headers("victor", studio)).json()
    assert data == {
        "bucket_type": "standard",
        "bucket_name": "dailies",
        "provider_id": "wasabi",
        "remote_bucket_name": "remote-dailies",
    }


def test_resolve_virtual_bucket_without_sources(client, headers, seed, studio):
    seed.virtual_bucket("show-assets", studio)
    response = client.get("/buckets/show-assets/resolve", headers=headers("adam", studio))
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error_code"] == "NO_SOURCES_CONFIGURED"


def test_browse_requires_read_acl(client, headers, seed, studio, gateway):
    response = client.get("/buckets/dailies/browse", headers=headers("victor", studio))
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["details"]["reason"] == "insufficient_bucket_acl"

    seed.grant_user("victor", "dailies", BucketPermission.READ)
    response = client.get("/buckets/dailies/browse", params={"prefix": "shots/"}, headers=headers("victor", studio))
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["prefix"] == "shots/"
    assert data["folders"] == [{"name": "sh010", "prefix": "shots/sh010/"}]
    assert gateway[-1].url.params["bucket"] == "remote-dailies"


def test_admin_browses_without_acl(client, headers, studio, gateway):
    response = client.get("/buckets/renders/browse", headers=headers("adam", studio))
    assert response.status_code == status.HTTP_200_OK


def test_browse_virtual_bucket_root_lists_mounts(client, headers, seed, studio, gateway):
    seed.virtual_bucket("show-assets", studio)
    seed.source("show-assets", "dailies", 0, mount_point="dailies/", source_prefix="incoming/")
    seed.source("show-assets", "renders", 1)

    data = client.get("/buckets/show-assets/browse", headers=headers("adam", studio)).json()
    assert data["folders"][0] == {"name": "dailies", "prefix": "dailies/"}
    assert data["source"]["source_bucket_name"] == "renders"

    data = client.get("/buckets/show-assets/browse", params={"prefix": "dailies/sh010/"},
                      headers=headers("adam", studio)).json()
    assert gateway[-1].url.params["prefix"] == "incoming/sh010/"
    assert data["prefix"] == "dailies/sh010/"


def test_browse_gateway_unavailable(client, headers, studio, monkeypatch):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    monkeypatch.setattr(storage_gateway, "transport", httpx.MockTransport(handler))
    response = client.get("/buckets/dailies/browse", headers=headers("adam", studio))
    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["error_code"] == "UPSTREAM_UNAVAILABLE"


def test_locks_are_proxied(client, headers, studio, gateway):
    data = client.get("/locks/list", headers=headers("victor", studio)).json()
    assert data["locks"] == [{"path": "dailies/a.mov", "owner": "mia"}]


# ==================== 虚拟桶源目录 ====================

def test_virtual_bucket_sources_lifecycle(client, headers, seed, studio):
    seed.virtual_bucket("show-assets", studio)

    first = client.post("/virtual-buckets/show-assets/sources",
                        json={"source_bucket_name": "renders", "source_prefix": "/shows/alpha"},
                        headers=headers("adam", studio))
    assert first.status_code == status.HTTP_201_CREATED
    assert first.json()["sort_order"] == 0
    assert first.json()["source_prefix"] == "shows/alpha"

    second = client.post("/virtual-buckets/show-assets/sources",
                         json={"source_bucket_name": "dailies", "mount_point": "/dailies"},
                         headers=headers("adam", studio))
    assert second.json()["sort_order"] == 1
    assert second.json()["mount_point"] == "dailies/"

    source_id = second.json()["id"]
    client.put(f"/virtual-buckets/show-assets/sources/{source_id}", json={"sort_order": 0, "display_name": "Dailies"},
               headers=headers("adam", studio))
    # 相同 sort_order 时按 ID 排序
    sources = client.get("/virtual-buckets/show-assets", headers=headers("mia", studio)).json()["sources"]
    assert [s["source_bucket_name"] for s in sources] == ["renders", "dailies"]
    assert sources[1]["display_name"] == "Dailies"
    assert sources[0]["provider_name"] == "Wasabi"

    response = client.delete(f"/virtual-buckets/show-assets/sources/{first.json()['id']}",
                             headers=headers("adam", studio))
    assert response.status_code == status.HTTP_204_NO_CONTENT
    sources = client.get("/virtual-buckets/show-assets", headers=headers("mia", studio)).json()["sources"]
    assert [s["source_bucket_name"] for s in sources] == ["dailies"]


def test_virtual_source_must_be_standard(client, headers, seed, studio):
    seed.virtual_bucket("show-assets", studio)
    seed.virtual_bucket("other-vb", studio)
    response = client.post("/virtual-buckets/show-assets/sources", json={"source_bucket_name": "other-vb"},
                           headers=headers("adam", studio))
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["details"]["reason"] == "source_not_standard"


def test_virtual_source_must_be_visible(client, headers, seed, studio):
    seed.virtual_bucket("show-assets", studio)
    seed.bucket("foreign", org_id=seed.org("Other"))
    response = client.post("/virtual-buckets/show-assets/sources", json={"source_bucket_name": "foreign"},
                           headers=headers("adam", studio))
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_members_cannot_configure_virtual_buckets(client, headers, seed, studio):
    seed.virtual_bucket("show-assets", studio)
    response = client.post("/virtual-buckets/show-assets/sources", json={"source_bucket_name": "dailies"},
                           headers=headers("mia", studio))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_standard_bucket_is_not_a_virtual_bucket(client, headers, studio):
    response = client.get("/virtual-buckets/dailies", headers=headers("adam", studio))
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["details"]["reason"] == "not_virtual"
