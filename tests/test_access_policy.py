"""
角色能力表和访问决策测试
"""
import pytest

from db.models import BucketPermission, OrgRole
from services.access_policy import (
    Capability,
    DenyReason,
    ROLE_CAPABILITIES,
    capabilities_of,
    decide,
    effective_permission,
    has_capability,
    parse_permission,
    parse_role,
)
from services.exceptions import ValidationError

READ, WRITE, ADMIN = BucketPermission.READ, BucketPermission.WRITE, BucketPermission.ADMIN


def test_owner_has_every_capability():
    assert capabilities_of(OrgRole.OWNER) == frozenset(Capability)


def test_admin_capabilities():
    expected = frozenset(Capability) - {
        Capability.ORG_MANAGE,
        Capability.ORG_DELETE,
        Capability.MEMBER_CHANGE_ROLE,
    }
    assert capabilities_of(OrgRole.ADMIN) == expected


def test_member_and_viewer_capabilities():
    assert capabilities_of(OrgRole.MEMBER) == {
        Capability.BUCKET_READ, Capability.BUCKET_WRITE, Capability.PROVIDER_READ, Capability.KEY_OWN
    }
    assert capabilities_of(OrgRole.VIEWER) == {
        Capability.BUCKET_READ, Capability.PROVIDER_READ, Capability.KEY_OWN
    }


def test_every_role_has_a_table_entry():
    assert set(ROLE_CAPABILITIES) == set(OrgRole)


def test_unknown_role_has_no_capabilities():
    assert capabilities_of("superuser") == frozenset()
    assert not has_capability("superuser", Capability.BUCKET_READ)


def test_string_roles_are_accepted():
    assert has_capability("member", Capability.BUCKET_WRITE)
    assert not has_capability("viewer", Capability.BUCKET_WRITE)


def test_parse_role_rejects_unknown_values():
    assert parse_role("Admin") == OrgRole.ADMIN
    with pytest.raises(ValidationError):
        parse_role("root")


@pytest.mark.parametrize("value", [None, "", "none", "NONE"])
def test_parse_permission_none_values(value):
    assert parse_permission(value) is None


def test_parse_permission_rejects_unknown_values():
    with pytest.raises(ValidationError) as exc:
        parse_permission("execute")
    assert exc.value.reason == "invalid_permission"


def test_permission_ranks_are_ordered():
    assert READ.rank < WRITE.rank < ADMIN.rank


def test_effective_permission_is_maximum_of_grants():
    assert effective_permission(None, []) is None
    assert effective_permission(READ, [None, WRITE]) == WRITE
    assert effective_permission(None, [READ, ADMIN, WRITE]) == ADMIN


def test_no_organization_context():
    decision = decide(None, READ, direct=ADMIN)
    assert not decision
    assert decision.reason == DenyReason.NO_ORGANIZATION_CONTEXT


def test_viewer_write_is_denied_by_role_even_with_admin_acl():
    decision = decide(OrgRole.VIEWER, WRITE, direct=ADMIN)
    assert not decision
    assert decision.reason == DenyReason.INSUFFICIENT_ROLE


def test_admin_permission_requires_write_capability():
    assert decide(OrgRole.VIEWER, ADMIN, direct=ADMIN).reason == DenyReason.INSUFFICIENT_ROLE
    assert decide(OrgRole.MEMBER, ADMIN, direct=ADMIN)


def test_member_with_group_read_cannot_write():
    decision = decide(OrgRole.MEMBER, WRITE, direct=None, group_grants=[READ])
    assert not decision
    assert decision.reason == DenyReason.INSUFFICIENT_BUCKET_ACL
    assert decision.effective_permission == READ


def test_group_grant_is_enough():
    decision = decide(OrgRole.MEMBER, WRITE, direct=READ, group_grants=[WRITE])
    assert decision
    assert decision.effective_permission == WRITE


def test_higher_permission_implies_lower():
    assert decide(OrgRole.MEMBER, READ, direct=WRITE)
    assert decide(OrgRole.VIEWER, READ, direct=ADMIN)


def test_owner_still_needs_a_bucket_grant():
    decision = decide(OrgRole.OWNER, READ)
    assert decision.reason == DenyReason.INSUFFICIENT_BUCKET_ACL


def test_bucket_outside_organization():
    decision = decide(OrgRole.OWNER, READ, direct=ADMIN, bucket_visible=False)
    assert decision.reason == DenyReason.BUCKET_NOT_IN_ORGANIZATION
