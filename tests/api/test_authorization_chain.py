"""The three gates: identity → organization membership → role.

Each gate fails with its own error code, and a failing gate stops the
chain before the next one runs.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from orgaccess.models.organization import MemberRole, MemberStatus
from orgaccess.repos import keys
from orgaccess.repos.org_membership_repo import OrgMembershipRepo
from orgaccess.repos.state_store import state_store
from orgaccess.services import token_service
from tests.conftest import add_test_member, auth, create_test_org, mint_token

INVITE = "/v1/organization/invitations"


def _authz(gate: str, outcome: str) -> float:
    return (
        REGISTRY.get_sample_value(
            "authz_decisions_total", {"gate": gate, "outcome": outcome}
        )
        or 0.0
    )


def _link_user(user_id: str, org_id: str) -> None:
    async def _run() -> None:
        async with state_store.transaction() as txn:
            txn.set(keys.user_organization(user_id), org_id)

    asyncio.run(_run())


def _set_status(org_id: str, user_id: str, status: MemberStatus) -> None:
    async def _run() -> None:
        async with state_store.transaction() as txn:
            members = OrgMembershipRepo(txn)
            member = await members.get(org_id, user_id)
            members.put(replace(member, status=status))

    asyncio.run(_run())


# ---------------------------------------------------------------------------
# Gate 1: identity
# ---------------------------------------------------------------------------


def test_missing_credential(client: TestClient) -> None:
    before = _authz("identity", "UNAUTHENTICATED")
    resp = client.get("/v1/organization")
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "UNAUTHENTICATED"
    assert resp.headers["www-authenticate"] == "Bearer"
    assert _authz("identity", "UNAUTHENTICATED") == before + 1


@pytest.mark.parametrize("header", ["Bearer not-a-jwt", "Basic dXNlcjpwYXNz"])
def test_malformed_credential(client: TestClient, header: str) -> None:
    resp = client.get("/v1/organization", headers={"Authorization": header})
    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "UNAUTHENTICATED"


def test_expired_credential(client: TestClient) -> None:
    token = token_service.create_access_token(
        sub="user-1", email="user-1@example.com", ttl=timedelta(seconds=-30)
    )
    resp = client.get("/v1/organization", headers=auth(token))
    assert resp.status_code == 401
    assert resp.json()["detail"]["message"] == "Token expired"


def test_token_without_email(client: TestClient) -> None:
    token = token_service.create_access_token(sub="user-1", email="  ")
    resp = client.get("/v1/organization", headers=auth(token))
    assert resp.status_code == 401
    assert resp.json()["detail"]["message"] == "Token carries no email"


# ---------------------------------------------------------------------------
# Gate 2: organization membership
# ---------------------------------------------------------------------------


def test_user_without_organization(client: TestClient) -> None:
    resp = client.get("/v1/organization", headers=auth(mint_token("loner")))
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "NO_ORGANIZATION"


def test_organization_record_missing(client: TestClient) -> None:
    _link_user("user-1", "vanished-org")
    resp = client.get("/v1/organization", headers=auth(mint_token("user-1")))
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "ORGANIZATION_NOT_FOUND"


def test_linked_but_not_a_member(client: TestClient) -> None:
    org = create_test_org()
    _link_user("stray", org.id)
    resp = client.get("/v1/organization", headers=auth(mint_token("stray")))
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "NOT_A_MEMBER"


@pytest.mark.parametrize("status", [MemberStatus.INACTIVE, MemberStatus.PENDING])
def test_inactive_membership(client: TestClient, status: MemberStatus) -> None:
    org = create_test_org()
    add_test_member(org.id, "member-1")
    _set_status(org.id, "member-1", status)
    resp = client.get("/v1/organization", headers=auth(mint_token("member-1")))
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "MEMBER_NOT_ACTIVE"


def test_active_member_gets_context(client: TestClient) -> None:
    org = create_test_org()
    add_test_member(org.id, "member-1")
    before = _authz("organization", "allow")
    resp = client.get("/v1/organization", headers=auth(mint_token("member-1")))
    assert resp.status_code == 200
    body = resp.json()
    assert body["organization"]["id"] == org.id
    assert body["membership"]["role"] == "member"
    assert _authz("organization", "allow") == before + 1


# ---------------------------------------------------------------------------
# Gate 3: role
# ---------------------------------------------------------------------------


def test_member_refused_by_role_gate(client: TestClient) -> None:
    org = create_test_org()
    add_test_member(org.id, "member-1")
    before = _authz("role", "INSUFFICIENT_PERMISSIONS")

    resp = client.post(
        INVITE, json={"email": "x@example.com"}, headers=auth(mint_token("member-1"))
    )

    assert resp.status_code == 403
    detail = resp.json()["detail"]
    assert detail["code"] == "INSUFFICIENT_PERMISSIONS"
    assert detail["required"] == ["admin", "owner"]
    assert detail["current"] == "member"
    assert _authz("role", "INSUFFICIENT_PERMISSIONS") == before + 1


def test_chain_short_circuits_before_role_gate(client: TestClient) -> None:
    before = _authz("role", "INSUFFICIENT_PERMISSIONS")
    resp = client.post(
        INVITE, json={"email": "x@example.com"}, headers=auth(mint_token("loner"))
    )
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "NO_ORGANIZATION"
    assert _authz("role", "INSUFFICIENT_PERMISSIONS") == before


def test_admin_passes_role_gate(client: TestClient) -> None:
    org = create_test_org()
    add_test_member(org.id, "admin-1", MemberRole.ADMIN)
    resp = client.post(
        INVITE, json={"email": "x@example.com"}, headers=auth(mint_token("admin-1"))
    )
    assert resp.status_code == 201


def test_denials_are_audited(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    org = create_test_org()
    add_test_member(org.id, "member-1")
    with caplog.at_level("WARNING", logger="orgaccess.audit"):
        client.delete("/v1/organization/members/owner-1", headers=auth(mint_token("member-1")))

    [record] = [
        r for r in caplog.records if r.name == "orgaccess.audit" and r.outcome == "deny"
    ]
    assert record.action == "remove_members"
    assert record.user_id == "member-1"
    assert record.organization_id == org.id
