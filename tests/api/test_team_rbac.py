"""Table-driven role checks across the organization endpoints.

Each row describes: endpoint, method, caller, expected HTTP status.
"outsider" holds a valid credential but belongs to no organization;
None sends no credential at all.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from orgaccess.models.organization import MemberRole, Plan
from tests.conftest import add_test_member, auth, create_test_org, mint_token


def _setup_team() -> dict[str, str]:
    """Business-plan org with one user per role plus a target member. Return caller->token."""
    org = create_test_org("owner-1", plan=Plan.BUSINESS)
    add_test_member(org.id, "admin-1", MemberRole.ADMIN)
    add_test_member(org.id, "member-1", MemberRole.MEMBER)
    add_test_member(org.id, "target-1", MemberRole.MEMBER)
    return {
        "owner": mint_token("owner-1"),
        "admin": mint_token("admin-1"),
        "member": mint_token("member-1"),
        "outsider": mint_token("outsider-1"),
    }


# (endpoint, method, caller, expected_status, body)
_CASES: list[tuple[str, str, str | None, int, dict | None]] = [
    # GET /v1/organization: any member
    ("/v1/organization", "GET", "owner", 200, None),
    ("/v1/organization", "GET", "admin", 200, None),
    ("/v1/organization", "GET", "member", 200, None),
    ("/v1/organization", "GET", "outsider", 404, None),
    ("/v1/organization", "GET", None, 401, None),
    # GET /v1/organization/permissions: any member
    ("/v1/organization/permissions", "GET", "owner", 200, None),
    ("/v1/organization/permissions", "GET", "admin", 200, None),
    ("/v1/organization/permissions", "GET", "member", 200, None),
    ("/v1/organization/permissions", "GET", None, 401, None),
    # PATCH /v1/organization: owner only
    ("/v1/organization", "PATCH", "owner", 200, {"name": "Renamed"}),
    ("/v1/organization", "PATCH", "admin", 403, {"name": "Renamed"}),
    ("/v1/organization", "PATCH", "member", 403, {"name": "Renamed"}),
    ("/v1/organization", "PATCH", "outsider", 404, {"name": "Renamed"}),
    # GET /v1/organization/members: any member
    ("/v1/organization/members", "GET", "owner", 200, None),
    ("/v1/organization/members", "GET", "admin", 200, None),
    ("/v1/organization/members", "GET", "member", 200, None),
    ("/v1/organization/members", "GET", None, 401, None),
    # POST /v1/organization/invitations: owner/admin
    ("/v1/organization/invitations", "POST", "owner", 201, {"email": "new@example.com"}),
    ("/v1/organization/invitations", "POST", "admin", 201, {"email": "new@example.com"}),
    ("/v1/organization/invitations", "POST", "member", 403, {"email": "new@example.com"}),
    ("/v1/organization/invitations", "POST", "outsider", 404, {"email": "new@example.com"}),
    ("/v1/organization/invitations", "POST", None, 401, {"email": "new@example.com"}),
    # PATCH /v1/organization/members/{user_id}: owner/admin
    ("/v1/organization/members/target-1", "PATCH", "owner", 200, {"role": "admin"}),
    ("/v1/organization/members/target-1", "PATCH", "admin", 200, {"role": "admin"}),
    ("/v1/organization/members/target-1", "PATCH", "member", 403, {"role": "admin"}),
    # DELETE /v1/organization/members/{user_id}: owner/admin
    ("/v1/organization/members/target-1", "DELETE", "owner", 204, None),
    ("/v1/organization/members/target-1", "DELETE", "admin", 204, None),
    ("/v1/organization/members/target-1", "DELETE", "member", 403, None),
    ("/v1/organization/members/target-1", "DELETE", None, 401, None),
]


def _case_id(case: tuple) -> str:
    endpoint, method, caller, expected, _ = case
    return f"{method} {endpoint} [{caller or 'anon'}] -> {expected}"


@pytest.mark.parametrize(
    "endpoint,method,caller,expected,body",
    _CASES,
    ids=[_case_id(c) for c in _CASES],
)
def test_team_rbac(
    client: TestClient,
    endpoint: str,
    method: str,
    caller: str | None,
    expected: int,
    body: dict | None,
) -> None:
    tokens = _setup_team()
    headers = auth(tokens[caller] if caller else None)

    resp = client.request(method, endpoint, headers=headers, json=body)

    assert resp.status_code == expected, resp.text


@pytest.mark.parametrize(
    "caller,expected",
    [
        ("owner", {"invite_members", "manage_billing", "void_invoices"}),
        ("admin", {"invite_members", "remove_members", "record_payments"}),
        ("member", {"create_records", "edit_records", "view_members"}),
    ],
)
def test_permissions_listing_reflects_role(
    client: TestClient, caller: str, expected: set[str]
) -> None:
    tokens = _setup_team()
    resp = client.get("/v1/organization/permissions", headers=auth(tokens[caller]))
    body = resp.json()
    assert body["role"] == caller
    assert body["plan"] == "business"
    assert expected <= set(body["capabilities"])


def test_member_capabilities_exclude_team_management(client: TestClient) -> None:
    tokens = _setup_team()
    caps = set(
        client.get("/v1/organization/permissions", headers=auth(tokens["member"])).json()[
            "capabilities"
        ]
    )
    assert caps == {"view_organization", "view_members", "create_records", "edit_records"}


def test_solo_owner_has_no_team_management(client: TestClient) -> None:
    create_test_org("solo-owner", plan=Plan.SOLO)
    resp = client.get("/v1/organization/permissions", headers=auth(mint_token("solo-owner")))
    caps = set(resp.json()["capabilities"])
    assert "invite_members" not in caps
    assert "remove_members" not in caps
    assert "manage_billing" in caps


def test_solo_owner_cannot_invite(client: TestClient) -> None:
    create_test_org("solo-owner", plan=Plan.SOLO)
    resp = client.post(
        "/v1/organization/invitations",
        json={"email": "friend@example.com"},
        headers=auth(mint_token("solo-owner")),
    )
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "SEATS_EXHAUSTED"


@pytest.mark.parametrize(
    "caller,target,code",
    [
        ("admin", "owner-1", "CANNOT_MODIFY_OWNER"),
        ("owner", "owner-1", "CANNOT_MODIFY_OWNER"),
        ("admin", "admin-1", "SELF_ACTION_FORBIDDEN"),
        ("owner", "nobody", "MEMBER_NOT_FOUND"),
    ],
)
def test_member_target_rules(client: TestClient, caller: str, target: str, code: str) -> None:
    tokens = _setup_team()
    for method, body in (("PATCH", {"role": "member"}), ("DELETE", None)):
        resp = client.request(
            method,
            f"/v1/organization/members/{target}",
            headers=auth(tokens[caller]),
            json=body,
        )
        assert resp.json()["detail"]["code"] == code


def test_owner_cannot_be_granted(client: TestClient) -> None:
    tokens = _setup_team()
    resp = client.patch(
        "/v1/organization/members/target-1",
        json={"role": "owner"},
        headers=auth(tokens["owner"]),
    )
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "INVALID_ROLE"
