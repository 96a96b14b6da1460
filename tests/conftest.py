from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from orgaccess.api.organization import organization_service
from orgaccess.main import app
from orgaccess.models.organization import MemberRole, Organization, OrganizationMember, Plan
from orgaccess.models.principal import Identity, OrgContext
from orgaccess.repos import keys
from orgaccess.repos.invitation_repo import InvitationRepo
from orgaccess.repos.org_membership_repo import OrgMembershipRepo
from orgaccess.repos.org_repo import OrgRepo
from orgaccess.repos.state_store import state_store
from orgaccess.services import token_service
from orgaccess.services.event_queue import event_queue

# Ensure repo root is on sys.path so `import orgaccess` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_state_store() -> None:
    """Wipe every record between tests."""
    if hasattr(state_store, "_data"):
        state_store._data.clear()  # type: ignore[union-attr]
        state_store._versions.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_event_queue() -> None:
    if hasattr(event_queue, "_queues"):
        event_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    user_id: str = "user-1",
    email: str | None = None,
    name: str = "",
) -> str:
    """Create a valid ES256 bearer token for testing."""
    return token_service.create_access_token(
        sub=user_id, email=email or f"{user_id}@example.com", name=name
    )


def auth(token: str | None) -> dict[str, str]:
    if token is None:
        return {}
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Org test helpers
# ---------------------------------------------------------------------------


def create_test_org(
    owner_id: str = "owner-1",
    plan: Plan = Plan.TEAM,
    name: str = "Acme Plumbing",
) -> Organization:
    """Bootstrap an organization owned by ``owner_id`` in the shared store."""
    identity = Identity(user_id=owner_id, email=f"{owner_id}@example.com", name="Olive Owner")
    org, _, _ = asyncio.run(organization_service.bootstrap(identity, name=name, plan=plan))
    return org


def add_test_member(
    org_id: str,
    user_id: str,
    role: MemberRole = MemberRole.MEMBER,
    email: str | None = None,
) -> OrganizationMember:
    """Add an active member directly, charging a seat like an accepted invitation."""

    async def _add() -> OrganizationMember:
        async with state_store.transaction() as txn:
            orgs = OrgRepo(txn)
            org = await orgs.get(org_id)
            assert org is not None
            member = OrganizationMember.new(
                organization_id=org_id,
                user_id=user_id,
                email=email or f"{user_id}@example.com",
                name=user_id,
                role=role,
                invited_by_user_id=org.owner_user_id,
            )
            await OrgMembershipRepo(txn).add(member)
            orgs.link_user(user_id, org_id)
            orgs.put(org.touched(current_seats=org.current_seats + 1))
        return member

    return asyncio.run(_add())


def read_org(org_id: str) -> Organization:
    async def _read() -> Organization:
        async with state_store.transaction() as txn:
            org = await OrgRepo(txn).get(org_id)
        assert org is not None
        return org

    return asyncio.run(_read())


def active_member_count(org_id: str) -> int:
    async def _count() -> int:
        async with state_store.transaction() as txn:
            members = await OrgMembershipRepo(txn).list_by_org(org_id)
        return sum(1 for m in members if m.is_active)

    return asyncio.run(_count())


def invitation_token(org_id: str, invitation_id: str) -> str:
    async def _token() -> str:
        async with state_store.transaction() as txn:
            invitation = await InvitationRepo(txn).get(org_id, invitation_id)
        assert invitation is not None
        return invitation.token

    return asyncio.run(_token())


def user_org_id(user_id: str) -> str | None:
    async def _read() -> str | None:
        async with state_store.transaction() as txn:
            return await txn.get(keys.user_organization(user_id))

    return asyncio.run(_read())


def ctx_for(org_id: str, user_id: str, store=state_store) -> OrgContext:
    """Build the OrgContext the organization gate would resolve for ``user_id``."""

    async def _load() -> OrgContext:
        async with store.transaction() as txn:
            org = await OrgRepo(txn).get(org_id)
            member = await OrgMembershipRepo(txn).get(org_id, user_id)
        assert org is not None and member is not None
        return OrgContext(
            identity=Identity(user_id=user_id, email=member.email, name=member.name),
            organization=org,
            membership=member,
        )

    return asyncio.run(_load())
