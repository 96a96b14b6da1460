"""Organization bootstrap, settings, team overview and member mutations.

Every mutation runs as one store transaction that also re-reads the
actor's own membership.  A caller demoted or removed between passing the
role gate and committing is therefore refused (or hits a conflict) rather
than acting on authority they no longer have.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime

from orgaccess.core import audit
from orgaccess.core.metrics import MEMBERSHIP_CHANGES
from orgaccess.models.invitation import InvitationStatus, PendingInvitation
from orgaccess.models.organization import (
    ASSIGNABLE_ROLES,
    MemberRole,
    Organization,
    OrganizationMember,
    Plan,
)
from orgaccess.models.principal import Identity, OrgContext
from orgaccess.repos.invitation_repo import InvitationRepo
from orgaccess.repos.org_membership_repo import OrgMembershipRepo
from orgaccess.repos.org_repo import OrgRepo
from orgaccess.repos.state_store import StateStore
from orgaccess.services import seats
from orgaccess.services.errors import (
    InsufficientPermissions,
    InvalidOrganizationName,
    InvalidRole,
    MemberNotActive,
    MemberNotFound,
    NotAMember,
    OrganizationNotFound,
)
from orgaccess.services.events import (
    MEMBER_REMOVED,
    MEMBER_ROLE_CHANGED,
    EventPublisher,
)
from orgaccess.services.permissions import (
    Capability,
    can,
    check_member_target,
    roles_with,
)
from orgaccess.services.transactions import atomic, utcnow

logger = logging.getLogger(__name__)

ORG_NAME_MIN_LENGTH = 2
ORG_NAME_MAX_LENGTH = 100


@dataclass(frozen=True, slots=True)
class SeatSummary:
    max_seats: int
    used_seats: int
    available_seats: int
    pending_invitations: int


@dataclass(frozen=True, slots=True)
class TeamOverview:
    organization: Organization
    members: list[OrganizationMember]
    pending_invitations: list[PendingInvitation]
    seats: SeatSummary
    as_of: datetime


def validate_organization_name(name: str) -> str:
    cleaned = name.strip()
    if not ORG_NAME_MIN_LENGTH <= len(cleaned) <= ORG_NAME_MAX_LENGTH:
        raise InvalidOrganizationName(
            min_length=ORG_NAME_MIN_LENGTH, max_length=ORG_NAME_MAX_LENGTH
        )
    return cleaned


def default_organization_name(display_name: str) -> str:
    suffix = "'s Organization"
    owner = display_name.strip()[: ORG_NAME_MAX_LENGTH - len(suffix)].rstrip()
    return f"{owner}{suffix}"


def parse_assignable_role(value: str) -> MemberRole:
    try:
        role = MemberRole(value)
    except ValueError:
        raise InvalidRole(role=value) from None
    if role not in ASSIGNABLE_ROLES:
        raise InvalidRole(role=value)
    return role


async def reverify_actor(
    members: OrgMembershipRepo, ctx: OrgContext, capability: Capability
) -> OrganizationMember:
    """Re-read the actor's membership inside the current transaction."""
    actor = await members.get(ctx.organization_id, ctx.user_id)
    if actor is None:
        raise NotAMember(organization_id=ctx.organization_id)
    if not actor.is_active:
        raise MemberNotActive(status=actor.status.value)
    if not can(actor.role, capability):
        raise InsufficientPermissions(required=roles_with(capability), current=actor.role)
    return actor


async def load_organization(orgs: OrgRepo, org_id: str) -> Organization:
    org = await orgs.get(org_id)
    if org is None:
        logger.error(
            "Data integrity: organization=%s referenced but missing from store", org_id
        )
        raise OrganizationNotFound(organization_id=org_id)
    return org


class OrganizationService:
    def __init__(
        self,
        store: StateStore,
        events: EventPublisher,
        *,
        default_plan: Plan = Plan.SOLO,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._events = events
        self._default_plan = default_plan
        self._clock = clock

    async def bootstrap(
        self, identity: Identity, *, name: str | None = None, plan: Plan | None = None
    ) -> tuple[Organization, OrganizationMember, bool]:
        """Create the caller's organization on first sign-in.

        Idempotent: a user who already has an organization gets it back,
        with ``created`` False.
        """
        async with atomic(self._store, "organization.bootstrap") as txn:
            orgs = OrgRepo(txn)
            members = OrgMembershipRepo(txn)

            existing_id = await orgs.organization_id_for_user(identity.user_id)
            if existing_id is not None:
                org = await load_organization(orgs, existing_id)
                member = await members.get(existing_id, identity.user_id)
                if member is None:
                    raise NotAMember(organization_id=existing_id)
                return org, member, False

            org_name = validate_organization_name(
                name or default_organization_name(identity.display_name)
            )
            org = Organization.new(
                name=org_name,
                owner_user_id=identity.user_id,
                plan=plan or self._default_plan,
            )
            owner = OrganizationMember.new(
                organization_id=org.id,
                user_id=identity.user_id,
                email=identity.email,
                name=identity.display_name,
                role=MemberRole.OWNER,
                invited_by_user_id=identity.user_id,
                joined_at=self._clock(),
            )
            orgs.put(org)
            await members.add(owner)
            orgs.link_user(identity.user_id, org.id)

        audit.record(
            "organization.create",
            audit.ALLOW,
            user_id=identity.user_id,
            organization_id=org.id,
            plan=org.plan.value,
        )
        logger.info("Organization created: org=%s owner=%s", org.id, identity.user_id)
        return org, owner, True

    async def update(
        self,
        ctx: OrgContext,
        *,
        name: str | None = None,
        require_admin_approval_for_deletes: bool | None = None,
        allow_members_to_invite: bool | None = None,
    ) -> Organization:
        async with atomic(self._store, "organization.update") as txn:
            orgs = OrgRepo(txn)
            await reverify_actor(
                OrgMembershipRepo(txn), ctx, Capability.EDIT_ORGANIZATION_SETTINGS
            )
            org = await load_organization(orgs, ctx.organization_id)

            settings = org.settings
            if require_admin_approval_for_deletes is not None:
                settings = replace(
                    settings,
                    require_admin_approval_for_deletes=require_admin_approval_for_deletes,
                )
            if allow_members_to_invite is not None:
                settings = replace(settings, allow_members_to_invite=allow_members_to_invite)

            updated = org.touched(
                name=validate_organization_name(name) if name is not None else org.name,
                settings=settings,
            )
            orgs.put(updated)

        audit.record(
            "organization.update",
            audit.ALLOW,
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
        )
        return updated

    async def team_overview(self, ctx: OrgContext) -> TeamOverview:
        now = self._clock()
        async with atomic(self._store, "organization.team_overview") as txn:
            org = await load_organization(OrgRepo(txn), ctx.organization_id)
            members = await OrgMembershipRepo(txn).list_by_org(org.id)
            invitations = await InvitationRepo(txn).list_by_org(org.id)

        pending = [i for i in invitations if i.status == InvitationStatus.PENDING]
        outstanding = sum(1 for i in pending if i.is_outstanding(now))
        return TeamOverview(
            organization=org,
            members=[m for m in members if m.is_active],
            pending_invitations=pending,
            seats=SeatSummary(
                max_seats=org.max_seats,
                used_seats=org.current_seats,
                available_seats=seats.available_seats(org),
                pending_invitations=outstanding,
            ),
            as_of=now,
        )

    async def change_role(
        self, ctx: OrgContext, target_user_id: str, new_role: str
    ) -> OrganizationMember:
        async with atomic(self._store, "member.change_role") as txn:
            members = OrgMembershipRepo(txn)
            await reverify_actor(members, ctx, Capability.CHANGE_MEMBER_ROLES)

            target = await members.get(ctx.organization_id, target_user_id)
            if target is None:
                raise MemberNotFound(user_id=target_user_id)
            check_member_target(ctx.user_id, target)
            role = parse_assignable_role(new_role)

            previous_role = target.role
            updated = replace(target, role=role)
            members.put(updated)

        MEMBERSHIP_CHANGES.labels(change="role_changed").inc()
        audit.record(
            "member.change_role",
            audit.ALLOW,
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
            target_user_id=target_user_id,
            previous_role=previous_role.value,
            new_role=role.value,
        )
        await self._events.membership_changed(
            MEMBER_ROLE_CHANGED,
            updated,
            actor_user_id=ctx.user_id,
            previous_role=previous_role.value,
        )
        return updated

    async def remove_member(self, ctx: OrgContext, target_user_id: str) -> OrganizationMember:
        """Delete the membership and release its seat in one commit."""
        async with atomic(self._store, "member.remove") as txn:
            orgs = OrgRepo(txn)
            members = OrgMembershipRepo(txn)
            await reverify_actor(members, ctx, Capability.REMOVE_MEMBERS)

            target = await members.get(ctx.organization_id, target_user_id)
            if target is None:
                raise MemberNotFound(user_id=target_user_id)
            check_member_target(ctx.user_id, target)

            org = await load_organization(orgs, ctx.organization_id)
            released = seats.release_seat(org, target)

            await members.remove(org.id, target_user_id)
            if await orgs.organization_id_for_user(target_user_id) == org.id:
                orgs.unlink_user(target_user_id)
            orgs.put(released.touched())

        MEMBERSHIP_CHANGES.labels(change="removed").inc()
        audit.record(
            "member.remove",
            audit.ALLOW,
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
            target_user_id=target_user_id,
            role=target.role.value,
        )
        await self._events.membership_changed(
            MEMBER_REMOVED, target, actor_user_id=ctx.user_id
        )
        return target
