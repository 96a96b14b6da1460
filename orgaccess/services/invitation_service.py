"""Invitation lifecycle: invite, resend, cancel, lookup, accept.

States: pending → accepted | canceled, plus ``expired``, which is never
stored.  An invitation is expired when ``now > expires_at`` at the moment
it is read; there is no background sweep.

The token is the public capability in the invitation link.  It is never
logged; log lines and audit records use the invitation id instead.

Accepting is the one operation that touches seats.  Everything it changes
(the invitation status, the new membership and its index entry, the
user→organization mapping, ``current_seats``) is committed as a single
store transaction.  Two concurrent accepts of the same token both read
``pending``; the first commit wins and the second gets a retryable
ConcurrencyConflict.  On retry it sees ``accepted`` and fails with
InvitationInvalid, so seats are never charged twice.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta

from orgaccess.core import audit
from orgaccess.core.metrics import INVITATION_TRANSITIONS, MEMBERSHIP_CHANGES
from orgaccess.models.invitation import (
    DEFAULT_INVITATION_TTL,
    InvitationStatus,
    PendingInvitation,
)
from orgaccess.models.organization import Organization, OrganizationMember
from orgaccess.models.principal import Identity, OrgContext
from orgaccess.repos.invitation_repo import InvitationRepo
from orgaccess.repos.org_membership_repo import OrgMembershipRepo
from orgaccess.repos.org_repo import OrgRepo
from orgaccess.repos.state_store import StateStore
from orgaccess.services import seats
from orgaccess.services.errors import (
    AlreadyInOrganization,
    EmailAlreadyMember,
    EmailMismatch,
    InvalidEmail,
    InvitationAlreadyPending,
    InvitationExpired,
    InvitationInvalid,
    InvitationNotFound,
    InvitationNotPending,
)
from orgaccess.services.events import MEMBER_JOINED, EventPublisher
from orgaccess.services.organization_service import (
    load_organization,
    parse_assignable_role,
    reverify_actor,
)
from orgaccess.services.permissions import Capability
from orgaccess.services.transactions import atomic, utcnow

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    cleaned = email.strip().lower()
    if not _EMAIL_RE.match(cleaned):
        raise InvalidEmail(email=email)
    return cleaned


class InvitationService:
    def __init__(
        self,
        store: StateStore,
        events: EventPublisher,
        *,
        app_url: str,
        ttl: timedelta = DEFAULT_INVITATION_TTL,
        reserve_seats_for_pending: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._events = events
        self._app_url = app_url.rstrip("/")
        self._ttl = ttl
        self._reserve_seats_for_pending = reserve_seats_for_pending
        self._clock = clock

    def invitation_url(self, token: str) -> str:
        return f"{self._app_url}/invite/{token}"

    def _reserved_seats(self, invitations: list[PendingInvitation], now: datetime) -> int:
        if not self._reserve_seats_for_pending:
            return 0
        return sum(1 for i in invitations if i.is_outstanding(now))

    # ------------------------------------------------------------------
    # Inviter operations
    # ------------------------------------------------------------------

    async def invite(self, ctx: OrgContext, email: str, role: str) -> PendingInvitation:
        now = self._clock()
        async with atomic(self._store, "invitation.create") as txn:
            orgs = OrgRepo(txn)
            members = OrgMembershipRepo(txn)
            invitations = InvitationRepo(txn)
            await reverify_actor(members, ctx, Capability.INVITE_MEMBERS)

            org = await load_organization(orgs, ctx.organization_id)
            existing = await invitations.list_by_org(org.id)
            seats.can_invite(org, self._reserved_seats(existing, now))

            invited_role = parse_assignable_role(role)
            address = normalize_email(email)
            for member in await members.list_by_org(org.id):
                if member.is_active and member.email == address:
                    raise EmailAlreadyMember(email=address)
            if any(i.email == address and i.is_outstanding(now) for i in existing):
                raise InvitationAlreadyPending(email=address)

            invitation = PendingInvitation.new(
                organization_id=org.id,
                organization_name=org.name,
                email=address,
                role=invited_role,
                invited_by_user_id=ctx.user_id,
                invited_by_name=ctx.membership.name or ctx.identity.display_name,
                now=now,
                ttl=self._ttl,
            )
            await invitations.add(invitation)

        INVITATION_TRANSITIONS.labels(transition="created").inc()
        audit.record(
            "invitation.create",
            audit.ALLOW,
            user_id=ctx.user_id,
            organization_id=org.id,
            invitation_id=invitation.id,
            role=invited_role.value,
        )
        await self._events.invitation_sent(
            invitation, invitation_url=self.invitation_url(invitation.token)
        )
        return invitation

    async def resend(self, ctx: OrgContext, invitation_id: str) -> PendingInvitation:
        """Push ``expires_at`` out again; the token (and the link) stay the same."""
        now = self._clock()
        async with atomic(self._store, "invitation.resend") as txn:
            invitations = InvitationRepo(txn)
            await reverify_actor(OrgMembershipRepo(txn), ctx, Capability.INVITE_MEMBERS)
            invitation = await self._pending_invitation(invitations, ctx, invitation_id)

            if invitation.is_expired(now):
                # an expired invitation gave up its reservation; reviving it takes one again
                org = await load_organization(OrgRepo(txn), ctx.organization_id)
                others = [
                    i for i in await invitations.list_by_org(org.id) if i.id != invitation.id
                ]
                if any(i.email == invitation.email and i.is_outstanding(now) for i in others):
                    raise InvitationAlreadyPending(email=invitation.email)
                seats.can_invite(org, self._reserved_seats(others, now))

            refreshed = invitation.refreshed(now=now, ttl=self._ttl)
            invitations.put(refreshed)

        INVITATION_TRANSITIONS.labels(transition="resent").inc()
        audit.record(
            "invitation.resend",
            audit.ALLOW,
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
            invitation_id=invitation_id,
        )
        await self._events.invitation_sent(
            refreshed, invitation_url=self.invitation_url(refreshed.token), resent=True
        )
        return refreshed

    async def cancel(self, ctx: OrgContext, invitation_id: str) -> PendingInvitation:
        now = self._clock()
        async with atomic(self._store, "invitation.cancel") as txn:
            invitations = InvitationRepo(txn)
            await reverify_actor(OrgMembershipRepo(txn), ctx, Capability.INVITE_MEMBERS)
            invitation = await self._pending_invitation(invitations, ctx, invitation_id)
            canceled = invitation.canceled(now=now)
            await invitations.retire(canceled)

        INVITATION_TRANSITIONS.labels(transition="canceled").inc()
        audit.record(
            "invitation.cancel",
            audit.ALLOW,
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
            invitation_id=invitation_id,
        )
        return canceled

    async def _pending_invitation(
        self, invitations: InvitationRepo, ctx: OrgContext, invitation_id: str
    ) -> PendingInvitation:
        invitation = await invitations.get(ctx.organization_id, invitation_id)
        if invitation is None:
            raise InvitationNotFound(invitation_id=invitation_id)
        if invitation.status != InvitationStatus.PENDING:
            raise InvitationNotPending(
                invitation_id=invitation_id, status=invitation.status.value
            )
        return invitation

    # ------------------------------------------------------------------
    # Public token operations
    # ------------------------------------------------------------------

    @staticmethod
    def _usable(invitation: PendingInvitation | None, now: datetime) -> PendingInvitation:
        # canceled and already-accepted look exactly like an unknown token
        if invitation is None or invitation.status != InvitationStatus.PENDING:
            raise InvitationInvalid()
        if invitation.is_expired(now):
            raise InvitationExpired(expires_at=invitation.expires_at.isoformat())
        return invitation

    async def lookup(self, token: str) -> PendingInvitation:
        """Read-only resolution of a public invitation link."""
        now = self._clock()
        async with atomic(self._store, "invitation.lookup") as txn:
            invitation = await InvitationRepo(txn).get_by_token(token)
        return self._usable(invitation, now)

    async def accept(
        self, token: str, identity: Identity
    ) -> tuple[Organization, OrganizationMember]:
        now = self._clock()
        async with atomic(self._store, "invitation.accept") as txn:
            orgs = OrgRepo(txn)
            members = OrgMembershipRepo(txn)
            invitations = InvitationRepo(txn)

            invitation = self._usable(await invitations.get_by_token(token), now)
            if identity.email.strip().lower() != invitation.email:
                raise EmailMismatch()

            current_org_id = await orgs.organization_id_for_user(identity.user_id)
            if current_org_id is not None:
                raise AlreadyInOrganization(organization_id=current_org_id)

            org = await load_organization(orgs, invitation.organization_id)
            charged = seats.charge_seat(org).touched()

            member = OrganizationMember.new(
                organization_id=org.id,
                user_id=identity.user_id,
                email=identity.email,
                name=identity.display_name,
                role=invitation.role,
                invited_by_user_id=invitation.invited_by_user_id,
                invited_at=invitation.created_at,
                joined_at=now,
            )
            await members.add(member)
            orgs.link_user(identity.user_id, org.id)
            orgs.put(charged)
            await invitations.retire(invitation.accepted(user_id=identity.user_id, now=now))

        INVITATION_TRANSITIONS.labels(transition="accepted").inc()
        MEMBERSHIP_CHANGES.labels(change="joined").inc()
        audit.record(
            "invitation.accept",
            audit.ALLOW,
            user_id=identity.user_id,
            organization_id=org.id,
            invitation_id=invitation.id,
            role=member.role.value,
        )
        logger.info(
            "Invitation %s accepted: user=%s joined org=%s seats=%d/%d",
            invitation.id,
            identity.user_id,
            org.id,
            charged.current_seats,
            charged.max_seats,
        )
        await self._events.membership_changed(
            MEMBER_JOINED, member, actor_user_id=identity.user_id
        )
        return charged, member
