"""Response and request bodies shared by the organization and invitation routers."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from orgaccess.models.invitation import PendingInvitation
from orgaccess.models.organization import Organization, OrganizationMember
from orgaccess.services import seats


class OrganizationSettingsOut(BaseModel):
    require_admin_approval_for_deletes: bool
    allow_members_to_invite: bool


class OrganizationOut(BaseModel):
    id: str
    name: str
    owner_user_id: str
    plan: str
    max_seats: int
    current_seats: int
    available_seats: int
    settings: OrganizationSettingsOut
    subscription_status: str | None
    created_at: datetime
    updated_at: datetime


class MemberOut(BaseModel):
    id: str
    user_id: str
    email: str
    name: str
    role: str
    status: str
    invited_by_user_id: str
    invited_at: datetime
    joined_at: datetime | None


class InvitationOut(BaseModel):
    id: str
    email: str
    role: str
    status: str
    invited_by_user_id: str
    invited_by_name: str
    created_at: datetime
    expires_at: datetime


def organization_out(org: Organization) -> OrganizationOut:
    return OrganizationOut(
        id=org.id,
        name=org.name,
        owner_user_id=org.owner_user_id,
        plan=org.plan.value,
        max_seats=org.max_seats,
        current_seats=org.current_seats,
        available_seats=seats.available_seats(org),
        settings=OrganizationSettingsOut(
            require_admin_approval_for_deletes=org.settings.require_admin_approval_for_deletes,
            allow_members_to_invite=org.settings.allow_members_to_invite,
        ),
        subscription_status=org.subscription_status,
        created_at=org.created_at,
        updated_at=org.updated_at,
    )


def member_out(member: OrganizationMember) -> MemberOut:
    return MemberOut(
        id=member.id,
        user_id=member.user_id,
        email=member.email,
        name=member.name,
        role=member.role.value,
        status=member.status.value,
        invited_by_user_id=member.invited_by_user_id,
        invited_at=member.invited_at,
        joined_at=member.joined_at,
    )


def invitation_out(invitation: PendingInvitation, now: datetime) -> InvitationOut:
    return InvitationOut(
        id=invitation.id,
        email=invitation.email,
        role=invitation.role.value,
        status=invitation.effective_status(now).value,
        invited_by_user_id=invitation.invited_by_user_id,
        invited_by_name=invitation.invited_by_name,
        created_at=invitation.created_at,
        expires_at=invitation.expires_at,
    )
