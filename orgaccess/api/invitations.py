"""Invitation endpoints.

Two routers:

  router          /v1/organization/invitations, for inviters behind the
                  full authorization chain (owner/admin).
  public_router   /v1/invitations/{token}, the public link.  Lookup needs
                  no credential; accept needs only an identity (the caller
                  has no organization yet).
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from orgaccess.api.dependencies import require_capability, require_identity
from orgaccess.api.errors import http_error
from orgaccess.api.organization import event_publisher
from orgaccess.api.schemas import (
    InvitationOut,
    MemberOut,
    OrganizationOut,
    invitation_out,
    member_out,
    organization_out,
)
from orgaccess.core.config import SETTINGS
from orgaccess.models.invitation import PendingInvitation
from orgaccess.models.principal import Identity, OrgContext
from orgaccess.repos.state_store import state_store
from orgaccess.services.errors import AccessControlError
from orgaccess.services.invitation_service import InvitationService
from orgaccess.services.permissions import Capability
from orgaccess.services.transactions import utcnow

router = APIRouter(prefix="/v1/organization/invitations", tags=["invitations"])
public_router = APIRouter(prefix="/v1/invitations", tags=["invitations"])

invitation_service = InvitationService(
    state_store,
    event_publisher,
    app_url=SETTINGS.app_url,
    ttl=timedelta(days=SETTINGS.invitation_ttl_days),
    reserve_seats_for_pending=SETTINGS.reserve_seats_for_pending,
)

_require_inviter = require_capability(Capability.INVITE_MEMBERS, state_store)


# --- Pydantic schemas ---


class InvitationCreateIn(BaseModel):
    email: str
    role: str = "member"


class InvitationLinkOut(InvitationOut):
    invitation_url: str


class InvitationPreviewOut(BaseModel):
    organization_name: str
    invited_by_name: str
    email: str
    role: str
    expires_at: datetime


class InvitationAcceptOut(BaseModel):
    organization: OrganizationOut
    membership: MemberOut


def _link_out(invitation: PendingInvitation) -> InvitationLinkOut:
    return InvitationLinkOut(
        **invitation_out(invitation, utcnow()).model_dump(),
        invitation_url=invitation_service.invitation_url(invitation.token),
    )


# --- Inviter endpoints ---


@router.post("", response_model=InvitationLinkOut, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    body: InvitationCreateIn,
    ctx: Annotated[OrgContext, Depends(_require_inviter)],
) -> InvitationLinkOut:
    try:
        invitation = await invitation_service.invite(ctx, body.email, body.role)
    except AccessControlError as e:
        raise http_error(
            e,
            action="invitation.create",
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
        ) from None
    return _link_out(invitation)


@router.post("/{invitation_id}/resend", response_model=InvitationLinkOut)
async def resend_invitation(
    invitation_id: str,
    ctx: Annotated[OrgContext, Depends(_require_inviter)],
) -> InvitationLinkOut:
    try:
        invitation = await invitation_service.resend(ctx, invitation_id)
    except AccessControlError as e:
        raise http_error(
            e,
            action="invitation.resend",
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
        ) from None
    return _link_out(invitation)


@router.delete("/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_invitation(
    invitation_id: str,
    ctx: Annotated[OrgContext, Depends(_require_inviter)],
) -> Response:
    try:
        await invitation_service.cancel(ctx, invitation_id)
    except AccessControlError as e:
        raise http_error(
            e,
            action="invitation.cancel",
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
        ) from None
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Public link ---


@public_router.get("/{token}", response_model=InvitationPreviewOut)
async def lookup_invitation(token: str) -> InvitationPreviewOut:
    """Public, read-only view of an invitation."""
    try:
        invitation = await invitation_service.lookup(token)
    except AccessControlError as e:
        raise http_error(e, action="invitation.lookup") from None
    return InvitationPreviewOut(
        organization_name=invitation.organization_name,
        invited_by_name=invitation.invited_by_name,
        email=invitation.email,
        role=invitation.role.value,
        expires_at=invitation.expires_at,
    )


@public_router.post("/{token}/accept", response_model=InvitationAcceptOut)
async def accept_invitation(
    token: str,
    identity: Annotated[Identity, Depends(require_identity)],
) -> InvitationAcceptOut:
    try:
        org, member = await invitation_service.accept(token, identity)
    except AccessControlError as e:
        raise http_error(e, action="invitation.accept", user_id=identity.user_id) from None
    return InvitationAcceptOut(
        organization=organization_out(org),
        membership=member_out(member),
    )
