"""Organization endpoints: bootstrap, settings, permissions and team management.

The caller's organization is implied by their identity (one user belongs
to at most one organization), so no org id appears in these paths.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from orgaccess.api.dependencies import (
    require_capability,
    require_identity,
    resolve_membership,
)
from orgaccess.api.errors import http_error
from orgaccess.api.schemas import (
    InvitationOut,
    MemberOut,
    OrganizationOut,
    invitation_out,
    member_out,
    organization_out,
)
from orgaccess.core.config import SETTINGS
from orgaccess.models.organization import Plan
from orgaccess.models.principal import Identity, OrgContext
from orgaccess.repos.state_store import state_store
from orgaccess.services.errors import AccessControlError
from orgaccess.services.event_queue import event_queue
from orgaccess.services.events import EventPublisher
from orgaccess.services.organization_service import OrganizationService
from orgaccess.services.permissions import Capability, capabilities_for, describe_role

router = APIRouter(prefix="/v1/organization", tags=["organization"])

# --- Module-level service singletons ---
event_publisher = EventPublisher(event_queue)
organization_service = OrganizationService(
    state_store,
    event_publisher,
    default_plan=Plan(SETTINGS.default_plan),
)

# --- Dependency instances wired to the store ---
_member_context = resolve_membership(state_store)
_require_settings_editor = require_capability(
    Capability.EDIT_ORGANIZATION_SETTINGS, state_store
)
_require_member_viewer = require_capability(Capability.VIEW_MEMBERS, state_store)
_require_role_manager = require_capability(Capability.CHANGE_MEMBER_ROLES, state_store)
_require_member_remover = require_capability(Capability.REMOVE_MEMBERS, state_store)


# --- Pydantic schemas ---


class OrganizationBootstrapIn(BaseModel):
    name: str | None = None


class OrganizationContextOut(BaseModel):
    organization: OrganizationOut
    membership: MemberOut


class OrganizationBootstrapOut(OrganizationContextOut):
    created: bool


class OrganizationSettingsPatch(BaseModel):
    require_admin_approval_for_deletes: bool | None = None
    allow_members_to_invite: bool | None = None


class OrganizationUpdateIn(BaseModel):
    name: str | None = None
    settings: OrganizationSettingsPatch | None = None


class PermissionsOut(BaseModel):
    role: str
    plan: str
    description: str
    capabilities: list[str]


class SeatsInfoOut(BaseModel):
    max_seats: int
    used_seats: int
    available_seats: int
    pending_invitations: int


class TeamOut(BaseModel):
    members: list[MemberOut]
    pending_invitations: list[InvitationOut]
    seats_info: SeatsInfoOut


class RoleChangeIn(BaseModel):
    role: str


# --- Endpoints ---


@router.post("", response_model=OrganizationBootstrapOut)
async def bootstrap_organization(
    response: Response,
    identity: Annotated[Identity, Depends(require_identity)],
    body: OrganizationBootstrapIn | None = None,
) -> OrganizationBootstrapOut:
    """Create the caller's organization, or return the one they already have."""
    try:
        org, membership, created = await organization_service.bootstrap(
            identity, name=body.name if body else None
        )
    except AccessControlError as e:
        raise http_error(e, action="organization.create", user_id=identity.user_id) from None

    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return OrganizationBootstrapOut(
        organization=organization_out(org),
        membership=member_out(membership),
        created=created,
    )


@router.get("", response_model=OrganizationContextOut)
async def get_organization(
    ctx: Annotated[OrgContext, Depends(_member_context)],
) -> OrganizationContextOut:
    return OrganizationContextOut(
        organization=organization_out(ctx.organization),
        membership=member_out(ctx.membership),
    )


@router.patch("", response_model=OrganizationOut)
async def update_organization(
    body: OrganizationUpdateIn,
    ctx: Annotated[OrgContext, Depends(_require_settings_editor)],
) -> OrganizationOut:
    patch = body.settings or OrganizationSettingsPatch()
    try:
        org = await organization_service.update(
            ctx,
            name=body.name,
            require_admin_approval_for_deletes=patch.require_admin_approval_for_deletes,
            allow_members_to_invite=patch.allow_members_to_invite,
        )
    except AccessControlError as e:
        raise http_error(
            e,
            action="organization.update",
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
        ) from None
    return organization_out(org)


@router.get("/permissions", response_model=PermissionsOut)
async def get_permissions(
    ctx: Annotated[OrgContext, Depends(_member_context)],
) -> PermissionsOut:
    """Capabilities of the caller's role on the organization's current plan."""
    caps = capabilities_for(ctx.role, ctx.organization.plan)
    return PermissionsOut(
        role=ctx.role.value,
        plan=ctx.organization.plan.value,
        description=describe_role(ctx.role),
        capabilities=sorted(c.value for c in caps),
    )


@router.get("/members", response_model=TeamOut)
async def list_members(
    ctx: Annotated[OrgContext, Depends(_require_member_viewer)],
) -> TeamOut:
    try:
        overview = await organization_service.team_overview(ctx)
    except AccessControlError as e:
        raise http_error(e) from None

    return TeamOut(
        members=[member_out(m) for m in overview.members],
        pending_invitations=[
            invitation_out(i, overview.as_of) for i in overview.pending_invitations
        ],
        seats_info=SeatsInfoOut(
            max_seats=overview.seats.max_seats,
            used_seats=overview.seats.used_seats,
            available_seats=overview.seats.available_seats,
            pending_invitations=overview.seats.pending_invitations,
        ),
    )


@router.patch("/members/{user_id}", response_model=MemberOut)
async def change_member_role(
    user_id: str,
    body: RoleChangeIn,
    ctx: Annotated[OrgContext, Depends(_require_role_manager)],
) -> MemberOut:
    try:
        member = await organization_service.change_role(ctx, user_id, body.role)
    except AccessControlError as e:
        raise http_error(
            e,
            action="member.change_role",
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
        ) from None
    return member_out(member)


@router.delete("/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    user_id: str,
    ctx: Annotated[OrgContext, Depends(_require_member_remover)],
) -> Response:
    try:
        await organization_service.remove_member(ctx, user_id)
    except AccessControlError as e:
        raise http_error(
            e,
            action="member.remove",
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
        ) from None
    return Response(status_code=status.HTTP_204_NO_CONTENT)
