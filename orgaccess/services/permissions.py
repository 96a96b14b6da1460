"""Permission matrix: role → capability set.

Roles are fixed and permissions are hard-coded per role.  The matrix is
the single source for both the UI capability listing and the server-side
role gates (roles_with() builds a gate's allow-list from a capability).
"""

from __future__ import annotations

from enum import StrEnum

from orgaccess.models.organization import MemberRole, OrganizationMember, Plan
from orgaccess.services.errors import CannotModifyOwner, SelfActionForbidden


class Capability(StrEnum):
    VIEW_ORGANIZATION = "view_organization"
    VIEW_MEMBERS = "view_members"
    EDIT_ORGANIZATION_SETTINGS = "edit_organization_settings"
    INVITE_MEMBERS = "invite_members"
    CHANGE_MEMBER_ROLES = "change_member_roles"
    REMOVE_MEMBERS = "remove_members"
    MANAGE_BILLING = "manage_billing"
    CREATE_RECORDS = "create_records"
    EDIT_RECORDS = "edit_records"
    DELETE_RECORDS = "delete_records"
    RECORD_PAYMENTS = "record_payments"
    VOID_INVOICES = "void_invoices"


_ADMIN = frozenset(
    {
        Capability.VIEW_ORGANIZATION,
        Capability.VIEW_MEMBERS,
        Capability.INVITE_MEMBERS,
        Capability.CHANGE_MEMBER_ROLES,
        Capability.REMOVE_MEMBERS,
        Capability.CREATE_RECORDS,
        Capability.EDIT_RECORDS,
        Capability.DELETE_RECORDS,
        Capability.RECORD_PAYMENTS,
    }
)

_MATRIX: dict[MemberRole, frozenset[Capability]] = {
    MemberRole.OWNER: frozenset(Capability),
    MemberRole.ADMIN: _ADMIN,
    MemberRole.MEMBER: frozenset(
        {
            Capability.VIEW_ORGANIZATION,
            Capability.VIEW_MEMBERS,
            Capability.CREATE_RECORDS,
            Capability.EDIT_RECORDS,
        }
    ),
}

# Forced off on a solo plan: with one seat there is no team to manage.
TEAM_MANAGEMENT = frozenset(
    {
        Capability.INVITE_MEMBERS,
        Capability.VIEW_MEMBERS,
        Capability.CHANGE_MEMBER_ROLES,
        Capability.REMOVE_MEMBERS,
    }
)

_ROLE_DESCRIPTIONS: dict[MemberRole, str] = {
    MemberRole.OWNER: "Full access, including billing and organization settings",
    MemberRole.ADMIN: "Manage the team and all records, except billing and settings",
    MemberRole.MEMBER: "Create and edit records",
}


def capabilities_for(role: MemberRole, plan: Plan | None = None) -> frozenset[Capability]:
    caps = _MATRIX[role]
    if plan == Plan.SOLO:
        caps = caps - TEAM_MANAGEMENT
    return caps


def can(role: MemberRole, capability: Capability, plan: Plan | None = None) -> bool:
    return capability in capabilities_for(role, plan)


def roles_with(capability: Capability) -> frozenset[MemberRole]:
    """Allow-list of roles for a role gate guarding ``capability``."""
    return frozenset(role for role, caps in _MATRIX.items() if capability in caps)


def describe_role(role: MemberRole) -> str:
    return _ROLE_DESCRIPTIONS[role]


def check_member_target(actor_user_id: str, target: OrganizationMember) -> None:
    """Team-management actions never touch the owner, nor the actor themself.

    The owner check comes first: it holds whatever the caller's role.
    """
    if target.is_owner:
        raise CannotModifyOwner(target_user_id=target.user_id)
    if target.user_id == actor_user_id:
        raise SelfActionForbidden(target_user_id=target.user_id)
