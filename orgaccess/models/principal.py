from __future__ import annotations

from dataclasses import dataclass

from orgaccess.models.organization import MemberRole, Organization, OrganizationMember


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated caller, as reported by the identity verifier.

    Produced by the first gate (require_identity) and passed explicitly to
    everything downstream.
    """

    user_id: str
    email: str
    name: str = ""

    @property
    def display_name(self) -> str:
        return self.name or self.email.split("@", 1)[0]


@dataclass(frozen=True, slots=True)
class OrgContext:
    """Request-scoped result of the organization gate.

    Carries the caller's identity together with the organization and the
    active membership that were resolved for this request.  Role gates and
    services take this struct as a parameter; nothing is stashed on the
    request object.
    """

    identity: Identity
    organization: Organization
    membership: OrganizationMember

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def organization_id(self) -> str:
        return self.organization.id

    @property
    def role(self) -> MemberRole:
        return self.membership.role
