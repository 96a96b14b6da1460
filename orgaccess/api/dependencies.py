"""Authorization chain, expressed as FastAPI dependencies.

Three gates, each short-circuiting on failure:

  1. require_identity         bearer credential → Identity
  2. resolve_membership(...)  Identity → OrgContext (organization + active membership)
  3. require_org_role(...)    OrgContext → OrgContext, if the role is allowed

Each gate receives the previous gate's result as a typed parameter and
returns its own; nothing is attached to the request object.  Endpoints
declare the last gate they need:

    _require_inviter = require_capability(Capability.INVITE_MEMBERS, state_store)

    @router.post("/invitations")
    async def invite(ctx: Annotated[OrgContext, Depends(_require_inviter)]): ...

Every denial is audited (core/audit.py) and counted in AUTHZ_DECISIONS.
"""

# Annotations stay eager: _guard depends on a closure variable, which a
# string annotation could not resolve.
import logging
from collections.abc import Iterable
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from orgaccess.api.errors import http_error
from orgaccess.core.metrics import AUTHZ_DECISIONS
from orgaccess.models.organization import MemberRole
from orgaccess.models.principal import Identity, OrgContext
from orgaccess.repos.org_membership_repo import OrgMembershipRepo
from orgaccess.repos.org_repo import OrgRepo
from orgaccess.repos.state_store import StateStore
from orgaccess.services.errors import (
    AccessControlError,
    InsufficientPermissions,
    MemberNotActive,
    NoOrganization,
    NotAMember,
    Unauthenticated,
)
from orgaccess.services.identity import identity_verifier
from orgaccess.services.organization_service import load_organization
from orgaccess.services.permissions import Capability, roles_with
from orgaccess.services.transactions import atomic

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Gate 1: identity
# ---------------------------------------------------------------------------


def require_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Identity:
    """Validate the bearer credential with the identity verifier."""
    try:
        if credentials is None:
            raise Unauthenticated("Missing bearer credential")
        identity = identity_verifier.verify(credentials.credentials)
    except Unauthenticated as e:
        AUTHZ_DECISIONS.labels(gate="identity", outcome=e.code).inc()
        raise http_error(e, action="gate.identity") from None

    AUTHZ_DECISIONS.labels(gate="identity", outcome="allow").inc()
    logger.debug("Token validated for user=%s", identity.user_id)
    return identity


# ---------------------------------------------------------------------------
# Gate 2: organization membership
# ---------------------------------------------------------------------------


async def load_org_context(store: StateStore, identity: Identity) -> OrgContext:
    """Resolve the caller's organization and active membership.

    Raises NoOrganization, OrganizationNotFound, NotAMember or
    MemberNotActive, in that order of checking.
    """
    async with atomic(store, "gate.organization") as txn:
        orgs = OrgRepo(txn)
        org_id = await orgs.organization_id_for_user(identity.user_id)
        if org_id is None:
            raise NoOrganization()
        org = await load_organization(orgs, org_id)
        membership = await OrgMembershipRepo(txn).get(org_id, identity.user_id)

    if membership is None:
        raise NotAMember(organization_id=org_id)
    if not membership.is_active:
        raise MemberNotActive(organization_id=org_id, status=membership.status.value)
    return OrgContext(identity=identity, organization=org, membership=membership)


def resolve_membership(store: StateStore):
    """Dependency factory: Identity → OrgContext backed by ``store``."""

    async def _resolve(
        identity: Annotated[Identity, Depends(require_identity)],
    ) -> OrgContext:
        try:
            ctx = await load_org_context(store, identity)
        except AccessControlError as e:
            org_id = e.context.get("organization_id")
            logger.warning(
                "Access denied: user=%s code=%s org=%s", identity.user_id, e.code, org_id
            )
            AUTHZ_DECISIONS.labels(gate="organization", outcome=e.code).inc()
            raise http_error(
                e,
                action="gate.organization",
                user_id=identity.user_id,
                organization_id=str(org_id) if org_id else None,
            ) from None

        AUTHZ_DECISIONS.labels(gate="organization", outcome="allow").inc()
        return ctx

    return _resolve


# ---------------------------------------------------------------------------
# Gate 3: role
# ---------------------------------------------------------------------------


def require_org_role(roles: Iterable[MemberRole], store: StateStore, *, action: str):
    """Dependency factory: demand one of ``roles`` in the caller's organization.

    Usage::

        _require_owner = require_org_role({MemberRole.OWNER}, state_store, action="billing")
    """
    allowed = frozenset(roles)
    _resolve = resolve_membership(store)

    def _guard(ctx: Annotated[OrgContext, Depends(_resolve)]) -> OrgContext:
        if ctx.role not in allowed:
            logger.warning(
                "Access denied: user=%s org_role=%s required_any=%s org=%s",
                ctx.user_id,
                ctx.role,
                sorted(allowed),
                ctx.organization_id,
            )
            AUTHZ_DECISIONS.labels(gate="role", outcome=InsufficientPermissions.code).inc()
            raise http_error(
                InsufficientPermissions(required=allowed, current=ctx.role),
                action=action,
                user_id=ctx.user_id,
                organization_id=ctx.organization_id,
            )
        AUTHZ_DECISIONS.labels(gate="role", outcome="allow").inc()
        return ctx

    return _guard


def require_capability(capability: Capability, store: StateStore):
    """Role gate whose allow-list comes from the permission matrix."""
    return require_org_role(roles_with(capability), store, action=capability.value)
