"""Access-control error taxonomy.

Every refusal is a distinct, named condition with a stable ``code`` so
callers can render specific guidance ("upgrade your plan", "sign in with
the invited address") instead of a generic bad request.  Extra context
(required roles, the invitation's expiry...) travels in ``context``.

Only ConcurrencyConflict is retryable; everything else is terminal for
the request.  HTTP status codes are assigned at the API edge
(api/errors.py), not here.
"""

from __future__ import annotations

from collections.abc import Iterable


class AccessControlError(Exception):
    code = "ACCESS_CONTROL_ERROR"
    default_message = "Access control error"
    retryable = False

    def __init__(self, message: str | None = None, **context: object) -> None:
        super().__init__(message or self.default_message)
        self.context = context


# --- authorization chain ----------------------------------------------------


class Unauthenticated(AccessControlError):
    code = "UNAUTHENTICATED"
    default_message = "Missing or invalid bearer credential"


class NoOrganization(AccessControlError):
    code = "NO_ORGANIZATION"
    default_message = "User is not associated with any organization"


class OrganizationNotFound(AccessControlError):
    code = "ORGANIZATION_NOT_FOUND"
    default_message = "Organization not found"


class NotAMember(AccessControlError):
    code = "NOT_A_MEMBER"
    default_message = "User is not a member of this organization"


class MemberNotActive(AccessControlError):
    code = "MEMBER_NOT_ACTIVE"
    default_message = "Membership is not active"


class InsufficientPermissions(AccessControlError):
    code = "INSUFFICIENT_PERMISSIONS"
    default_message = "Insufficient permissions"

    def __init__(self, *, required: Iterable[str], current: str) -> None:
        required_roles = sorted(str(r) for r in required)
        super().__init__(
            f"Requires one of: {', '.join(required_roles)}",
            required=required_roles,
            current=str(current),
        )


# --- seats ------------------------------------------------------------------


class SeatsExhausted(AccessControlError):
    code = "SEATS_EXHAUSTED"
    default_message = "No available seats; upgrade your plan to add team members"


class SeatAccountingError(AccessControlError):
    """Seat arithmetic would break the seat invariant: a data-integrity bug."""

    code = "SEAT_ACCOUNTING_ERROR"
    default_message = "Seat accounting is inconsistent"


# --- members ----------------------------------------------------------------


class MemberNotFound(AccessControlError):
    code = "MEMBER_NOT_FOUND"
    default_message = "Member not found"


class CannotModifyOwner(AccessControlError):
    code = "CANNOT_MODIFY_OWNER"
    default_message = "The organization owner cannot be modified or removed"


class SelfActionForbidden(AccessControlError):
    code = "SELF_ACTION_FORBIDDEN"
    default_message = "You cannot change or remove your own membership"


class InvalidRole(AccessControlError):
    code = "INVALID_ROLE"
    default_message = "Role must be admin or member"


class AlreadyInOrganization(AccessControlError):
    code = "ALREADY_IN_ORGANIZATION"
    default_message = "User already belongs to an organization"


class InvalidOrganizationName(AccessControlError):
    code = "INVALID_ORGANIZATION_NAME"
    default_message = "Organization name must be 2 to 100 characters"


# --- invitations ------------------------------------------------------------


class InvalidEmail(AccessControlError):
    code = "INVALID_EMAIL"
    default_message = "Invalid email address"


class EmailAlreadyMember(AccessControlError):
    code = "EMAIL_ALREADY_MEMBER"
    default_message = "This email is already a member of the organization"


class InvitationAlreadyPending(AccessControlError):
    code = "INVITATION_ALREADY_PENDING"
    default_message = "An invitation has already been sent to this email"


class InvitationNotFound(AccessControlError):
    code = "INVITATION_NOT_FOUND"
    default_message = "Invitation not found"


class InvitationNotPending(AccessControlError):
    code = "INVITATION_NOT_PENDING"
    default_message = "Invitation is no longer pending"


class InvitationInvalid(AccessControlError):
    """Unknown, canceled or already-used token.

    The caller cannot tell the three cases apart.
    """

    code = "INVITATION_INVALID"
    default_message = "Invalid invitation"


class InvitationExpired(AccessControlError):
    code = "INVITATION_EXPIRED"
    default_message = "This invitation has expired"


class EmailMismatch(AccessControlError):
    code = "EMAIL_MISMATCH"
    default_message = (
        "This invitation was sent to a different email address; "
        "sign out and sign in with the invited account"
    )


# --- concurrency ------------------------------------------------------------


class ConcurrencyConflict(AccessControlError):
    code = "CONFLICT"
    default_message = "The organization changed while processing the request; re-fetch and retry"
    retryable = True
