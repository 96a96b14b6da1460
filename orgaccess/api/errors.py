"""Domain error → HTTPException conversion at the API edge.

Endpoints catch AccessControlError and re-raise through http_error():

    try:
        member = await organization_service.remove_member(ctx, user_id)
    except AccessControlError as e:
        raise http_error(e, action="member.remove", user_id=..., ...) from None

The response body is always ``{"detail": {"code", "message", ...context}}``
so clients switch on ``code`` rather than on status or message text.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from orgaccess.core import audit
from orgaccess.services import errors

_STATUS_BY_ERROR: dict[type[errors.AccessControlError], int] = {
    errors.Unauthenticated: status.HTTP_401_UNAUTHORIZED,
    errors.NoOrganization: status.HTTP_404_NOT_FOUND,
    errors.OrganizationNotFound: status.HTTP_404_NOT_FOUND,
    errors.NotAMember: status.HTTP_403_FORBIDDEN,
    errors.MemberNotActive: status.HTTP_403_FORBIDDEN,
    errors.InsufficientPermissions: status.HTTP_403_FORBIDDEN,
    errors.SeatsExhausted: status.HTTP_409_CONFLICT,
    errors.SeatAccountingError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    errors.MemberNotFound: status.HTTP_404_NOT_FOUND,
    errors.CannotModifyOwner: status.HTTP_403_FORBIDDEN,
    errors.SelfActionForbidden: status.HTTP_403_FORBIDDEN,
    errors.InvalidRole: 422,
    errors.AlreadyInOrganization: status.HTTP_409_CONFLICT,
    errors.InvalidOrganizationName: 422,
    errors.InvalidEmail: 422,
    errors.EmailAlreadyMember: status.HTTP_409_CONFLICT,
    errors.InvitationAlreadyPending: status.HTTP_409_CONFLICT,
    errors.InvitationNotFound: status.HTTP_404_NOT_FOUND,
    errors.InvitationNotPending: status.HTTP_409_CONFLICT,
    errors.InvitationInvalid: status.HTTP_404_NOT_FOUND,
    errors.InvitationExpired: status.HTTP_410_GONE,
    errors.EmailMismatch: status.HTTP_403_FORBIDDEN,
    errors.ConcurrencyConflict: status.HTTP_409_CONFLICT,
}


def status_for(err: errors.AccessControlError) -> int:
    for cls in type(err).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]  # type: ignore[index]
    return status.HTTP_400_BAD_REQUEST


def http_error(
    err: errors.AccessControlError,
    *,
    action: str | None = None,
    user_id: str | None = None,
    organization_id: str | None = None,
) -> HTTPException:
    """Build the HTTPException for ``err``; audit it as a denial when ``action`` is set."""
    if action is not None:
        audit.record(
            action,
            audit.DENY,
            user_id=user_id,
            organization_id=organization_id,
            code=err.code,
        )

    detail: dict[str, object] = {"code": err.code, "message": str(err), **err.context}
    if err.retryable:
        detail["retryable"] = True

    headers = None
    if isinstance(err, errors.Unauthenticated):
        headers = {"WWW-Authenticate": "Bearer"}

    return HTTPException(status_code=status_for(err), detail=detail, headers=headers)
