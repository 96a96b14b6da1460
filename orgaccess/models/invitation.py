from __future__ import annotations

import secrets
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from uuid import uuid4

from orgaccess.models.organization import ASSIGNABLE_ROLES, MemberRole

DEFAULT_INVITATION_TTL = timedelta(days=7)


class InvitationStatus(StrEnum):
    PENDING = "pending"  # awaiting a response
    ACCEPTED = "accepted"  # membership created
    CANCELED = "canceled"  # withdrawn by an inviter, terminal
    EXPIRED = "expired"  # derived from expires_at, never stored


def new_invitation_token() -> str:
    """Unguessable public capability embedded in the invitation link."""
    return secrets.token_urlsafe(32)


@dataclass(frozen=True, slots=True)
class PendingInvitation:
    id: str
    token: str
    organization_id: str
    organization_name: str
    email: str
    role: MemberRole
    invited_by_user_id: str
    invited_by_name: str
    status: InvitationStatus
    created_at: datetime
    expires_at: datetime
    accepted_at: datetime | None = None
    accepted_by_user_id: str | None = None
    canceled_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.role not in ASSIGNABLE_ROLES:
            raise ValueError(f"invitation role must be admin|member (got {self.role!r})")
        if self.status == InvitationStatus.EXPIRED:
            raise ValueError("expired is derived from expires_at and never stored")
        if self.status == InvitationStatus.ACCEPTED and (
            self.accepted_at is None or self.accepted_by_user_id is None
        ):
            raise ValueError("accepted invitation must record who accepted it and when")
        if self.status == InvitationStatus.CANCELED and self.canceled_at is None:
            raise ValueError("canceled invitation must record when it was canceled")

    @staticmethod
    def new(
        *,
        organization_id: str,
        organization_name: str,
        email: str,
        role: MemberRole,
        invited_by_user_id: str,
        invited_by_name: str,
        now: datetime | None = None,
        ttl: timedelta = DEFAULT_INVITATION_TTL,
    ) -> PendingInvitation:
        created = now or datetime.now(UTC)
        return PendingInvitation(
            id=str(uuid4()),
            token=new_invitation_token(),
            organization_id=organization_id,
            organization_name=organization_name,
            email=email.lower(),
            role=role,
            invited_by_user_id=invited_by_user_id,
            invited_by_name=invited_by_name,
            status=InvitationStatus.PENDING,
            created_at=created,
            expires_at=created + ttl,
        )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def effective_status(self, now: datetime) -> InvitationStatus:
        if self.status == InvitationStatus.PENDING and self.is_expired(now):
            return InvitationStatus.EXPIRED
        return self.status

    def is_outstanding(self, now: datetime) -> bool:
        """Pending and not yet expired: the invitation still holds a seat."""
        return self.effective_status(now) == InvitationStatus.PENDING

    def accepted(self, *, user_id: str, now: datetime) -> PendingInvitation:
        return replace(
            self,
            status=InvitationStatus.ACCEPTED,
            accepted_at=now,
            accepted_by_user_id=user_id,
        )

    def canceled(self, *, now: datetime) -> PendingInvitation:
        return replace(self, status=InvitationStatus.CANCELED, canceled_at=now)

    def refreshed(
        self, *, now: datetime, ttl: timedelta = DEFAULT_INVITATION_TTL
    ) -> PendingInvitation:
        # token stays the same so links already sent keep working
        return replace(self, expires_at=now + ttl)

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "token": self.token,
            "organization_id": self.organization_id,
            "organization_name": self.organization_name,
            "email": self.email,
            "role": self.role.value,
            "invited_by_user_id": self.invited_by_user_id,
            "invited_by_name": self.invited_by_name,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "accepted_at": self.accepted_at.isoformat() if self.accepted_at else None,
            "accepted_by_user_id": self.accepted_by_user_id,
            "canceled_at": self.canceled_at.isoformat() if self.canceled_at else None,
        }

    @staticmethod
    def from_record(data: dict) -> PendingInvitation:
        accepted_at = data.get("accepted_at")
        canceled_at = data.get("canceled_at")
        return PendingInvitation(
            id=data["id"],
            token=data["token"],
            organization_id=data["organization_id"],
            organization_name=data.get("organization_name", ""),
            email=data["email"],
            role=MemberRole(data["role"]),
            invited_by_user_id=data["invited_by_user_id"],
            invited_by_name=data.get("invited_by_name", ""),
            status=InvitationStatus(data["status"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            accepted_at=datetime.fromisoformat(accepted_at) if accepted_at else None,
            accepted_by_user_id=data.get("accepted_by_user_id"),
            canceled_at=datetime.fromisoformat(canceled_at) if canceled_at else None,
        )
