from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from uuid import uuid4


class Plan(StrEnum):
    SOLO = "solo"
    TEAM = "team"
    BUSINESS = "business"


# Seat capacity per plan, owner included.
SEAT_LIMITS: dict[Plan, int] = {
    Plan.SOLO: 1,
    Plan.TEAM: 3,
    Plan.BUSINESS: 6,
}


class MemberRole(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


# Roles that can be granted through an invitation or a role change.
ASSIGNABLE_ROLES: frozenset[MemberRole] = frozenset({MemberRole.ADMIN, MemberRole.MEMBER})


class MemberStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True, slots=True)
class OrganizationSettings:
    require_admin_approval_for_deletes: bool = False
    allow_members_to_invite: bool = False

    def to_record(self) -> dict:
        return {
            "require_admin_approval_for_deletes": self.require_admin_approval_for_deletes,
            "allow_members_to_invite": self.allow_members_to_invite,
        }

    @staticmethod
    def from_record(data: dict | None) -> OrganizationSettings:
        data = data or {}
        return OrganizationSettings(
            require_admin_approval_for_deletes=bool(
                data.get("require_admin_approval_for_deletes", False)
            ),
            allow_members_to_invite=bool(data.get("allow_members_to_invite", False)),
        )


@dataclass(frozen=True, slots=True)
class Organization:
    """A tenant.

    ``current_seats`` counts active memberships (owner included) and is
    only changed by the seat accountant.  The billing fields belong to an
    external billing system; they are carried through untouched.
    """

    id: str
    name: str
    owner_user_id: str
    plan: Plan
    max_seats: int
    current_seats: int
    created_at: datetime
    updated_at: datetime
    settings: OrganizationSettings = field(default_factory=OrganizationSettings)
    subscription_status: str | None = None
    current_period_end: str | None = None
    trial_end: str | None = None

    @staticmethod
    def new(*, name: str, owner_user_id: str, plan: Plan = Plan.SOLO) -> Organization:
        now = datetime.now(UTC)
        return Organization(
            id=str(uuid4()),
            name=name,
            owner_user_id=owner_user_id,
            plan=plan,
            max_seats=SEAT_LIMITS[plan],
            current_seats=1,
            created_at=now,
            updated_at=now,
        )

    def touched(self, **changes: object) -> Organization:
        return replace(self, updated_at=datetime.now(UTC), **changes)

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "owner_user_id": self.owner_user_id,
            "plan": self.plan.value,
            "max_seats": self.max_seats,
            "current_seats": self.current_seats,
            "settings": self.settings.to_record(),
            "created_at": _ts(self.created_at),
            "updated_at": _ts(self.updated_at),
            "subscription_status": self.subscription_status,
            "current_period_end": self.current_period_end,
            "trial_end": self.trial_end,
        }

    @staticmethod
    def from_record(data: dict) -> Organization:
        plan = Plan(data["plan"])
        return Organization(
            id=data["id"],
            name=data["name"],
            owner_user_id=data["owner_user_id"],
            plan=plan,
            max_seats=int(data.get("max_seats", SEAT_LIMITS[plan])),
            current_seats=int(data["current_seats"]),
            created_at=_parse_ts(data["created_at"]),  # type: ignore[arg-type]
            updated_at=_parse_ts(data["updated_at"]),  # type: ignore[arg-type]
            settings=OrganizationSettings.from_record(data.get("settings")),
            subscription_status=data.get("subscription_status"),
            current_period_end=data.get("current_period_end"),
            trial_end=data.get("trial_end"),
        )


@dataclass(frozen=True, slots=True)
class OrganizationMember:
    id: str
    organization_id: str
    user_id: str
    email: str
    name: str
    role: MemberRole
    status: MemberStatus
    invited_by_user_id: str
    invited_at: datetime
    joined_at: datetime | None = None
    last_active_at: datetime | None = None

    @staticmethod
    def new(
        *,
        organization_id: str,
        user_id: str,
        email: str,
        name: str,
        role: MemberRole,
        invited_by_user_id: str,
        invited_at: datetime | None = None,
        joined_at: datetime | None = None,
    ) -> OrganizationMember:
        now = joined_at or datetime.now(UTC)
        return OrganizationMember(
            id=str(uuid4()),
            organization_id=organization_id,
            user_id=user_id,
            email=email.lower(),
            name=name,
            role=role,
            status=MemberStatus.ACTIVE,
            invited_by_user_id=invited_by_user_id,
            invited_at=invited_at or now,
            joined_at=now,
            last_active_at=now,
        )

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE

    @property
    def is_owner(self) -> bool:
        return self.role == MemberRole.OWNER

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "status": self.status.value,
            "invited_by_user_id": self.invited_by_user_id,
            "invited_at": _ts(self.invited_at),
            "joined_at": _ts(self.joined_at),
            "last_active_at": _ts(self.last_active_at),
        }

    @staticmethod
    def from_record(data: dict) -> OrganizationMember:
        return OrganizationMember(
            id=data["id"],
            organization_id=data["organization_id"],
            user_id=data["user_id"],
            email=data["email"],
            name=data.get("name", ""),
            role=MemberRole(data["role"]),
            status=MemberStatus(data["status"]),
            invited_by_user_id=data["invited_by_user_id"],
            invited_at=_parse_ts(data["invited_at"]),  # type: ignore[arg-type]
            joined_at=_parse_ts(data.get("joined_at")),
            last_active_at=_parse_ts(data.get("last_active_at")),
        )
