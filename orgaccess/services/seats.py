"""Seat accountant: pure seat arithmetic, no I/O.

A seat is one unit of ``max_seats`` capacity held by exactly one active
membership.  ``current_seats`` only ever moves through charge_seat()
and release_seat(), inside the same transaction as the membership change
that justifies it.

Pending invitations can optionally reserve a seat each (the default, see
RESERVE_SEATS_FOR_PENDING).  Either way the seat is checked again when an
invitation is accepted, so over-invitation can never push
``current_seats`` past ``max_seats``.
"""

from __future__ import annotations

from dataclasses import replace

from orgaccess.models.organization import Organization, OrganizationMember
from orgaccess.services.errors import (
    CannotModifyOwner,
    SeatAccountingError,
    SeatsExhausted,
)


def available_seats(org: Organization) -> int:
    return org.max_seats - org.current_seats


def can_invite(org: Organization, pending_invitations: int = 0) -> None:
    """Raise SeatsExhausted unless one more invitation fits.

    ``pending_invitations`` is the number of outstanding invitations that
    hold a reservation; pass 0 when reservations are disabled.
    """
    available = available_seats(org)
    if available - pending_invitations <= 0:
        raise SeatsExhausted(
            max_seats=org.max_seats,
            used_seats=org.current_seats,
            available_seats=available,
            pending_invitations=pending_invitations,
        )


def charge_seat(org: Organization) -> Organization:
    if org.current_seats + 1 > org.max_seats:
        raise SeatsExhausted(
            max_seats=org.max_seats,
            used_seats=org.current_seats,
            available_seats=available_seats(org),
        )
    return replace(org, current_seats=org.current_seats + 1)


def can_remove(member: OrganizationMember) -> None:
    if member.is_owner:
        raise CannotModifyOwner()


def release_seat(org: Organization, member: OrganizationMember) -> Organization:
    """Return ``org`` with the seat held by ``member`` released.

    Only active members hold a seat.  The owner's seat is never released,
    so the count can never fall below one.
    """
    can_remove(member)
    if not member.is_active:
        return org
    if org.current_seats - 1 < 1:
        raise SeatAccountingError(
            organization_id=org.id,
            current_seats=org.current_seats,
        )
    return replace(org, current_seats=org.current_seats - 1)
