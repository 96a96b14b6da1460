"""Composite key layout of the State Store."""

from __future__ import annotations


def organization(org_id: str) -> str:
    return f"organization:{org_id}"


def member(org_id: str, user_id: str) -> str:
    return f"organization:{org_id}:member:{user_id}"


def member_index(org_id: str) -> str:
    return f"organization:{org_id}:members"


def invitation(org_id: str, invitation_id: str) -> str:
    return f"organization:{org_id}:invitation:{invitation_id}"


def invitation_index(org_id: str) -> str:
    return f"organization:{org_id}:invitations"


def invitation_token(token: str) -> str:
    return f"invitation:{token}"


def user_organization(user_id: str) -> str:
    return f"user:{user_id}:organization"
