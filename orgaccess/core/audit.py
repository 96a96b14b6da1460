"""Structured audit trail for access-control decisions.

Every denial from the authorization chain and every sensitive allow
(invite, resend, cancel, accept, role change, removal, settings update)
goes through ``record()``.  The record carries who did what to which
organization and when, as structured ``extra`` fields that the JSON
formatter promotes to top-level keys.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

audit_logger = logging.getLogger("orgaccess.audit")

ALLOW = "allow"
DENY = "deny"


def record(
    action: str,
    outcome: str,
    *,
    user_id: str | None,
    organization_id: str | None = None,
    **details: object,
) -> None:
    """Emit one audit record.

    Denials are logged at WARNING, allows at INFO.
    """
    level = logging.WARNING if outcome == DENY else logging.INFO
    audit_logger.log(
        level,
        "audit action=%s outcome=%s user=%s org=%s %s",
        action,
        outcome,
        user_id or "-",
        organization_id or "-",
        " ".join(f"{k}={v}" for k, v in sorted(details.items())),
        extra={
            "action": action,
            "outcome": outcome,
            "user_id": user_id,
            "organization_id": organization_id,
            "occurred_at": datetime.now(UTC).isoformat(),
            "details": details or None,
        },
    )
