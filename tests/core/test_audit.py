from __future__ import annotations

import logging

import pytest

from orgaccess.core import audit


def test_allow_is_info(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="orgaccess.audit"):
        audit.record(
            "invitation.create",
            audit.ALLOW,
            user_id="owner-1",
            organization_id="org-1",
            invitation_id="inv-1",
        )

    [record] = caplog.records
    assert record.levelno == logging.INFO
    assert record.action == "invitation.create"
    assert record.outcome == "allow"
    assert record.user_id == "owner-1"
    assert record.organization_id == "org-1"
    assert record.details == {"invitation_id": "inv-1"}
    assert record.occurred_at.endswith("+00:00")
    assert "invitation_id=inv-1" in record.getMessage()


def test_deny_is_warning(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="orgaccess.audit"):
        audit.record("gate.identity", audit.DENY, user_id=None, code="UNAUTHENTICATED")

    [record] = caplog.records
    assert record.levelno == logging.WARNING
    assert record.user_id is None
    assert "user=- org=-" in record.getMessage()


def test_record_without_details(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="orgaccess.audit"):
        audit.record("organization.update", audit.ALLOW, user_id="owner-1")
    assert caplog.records[0].details is None
