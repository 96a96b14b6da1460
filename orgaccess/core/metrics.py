"""Prometheus metric inventory for orgaccess.

All metrics are defined here and incremented at the point of action.

HTTP metrics are labelled with the ROUTE TEMPLATE
(``/v1/invitations/{token}``), never the raw path.  Invitation tokens
are secrets and unbounded in number; putting them in a label would both
leak them to anyone who can scrape /metrics and explode the series count.

Authorization metrics answer the questions the dashboards care about:
  - How many requests does each gate reject, and why?
        sum by (gate, outcome) (rate(authz_decisions_total[5m]))
  - Are invitations actually being accepted?
        rate(invitation_transitions_total{transition="accepted"}[1h])
  - Are concurrent writers colliding?
        rate(state_store_conflicts_total[5m])
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, route template, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------

AUTHZ_DECISIONS = Counter(
    "authz_decisions_total",
    "Authorization gate outcomes",
    ["gate", "outcome"],  # gate: identity|organization|role, outcome: allow|<error code>
)

INVITATION_TRANSITIONS = Counter(
    "invitation_transitions_total",
    "Invitation state machine transitions",
    ["transition"],  # created|resent|canceled|accepted
)

MEMBERSHIP_CHANGES = Counter(
    "membership_changes_total",
    "Membership mutations applied",
    ["change"],  # joined|role_changed|removed
)

STORE_CONFLICTS = Counter(
    "state_store_conflicts_total",
    "Optimistic transactions aborted because a watched key changed",
    ["operation"],
)

# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

EVENTS_PUBLISHED = Counter(
    "events_published_total",
    "Events handed to the event queue by result",
    ["queue", "result"],  # result: ok|failed
)

QUEUE_DEPTH = Gauge(
    "event_queue_depth",
    "Number of events waiting in a queue",
    ["queue_name"],  # "invitation_delivery", "membership_events"
)
