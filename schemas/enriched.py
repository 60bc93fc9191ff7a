"""Enriched record schemas.

Enriched records are raw records plus the display attributes of everything
they reference. They are built fresh for every request by the join layer and
frozen after construction; attaching data later (alert previews) goes
through model_copy(update=...), never through mutation.

Display fields default to "" so an unresolved reference reads as blank while
its raw identifier is still present.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict

from schemas.records import AlertPreview


class _Enriched(BaseModel):
    model_config = ConfigDict(frozen=True)


class EnrichedResponder(_Enriched):
    person_id: int
    person_name: str = ""
    email: str = ""
    assigned_at: int = 0
    acknowledged_at: int = 0


class EnrichedIncident(_Enriched):
    """An incident with channel, creator, closer and responder names filled in.

    Attributes:
        channel_name: Resolved from channel_id, "" if unresolved.
        creator_name, creator_email: Resolved from creator_id.
        closer_name: Resolved from closer_id.
        responders: Raw responders rebuilt in order with names and emails.
        alerts_preview: First page of alerts; only set when alerts were
            requested by the query.
        alerts_total: Total alert count reported by the alert list endpoint.
        custom_fields: Custom field values, carried through verbatim.
    """

    incident_id: str
    title: str = ""
    description: str = ""
    severity: str = ""
    progress: str = ""
    start_time: int = 0
    ack_time: int = 0
    close_time: int = 0
    channel_id: int = 0
    channel_name: str = ""
    creator_id: int = 0
    creator_name: str = ""
    creator_email: str = ""
    closer_id: int = 0
    closer_name: str = ""
    responders: list[EnrichedResponder] = []
    alerts_preview: list[AlertPreview] = []
    alerts_total: int = 0
    labels: dict[str, str] = {}
    custom_fields: dict[str, Any] = {}


class TimelineEvent(_Enriched):
    """One incident feed entry with its operator and detail resolved.

    detail is the transformed payload: for person-bearing event types the
    bare ids are replaced by {"person_id", "person_name"} entries, for every
    other type it is a shallow copy of the raw payload.
    """

    type: str
    timestamp: int = 0
    operator_id: int = 0
    operator_name: str = ""
    detail: dict[str, Any] | None = None


class IncidentTimeline(_Enriched):
    incident_id: str
    timeline: list[TimelineEvent] = []
    total: int = 0


class IncidentAlerts(_Enriched):
    incident_id: str
    alerts: list[AlertPreview] = []
    total: int = 0


# ── Escalation rules ─────────────────────────────────────────────────────────

class PersonTarget(_Enriched):
    person_id: int
    person_name: str = ""
    email: str = ""


class TeamTarget(_Enriched):
    team_id: int
    team_name: str = ""


class ScheduleTarget(_Enriched):
    schedule_id: int
    schedule_name: str = ""
    role_ids: list[int] = []


class NotifyBy(_Enriched):
    """Direct-message configuration of a layer.

    When follow_preference is true each person is notified through their
    own preferred channels and the per-severity lists are ignored.
    """

    follow_preference: bool = False
    critical: list[str] = []
    warning: list[str] = []
    info: list[str] = []


class WebhookConfig(_Enriched):
    type: str = ""
    alias: str = ""
    settings: dict[str, Any] = {}


class EscalationTarget(_Enriched):
    """Notification targets of one layer, partitioned by target kind."""

    persons: list[PersonTarget] = []
    teams: list[TeamTarget] = []
    schedules: list[ScheduleTarget] = []
    notify_by: NotifyBy | None = None
    webhooks: list[WebhookConfig] = []


class EscalationLayer(_Enriched):
    """One escalation step.

    Attributes:
        layer_idx: Zero-based position of the layer within its rule.
        timeout: Minutes to wait before escalating to the next layer.
        notify_interval: Minutes between repeated notifications.
        max_times: Maximum number of notifications at this layer.
        force_escalate: Escalate even if the incident was acknowledged.
    """

    layer_idx: int
    timeout: int = 0
    notify_interval: float = 0
    max_times: int = 0
    force_escalate: bool = False
    target: EscalationTarget | None = None


class TimeFilter(_Enriched):
    start: str = ""
    end: str = ""
    repeat: list[int] = []
    cal_id: str = ""
    is_off: bool = False


class AlertCondition(_Enriched):
    key: str = ""
    oper: str = ""
    vals: list[str] = []


class EscalationRule(_Enriched):
    """An escalation rule with every target resolved to a display name.

    filters keeps the raw OR-of-ANDs structure: the rule matches an alert
    when any group matches, and a group matches when all its conditions do.
    """

    rule_id: str
    rule_name: str = ""
    description: str = ""
    channel_id: int = 0
    channel_name: str = ""
    status: str = ""
    priority: int = 0
    aggr_window: int = 0
    layers: list[EscalationLayer] = []
    time_filters: list[TimeFilter] = []
    filters: list[list[AlertCondition]] = []


class Change(_Enriched):
    change_id: str
    title: str = ""
    description: str = ""
    type: str = ""
    status: str = ""
    channel_id: int = 0
    channel_name: str = ""
    creator_id: int = 0
    creator_name: str = ""
    start_time: int = 0
    end_time: int = 0
    labels: dict[str, str] = {}
