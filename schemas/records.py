"""Raw record schemas.

Raw records are what the Flashduty API returns before enrichment: incidents,
timeline items, alert previews, escalation rules and change records, each
carrying bare foreign keys (person_id, channel_id, team_ids, ...). They are
owned by the call that fetched them and are frozen once parsed; enrichment
always builds new objects rather than editing these.

Field names follow the wire format. Where the wire name is awkward in Python
(incident_severity, fields) an alias maps it to a clearer attribute.
"""

from typing import Any

from pydantic import AliasChoices, Field

from schemas.base import WireModel


class RawResponder(WireModel):
    person_id: int = 0
    assigned_at: int = 0
    acknowledged_at: int = 0


class RawIncident(WireModel):
    """An incident as returned by /incident/list or /incident/list-by-ids.

    Attributes:
        incident_id: Flashduty incident identifier (an opaque string).
        severity: "Info", "Warning" or "Critical" (incident_severity on the wire).
        progress: "Triggered", "Processing" or "Closed".
        channel_id: Owning collaboration space, 0 if unset.
        creator_id: Person who created the incident, 0 for alert-triggered.
        closer_id: Person who closed it, 0 if still open.
        responders: Assigned responders in assignment order.
        custom_fields: Custom field values keyed by field name ("fields" on
            the wire). Carried through verbatim.
    """

    incident_id: str
    title: str = ""
    description: str = ""
    severity: str = Field(default="", alias="incident_severity")
    progress: str = ""
    start_time: int = 0
    ack_time: int = 0
    close_time: int = 0
    channel_id: int = 0
    creator_id: int = 0
    closer_id: int = 0
    responders: list[RawResponder] = []
    labels: dict[str, str] = {}
    custom_fields: dict[str, Any] = Field(default={}, alias="fields")


class RawTimelineItem(WireModel):
    """One entry of an incident feed (/incident/feed).

    Attributes:
        type: Event type tag, e.g. "i_assign", "i_notify", "i_ack". See
            schemas.timeline.TimelineEventType for the known values.
        created_at: Unix timestamp (seconds) of the event.
        person_id: Operator who caused the event, 0 for system events.
        detail: Free-form payload whose shape depends on type. None when
            the event carries no payload.
    """

    type: str
    created_at: int = 0
    person_id: int = 0
    detail: dict[str, Any] | None = None


class AlertPreview(WireModel):
    """A single alert attached to an incident.

    The alert list endpoint calls the start time trigger_time; both names
    are accepted and it is always serialized as start_time.
    """

    alert_id: str
    title: str = ""
    severity: str = ""
    status: str = ""
    start_time: int = Field(default=0, validation_alias=AliasChoices("start_time", "trigger_time"))
    labels: dict[str, str] = {}


# ── Escalation rules ─────────────────────────────────────────────────────────

class RawNotifyBy(WireModel):
    follow_preference: bool = False
    critical: list[str] = []
    warning: list[str] = []
    info: list[str] = []


class RawWebhook(WireModel):
    type: str = ""
    settings: dict[str, Any] = {}


class RawEscalationTarget(WireModel):
    """Who a layer notifies.

    schedule_to_role_ids maps a schedule id to the role ids within that
    schedule. JSON object keys arrive as strings and are coerced to int.
    """

    person_ids: list[int] = []
    team_ids: list[int] = []
    schedule_to_role_ids: dict[int, list[int]] = {}
    by: RawNotifyBy | None = None
    webhooks: list[RawWebhook] = []


class RawEscalationLayer(WireModel):
    max_times: int = 0
    notify_step: float = 0
    escalate_window: int = 0
    force_escalate: bool = False
    target: RawEscalationTarget | None = None


class RawTimeFilter(WireModel):
    start: str = ""
    end: str = ""
    repeat: list[int] = []
    cal_id: str = ""
    is_off: bool = False


class RawAlertCondition(WireModel):
    key: str = ""
    oper: str = ""
    vals: list[str] = []


class RawEscalationRule(WireModel):
    """An escalation rule from /channel/escalate/rule/list.

    filters is a list of OR-groups; each group is a list of conditions that
    must all match (AND). The engine transports it, it never evaluates it.
    """

    rule_id: str
    rule_name: str = ""
    description: str = ""
    channel_id: int = 0
    status: str = ""
    priority: int = 0
    aggr_window: int = 0
    layers: list[RawEscalationLayer] = []
    time_filters: list[RawTimeFilter] = []
    filters: list[list[RawAlertCondition]] = []


class RawChange(WireModel):
    """A change record (deployment, configuration change) from /change/list."""

    change_id: str
    title: str = ""
    description: str = ""
    type: str = ""
    status: str = ""
    channel_id: int = 0
    creator_id: int = 0
    start_time: int = 0
    end_time: int = 0
    labels: dict[str, str] = {}
