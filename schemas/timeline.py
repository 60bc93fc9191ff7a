"""Timeline event types.

Every incident feed entry carries a type tag, and the tag decides the shape
of its detail payload. TimelineEventType is the closed set of tags the engine
knows about, with UNKNOWN as the explicit fallback for anything else, so the
dispatch in core.timeline is a table lookup rather than ad hoc probing.

Only three types carry person ids inside their payload. All others are passed
through untouched.
"""

from enum import Enum


class TimelineEventType(str, Enum):
    """Known incident feed event types.

    Looking up an unrecognized tag returns UNKNOWN instead of raising, so new
    server-side event types are forward-compatible no-ops.
    """

    NEW = "i_new"
    ASSIGN = "i_assign"
    REASSIGN_RESPONDER = "i_a_rspd"
    NOTIFY = "i_notify"
    COMMENT = "i_comm"
    ACK = "i_ack"
    UNACK = "i_unack"
    WAKE = "i_wake"
    SNOOZE = "i_snooze"
    RESOLVE = "i_rslv"
    REOPEN = "i_reopen"
    MERGE = "i_merge"
    CUSTOM = "i_custom"

    # Field updates
    UPDATE_ROOT_CAUSE = "i_r_rc"
    UPDATE_DESCRIPTION = "i_r_desc"
    UPDATE_RESOLUTION = "i_r_rsltn"
    UPDATE_RESPONDERS = "i_r_resp"
    UPDATE_IMPACT = "i_r_impact"
    UPDATE_TITLE = "i_r_title"
    UPDATE_SEVERITY = "i_r_severity"
    UPDATE_FIELD = "i_r_field"

    # Suppression
    SILENCED = "i_m_silence"
    INHIBITED = "i_m_inhibat"
    FLAPPING = "i_m_flapping"
    STORM = "i_storm"

    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> "TimelineEventType":
        return cls.UNKNOWN

    @property
    def person_fields(self) -> tuple[str, ...]:
        """Detail keys that hold lists of person ids for this event type."""
        return _PERSON_FIELDS.get(self, ())


_PERSON_FIELDS: dict[TimelineEventType, tuple[str, ...]] = {
    TimelineEventType.NOTIFY: ("to",),
    TimelineEventType.ASSIGN: ("to", "person_ids"),
    TimelineEventType.REASSIGN_RESPONDER: ("to", "person_ids"),
}
