"""Resolved entity schemas.

These are the records returned by the Flashduty bulk-lookup endpoints
(/person/infos, /channel/infos, /team/infos, /schedule/infos). The enrichment
engine keys them by their own identifier to build a Resolved Mapping, then
reads display attributes from them during the join.
"""

from enum import Enum

from pydantic import AliasChoices, Field

from schemas.base import WireModel


class EntityKind(str, Enum):
    """The kinds of entity a raw record can reference by identifier.

    Extends str so values serialize to plain strings ("person", "team")
    in log lines and resolution events.
    """

    PERSON = "person"
    CHANNEL = "channel"
    TEAM = "team"
    SCHEDULE = "schedule"

    @property
    def id_field(self) -> str:
        """Attribute on a resolved record that carries its own identifier."""
        return f"{self.value}_id"


class PersonInfo(WireModel):
    """A person (account or member).

    /person/infos returns person_id and person_name; /member/list returns the
    same person as member_id and member_name.

    Attributes:
        person_id: Flashduty person identifier.
        person_name: Display name.
        email: Contact email, empty if hidden or unset.
        avatar: Avatar URL.
        role: Role tag of the person ("as" on the wire), e.g. "member".
    """

    person_id: int = Field(validation_alias=AliasChoices("person_id", "member_id"))
    person_name: str = Field(default="", validation_alias=AliasChoices("person_name", "member_name"))
    email: str = ""
    avatar: str = ""
    role: str = Field(default="", alias="as")


class ChannelInfo(WireModel):
    """A collaboration space (channel) with its owning team and creator.

    The lookup endpoint only fills channel_id, channel_name and team_id.
    team_name and creator_name are filled in by channel enrichment.
    """

    channel_id: int
    channel_name: str = ""
    team_id: int = 0
    team_name: str = ""
    creator_id: int = 0
    creator_name: str = ""


class TeamMember(WireModel):
    person_id: int
    person_name: str = ""
    email: str = ""


class TeamInfo(WireModel):
    team_id: int
    team_name: str = ""
    members: list[TeamMember] = []


class ScheduleInfo(WireModel):
    schedule_id: int
    schedule_name: str = ""


RESOLVED_MODELS: dict[EntityKind, type[WireModel]] = {
    EntityKind.PERSON: PersonInfo,
    EntityKind.CHANNEL: ChannelInfo,
    EntityKind.TEAM: TeamInfo,
    EntityKind.SCHEDULE: ScheduleInfo,
}
