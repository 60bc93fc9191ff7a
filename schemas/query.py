"""Query input schemas.

Filters accepted by the engine's query operations. These are the only
caller-supplied inputs the engine validates: Pydantic enforces the bounds at
construction time, so by the time a query operation receives a filter object
it is already valid.
"""

from pydantic import BaseModel, Field, model_validator

DEFAULT_QUERY_LIMIT = 20
MAX_QUERY_LIMIT = 100


class IncidentFilters(BaseModel):
    """Time-window incident search (/incident/list).

    Attributes:
        start_time: Window start, Unix seconds. Required.
        end_time: Window end, Unix seconds. Required, must be after
            start_time.
        progress: "Triggered", "Processing", "Closed", or a comma-separated
            combination. Empty means any.
        severity: "Info", "Warning" or "Critical". Empty means any.
        channel_id: Restrict to one collaboration space. 0 means any.
        title: Keyword matched against incident titles.
        limit: Page size, 1 to 100.
    """

    start_time: int
    end_time: int
    progress: str = ""
    severity: str = ""
    channel_id: int = 0
    title: str = ""
    limit: int = Field(default=DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT)

    @model_validator(mode="after")
    def _check_window(self) -> "IncidentFilters":
        if self.start_time <= 0 or self.end_time <= 0:
            raise ValueError("Both start_time and end_time are required for time-based queries.")
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time.")
        return self

    def to_request_body(self) -> dict:
        """Build the /incident/list body, omitting unset optional filters."""
        body: dict = {
            "p": 1,
            "limit": self.limit,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }
        if self.progress:
            body["progress"] = self.progress
        if self.severity:
            body["incident_severity"] = self.severity
        if self.channel_id > 0:
            body["channel_id"] = self.channel_id
        if self.title:
            body["title"] = self.title
        return body


class ChangeFilters(BaseModel):
    """Change record search (/change/list). Every filter is optional."""

    change_ids: list[str] = []
    channel_id: int = 0
    start_time: int = 0
    end_time: int = 0
    type: str = ""
    limit: int = Field(default=DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT)

    def to_request_body(self) -> dict:
        body: dict = {"p": 1, "limit": self.limit}
        if self.change_ids:
            body["change_ids"] = self.change_ids
        if self.channel_id > 0:
            body["channel_id"] = self.channel_id
        if self.start_time > 0:
            body["start_time"] = self.start_time
        if self.end_time > 0:
            body["end_time"] = self.end_time
        if self.type:
            body["type"] = self.type
        return body
