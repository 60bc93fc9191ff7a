"""Flashduty API client.

Everything the enrichment engine needs from Flashduty goes through
FlashdutyClient: the bulk lookups the batch resolver calls (persons,
channels, teams, schedules) and the raw fetches the query operations start
from (incidents, feeds, alerts, channel, member and team listings, escalation
rules, changes).

Every endpoint is a POST with a JSON body, authenticated by an app_key query
parameter. Responses share one envelope:

    {"request_id": "...", "error": {"code": "...", "message": "..."}, "data": {...}}

The app key never appears in a log line or an exception message.

Flashduty API reference: https://developer.flashcat.cloud/
"""

import json
import logging
from typing import Any

import httpx
from pydantic import BaseModel

from core.collector import IdentifierSet, dedupe_ids
from schemas.query import ChangeFilters, IncidentFilters
from schemas.records import AlertPreview, RawChange, RawEscalationRule, RawIncident, RawTimelineItem
from schemas.resolved import RESOLVED_MODELS, ChannelInfo, EntityKind, PersonInfo, TeamInfo
from utils.truncate import truncate_body

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.flashcat.cloud"
DEFAULT_TIMEOUT_SECONDS = 30
MAX_RESPONSE_BODY_SIZE = 10 * 1024 * 1024
FEED_PAGE_LIMIT = 100
DIRECTORY_PAGE_LIMIT = 20
REDACTED = "[REDACTED]"

# Bulk lookup endpoint and request field per entity kind.
_LOOKUPS: dict[EntityKind, tuple[str, str]] = {
    EntityKind.PERSON: ("/person/infos", "person_ids"),
    EntityKind.CHANNEL: ("/channel/infos", "channel_ids"),
    EntityKind.TEAM: ("/team/infos", "team_ids"),
    EntityKind.SCHEDULE: ("/schedule/infos", "schedule_ids"),
}


class FlashdutyAPIError(Exception):
    """Raised when a Flashduty call fails at the transport, HTTP or API level.

    Attributes:
        status_code: HTTP status of the response, None if no response
            arrived.
        code: Flashduty error code from the response envelope, if any.
        request_id: Value of the Flashcat-Request-Id header, for support
            tickets. Empty if the server did not send one.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        request_id: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.request_id = request_id


class AppKeyFilter(logging.Filter):
    """Rewrites log records that contain the app key.

    Attached to the "httpx" logger, which writes the full request URL,
    query string included, at INFO.
    """

    def __init__(self, app_key: str) -> None:
        super().__init__()
        self._app_key = app_key
        self._log_filter = AppKeyFilter(app_key)
        logging.getLogger("httpx").addFilter(self._log_filter)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if self._app_key in message:
            record.msg = message.replace(self._app_key, REDACTED)
            record.args = None
        return True


class FlashdutyClient:
    """Async Flashduty client over one pooled httpx.AsyncClient.

    Create once per process and share it; the connection pool is reused
    across calls. Close it with aclose() or use it as an async context
    manager.

    Example usage:
        async with FlashdutyClient(app_key=settings.app_key) as client:
            engine = EnrichmentEngine(client)
            incidents = await engine.query_incidents(["inc-1"])

    Attributes:
        base_url: API root, e.g. "https://api.flashcat.cloud".
    """

    def __init__(
        self,
        app_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialise the client.

        Args:
            app_key: Flashduty APP key. Sent as the app_key query parameter.
            base_url: API root. Defaults to the public Flashduty endpoint.
            timeout_seconds: Per-request timeout applied by httpx.
            user_agent: Optional User-Agent header value.
            transport: Optional httpx transport. Tests pass an
                httpx.MockTransport here.

        Raises:
            ValueError: If app_key is empty. Fails at construction rather
                than at the first API call.
        """
        if not app_key:
            raise ValueError("Flashduty APP key is required.")

        headers = {"Accept": "application/json"}
        if user_agent:
            headers["User-Agent"] = user_agent

        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._app_key = app_key
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "FlashdutyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        logging.getLogger("httpx").removeFilter(self._log_filter)
        await self._http.aclose()

    # ── Bulk lookups ────────────────────────────────────────────────────────

    async def fetch_by_ids(self, kind: EntityKind, ids: IdentifierSet) -> list[BaseModel]:
        """Fetch the records of one entity kind in a single request.

        Ids are deduplicated and zeros dropped before sending. An empty set
        makes no request.

        Returns:
            PersonInfo, ChannelInfo, TeamInfo or ScheduleInfo records,
            depending on kind. Ids the API does not know are absent.
        """
        unique_ids = dedupe_ids(ids)
        if not unique_ids:
            return []

        path, field = _LOOKUPS[kind]
        data = await self._post(path, {field: unique_ids})
        model = RESOLVED_MODELS[kind]
        return [model.model_validate(item) for item in _items(data)]

    # ── Raw fetches ─────────────────────────────────────────────────────────

    async def fetch_incidents_by_ids(self, incident_ids: list[str]) -> list[RawIncident]:
        data = await self._post("/incident/list-by-ids", {"incident_ids": incident_ids})
        return [RawIncident.model_validate(item) for item in _items(data)]

    async def fetch_incidents_by_filters(self, filters: IncidentFilters) -> list[RawIncident]:
        data = await self._post("/incident/list", filters.to_request_body())
        return [RawIncident.model_validate(item) for item in _items(data)]

    async def fetch_timeline(self, incident_id: str) -> list[RawTimelineItem]:
        """Fetch the first page of an incident feed, oldest event first."""
        data = await self._post("/incident/feed", {
            "incident_id": incident_id,
            "limit": FEED_PAGE_LIMIT,
            "asc": True,
        })
        return [RawTimelineItem.model_validate(item) for item in _items(data)]

    async def fetch_alerts(self, incident_id: str, limit: int) -> tuple[list[AlertPreview], int]:
        """Fetch the first page of alerts of an incident.

        Returns:
            (alerts, total) where total counts every alert of the incident,
            not just the returned page.
        """
        data = await self._post("/incident/alert/list", {
            "incident_id": incident_id,
            "p": 1,
            "limit": limit,
        })
        alerts = [AlertPreview.model_validate(item) for item in _items(data)]
        return alerts, int(data.get("total") or 0)

    async def list_channels(self) -> list[ChannelInfo]:
        data = await self._post("/channel/list", {})
        return [ChannelInfo.model_validate(item) for item in _items(data)]

    async def list_members(self, name: str = "", email: str = "") -> tuple[list[PersonInfo], int]:
        """List the first page of account members, optionally filtered.

        Returns:
            (members, total) where total counts every matching member.
        """
        body: dict[str, Any] = {"p": 1, "limit": DIRECTORY_PAGE_LIMIT}
        if name:
            body["member_name"] = name
        if email:
            body["email"] = email
        data = await self._post("/member/list", body)
        members = [PersonInfo.model_validate(item) for item in _items(data)]
        return members, int(data.get("total") or 0)

    async def list_teams(self, name: str = "") -> tuple[list[TeamInfo], int]:
        body: dict[str, Any] = {"p": 1, "limit": DIRECTORY_PAGE_LIMIT}
        if name:
            body["team_name"] = name
        data = await self._post("/team/list", body)
        teams = [TeamInfo.model_validate(item) for item in _items(data)]
        return teams, int(data.get("total") or 0)

    async def list_escalation_rules(self, channel_id: int) -> list[RawEscalationRule]:
        data = await self._post("/channel/escalate/rule/list", {"channel_id": channel_id})
        return [RawEscalationRule.model_validate(item) for item in _items(data)]

    async def list_changes(self, filters: ChangeFilters) -> tuple[list[RawChange], int]:
        data = await self._post("/change/list", filters.to_request_body())
        changes = [RawChange.model_validate(item) for item in _items(data)]
        return changes, int(data.get("total") or 0)

    # ── Transport ───────────────────────────────────────────────────────────

    def _redact(self, text: str) -> str:
        return text.replace(self._app_key, REDACTED)

    async def _post(self, path: str, body: dict) -> dict[str, Any]:
        """POST body to path and return the envelope's data object.

        Returns:
            The "data" object of the response, or {} when the response has
            none.

        Raises:
            FlashdutyAPIError: On transport failure, HTTP 4xx/5xx, an
                oversized or non-JSON body, or an error in the envelope.
        """
        log_url = f"{self.base_url}{path}?app_key={REDACTED}"
        logger.info("Flashduty request: POST %s body=%s", log_url, truncate_body(json.dumps(body)))

        try:
            async with self._http.stream(
                "POST", path, params={"app_key": self._app_key}, json=body,
            ) as response:
                raw = await _read_limited(response)
        except httpx.HTTPError as exc:
            # The original exception carries the unredacted URL.
            raise FlashdutyAPIError(
                f"Request to POST {log_url} failed: {self._redact(str(exc))}"
            ) from None

        status = response.status_code
        request_id = response.headers.get("Flashcat-Request-Id", "")
        text = raw.decode("utf-8", errors="replace")

        if status >= 500:
            logger.error("Flashduty response: status=%d body=%s", status, truncate_body(text))
            raise FlashdutyAPIError(
                f"API server error (HTTP {status}, request_id: {request_id}): {truncate_body(text)}",
                status_code=status,
                request_id=request_id,
            )
        if status >= 400:
            logger.warning("Flashduty response: status=%d body=%s", status, truncate_body(text))
            raise FlashdutyAPIError(
                f"API client error (HTTP {status}, request_id: {request_id}): {truncate_body(text)}",
                status_code=status,
                request_id=request_id,
            )

        logger.info("Flashduty response: status=%d body=%s", status, truncate_body(text))

        try:
            envelope = json.loads(raw) if raw else {}
        except json.JSONDecodeError as exc:
            raise FlashdutyAPIError(
                f"Invalid API response: failed to parse JSON "
                f"(response size: {len(raw)} bytes, request_id: {request_id}).",
                status_code=status,
                request_id=request_id,
            ) from exc

        if not isinstance(envelope, dict):
            raise FlashdutyAPIError(
                f"Invalid API response: expected a JSON object (request_id: {request_id}).",
                status_code=status,
                request_id=request_id,
            )

        error = envelope.get("error")
        if error:
            code = str(error.get("code", "")) if isinstance(error, dict) else ""
            message = str(error.get("message", "")) if isinstance(error, dict) else str(error)
            raise FlashdutyAPIError(
                f"API error: {code} - {message}",
                status_code=status,
                code=code,
                request_id=request_id,
            )

        data = envelope.get("data")
        return data if isinstance(data, dict) else {}


async def _read_limited(response: httpx.Response) -> bytes:
    """Read a streamed response body, refusing anything over the size cap."""
    chunks = []
    size = 0
    async for chunk in response.aiter_bytes():
        size += len(chunk)
        if size > MAX_RESPONSE_BODY_SIZE:
            raise FlashdutyAPIError(
                f"Response body exceeds {MAX_RESPONSE_BODY_SIZE} bytes.",
                status_code=response.status_code,
                request_id=response.headers.get("Flashcat-Request-Id", ""),
            )
        chunks.append(chunk)
    return b"".join(chunks)


def _items(data: dict[str, Any]) -> list:
    return data.get("items") or []
