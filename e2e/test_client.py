"""Tests for FlashdutyClient against an httpx.MockTransport.

No network: every request is answered by a handler that records what it was
sent and returns a canned Flashduty envelope.
"""

import json
import logging

import httpx
import pytest

from integrations.flashduty import AppKeyFilter, FlashdutyAPIError, FlashdutyClient
from schemas.query import ChangeFilters, IncidentFilters
from schemas.resolved import EntityKind

APP_KEY = "secret-app-key-123"


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, status=200, payload=None, content=None, headers=None):
        self.status = status
        self.payload = {"request_id": "req-1", "data": {}} if payload is None else payload
        self.content = content
        self.headers = headers or {"Flashcat-Request-Id": "req-1"}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.content is not None:
            return httpx.Response(self.status, content=self.content, headers=self.headers)
        return httpx.Response(self.status, json=self.payload, headers=self.headers)

    def body(self, index=0):
        return json.loads(self.requests[index].content)


def make_client(handler):
    return FlashdutyClient(
        app_key=APP_KEY,
        base_url="https://api.example.test/",
        user_agent="flashduty-enrichment/test",
        transport=httpx.MockTransport(handler),
    )


class TestConstruction:
    def test_app_key_is_required(self):
        with pytest.raises(ValueError):
            FlashdutyClient(app_key="")

    async def test_trailing_slash_is_trimmed(self):
        async with make_client(Recorder()) as client:
            assert client.base_url == "https://api.example.test"


class TestRequests:
    async def test_lookup_request_shape(self):
        recorder = Recorder(payload={"data": {"items": [
            {"person_id": 7, "person_name": "Alice", "email": "alice@example.com", "as": "member"},
        ]}})
        async with make_client(recorder) as client:
            persons = await client.fetch_by_ids(EntityKind.PERSON, [7, 0, 9, 7])

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/person/infos"
        assert request.url.params["app_key"] == APP_KEY
        assert request.headers["User-Agent"] == "flashduty-enrichment/test"
        assert recorder.body() == {"person_ids": [7, 9]}
        assert persons[0].person_name == "Alice"
        assert persons[0].role == "member"

    @pytest.mark.parametrize("kind, path, field", [
        (EntityKind.CHANNEL, "/channel/infos", "channel_ids"),
        (EntityKind.TEAM, "/team/infos", "team_ids"),
        (EntityKind.SCHEDULE, "/schedule/infos", "schedule_ids"),
    ])
    async def test_lookup_endpoints(self, kind, path, field):
        recorder = Recorder()
        async with make_client(recorder) as client:
            assert await client.fetch_by_ids(kind, [3]) == []
        assert recorder.requests[0].url.path == path
        assert recorder.body() == {field: [3]}

    async def test_empty_ids_make_no_request(self):
        recorder = Recorder()
        async with make_client(recorder) as client:
            assert await client.fetch_by_ids(EntityKind.PERSON, [0, 0]) == []
        assert recorder.requests == []

    async def test_incident_filters_body(self):
        recorder = Recorder(payload={"data": {"items": [
            {"incident_id": "inc-1", "incident_severity": "Critical", "creator_id": None, "fields": {"tier": 1}},
        ]}})
        filters = IncidentFilters(start_time=100, end_time=200, severity="Critical", channel_id=3, limit=5)
        async with make_client(recorder) as client:
            [incident] = await client.fetch_incidents_by_filters(filters)

        assert recorder.requests[0].url.path == "/incident/list"
        assert recorder.body() == {
            "p": 1,
            "limit": 5,
            "start_time": 100,
            "end_time": 200,
            "incident_severity": "Critical",
            "channel_id": 3,
        }
        assert incident.severity == "Critical"
        assert incident.creator_id == 0
        assert incident.custom_fields == {"tier": 1}

    async def test_feed_request(self):
        recorder = Recorder(payload={"data": {"items": [
            {"type": "i_assign", "person_id": 7, "created_at": 10, "detail": {"to": [5]}},
        ]}})
        async with make_client(recorder) as client:
            [item] = await client.fetch_timeline("inc-1")

        assert recorder.requests[0].url.path == "/incident/feed"
        assert recorder.body() == {"incident_id": "inc-1", "limit": 100, "asc": True}
        assert item.detail == {"to": [5]}

    async def test_alerts_with_total(self):
        recorder = Recorder(payload={"data": {"total": 7, "items": [
            {"alert_id": "al-1", "title": "cpu", "trigger_time": 1700000000},
        ]}})
        async with make_client(recorder) as client:
            alerts, total = await client.fetch_alerts("inc-1", 1)

        assert recorder.body() == {"incident_id": "inc-1", "p": 1, "limit": 1}
        assert total == 7
        assert alerts[0].start_time == 1700000000

    async def test_changes_with_total(self):
        recorder = Recorder(payload={"data": {"total": 12, "items": [{"change_id": "chg-1"}]}})
        async with make_client(recorder) as client:
            changes, total = await client.list_changes(ChangeFilters(channel_id=3, limit=1))

        assert recorder.requests[0].url.path == "/change/list"
        assert recorder.body() == {"p": 1, "limit": 1, "channel_id": 3}
        assert [c.change_id for c in changes] == ["chg-1"]
        assert total == 12

    async def test_escalation_rules_request(self):
        recorder = Recorder(payload={"data": {"items": [
            {"rule_id": "rule-1", "layers": [{"target": {"schedule_to_role_ids": {"301": [1]}}}]},
        ]}})
        async with make_client(recorder) as client:
            [rule] = await client.list_escalation_rules(3)

        assert recorder.requests[0].url.path == "/channel/escalate/rule/list"
        assert recorder.body() == {"channel_id": 3}
        assert rule.layers[0].target.schedule_to_role_ids == {301: [1]}

    async def test_member_list_request(self):
        recorder = Recorder(payload={"data": {"total": 41, "items": [
            {"member_id": 7, "member_name": "Alice Chen", "email": "alice@example.com", "status": "enabled"},
        ]}})
        async with make_client(recorder) as client:
            members, total = await client.list_members(name="alice", email="alice@example.com")

        assert recorder.requests[0].url.path == "/member/list"
        assert recorder.body() == {"p": 1, "limit": 20, "member_name": "alice", "email": "alice@example.com"}
        assert (members[0].person_id, members[0].person_name) == (7, "Alice Chen")
        assert total == 41

    async def test_team_list_request(self):
        recorder = Recorder(payload={"data": {"total": 1, "items": [
            {"team_id": 21, "team_name": "SRE", "members": [{"person_id": 7, "person_name": "Alice Chen"}]},
        ]}})
        async with make_client(recorder) as client:
            teams, total = await client.list_teams()

        assert recorder.requests[0].url.path == "/team/list"
        assert recorder.body() == {"p": 1, "limit": 20}
        assert teams[0].members[0].person_id == 7
        assert total == 1

    async def test_missing_data_is_empty(self):
        async with make_client(Recorder(payload={"request_id": "req-1"})) as client:
            assert await client.list_channels() == []


class TestErrors:
    async def test_server_error(self):
        recorder = Recorder(status=503, content=b"upstream unavailable")
        async with make_client(recorder) as client:
            with pytest.raises(FlashdutyAPIError) as exc_info:
                await client.list_channels()

        error = exc_info.value
        assert error.status_code == 503
        assert error.request_id == "req-1"
        assert "API server error (HTTP 503" in str(error)
        assert "upstream unavailable" in str(error)

    async def test_client_error(self):
        async with make_client(Recorder(status=401, content=b"bad key")) as client:
            with pytest.raises(FlashdutyAPIError, match="API client error"):
                await client.list_channels()

    async def test_error_envelope(self):
        recorder = Recorder(payload={
            "request_id": "req-2",
            "error": {"code": "InvalidParameter", "message": "channel_id is invalid"},
        })
        async with make_client(recorder) as client:
            with pytest.raises(FlashdutyAPIError) as exc_info:
                await client.list_escalation_rules(-1)

        assert exc_info.value.code == "InvalidParameter"
        assert str(exc_info.value) == "API error: InvalidParameter - channel_id is invalid"

    async def test_invalid_json(self):
        async with make_client(Recorder(content=b"<html>")) as client:
            with pytest.raises(FlashdutyAPIError, match="failed to parse JSON"):
                await client.list_channels()

    async def test_non_object_envelope(self):
        async with make_client(Recorder(payload=[1, 2])) as client:
            with pytest.raises(FlashdutyAPIError, match="expected a JSON object"):
                await client.list_channels()


class TestRedaction:
    async def test_app_key_not_logged(self, caplog):
        recorder = Recorder(status=500, content=b"boom")
        with caplog.at_level(logging.INFO), caplog.at_level(logging.INFO, logger="integrations.flashduty"):
            async with make_client(recorder) as client:
                with pytest.raises(FlashdutyAPIError):
                    await client.fetch_by_ids(EntityKind.PERSON, [7])

        assert "app_key=[REDACTED]" in caplog.text
        assert APP_KEY not in caplog.text

    async def test_httpx_request_log_is_redacted(self, caplog):
        recorder = Recorder(payload={"data": {"items": [{"person_id": 7, "person_name": "Alice"}]}})
        with caplog.at_level(logging.INFO), caplog.at_level(logging.INFO, logger="httpx"):
            async with make_client(recorder) as client:
                await client.fetch_by_ids(EntityKind.PERSON, [7])

        httpx_lines = [r.getMessage() for r in caplog.records if r.name == "httpx"]
        assert httpx_lines
        assert all(APP_KEY not in line for line in httpx_lines)
        assert any("app_key=[REDACTED]" in line for line in httpx_lines)
        assert APP_KEY not in caplog.text

    async def test_key_never_reaches_a_root_handler(self, tmp_path):
        log_path = tmp_path / "service.log"
        handler = logging.FileHandler(log_path, encoding="utf-8")
        root = logging.getLogger()
        httpx_logger = logging.getLogger("httpx")
        previous = root.level, httpx_logger.level
        root.addHandler(handler)
        root.setLevel(logging.INFO)
        httpx_logger.setLevel(logging.NOTSET)
        try:
            async with make_client(Recorder()) as client:
                await client.fetch_by_ids(EntityKind.PERSON, [7])
        finally:
            root.removeHandler(handler)
            handler.close()
            root.setLevel(previous[0])
            httpx_logger.setLevel(previous[1])

        text = log_path.read_text(encoding="utf-8")
        assert "HTTP Request" in text
        assert APP_KEY not in text

    async def test_filter_is_detached_on_close(self):
        client = make_client(Recorder())
        await client.aclose()
        assert isinstance(client._log_filter, AppKeyFilter)
        assert client._log_filter not in logging.getLogger("httpx").filters

    async def test_app_key_not_in_transport_error(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError(f"connection refused: {request.url}", request=request)

        async with make_client(refuse) as client:
            with pytest.raises(FlashdutyAPIError) as exc_info:
                await client.list_channels()

        assert APP_KEY not in str(exc_info.value)
        assert "[REDACTED]" in str(exc_info.value)
        assert exc_info.value.__cause__ is None
        assert exc_info.value.status_code is None
