"""Tests for log truncation and result rendering."""

from schemas.enriched import EnrichedIncident, EnrichedResponder
from utils.format import OutputFormat, render_result
from utils.truncate import truncate_body


class TestTruncateBody:
    def test_small_body_unchanged(self):
        assert truncate_body('{"ok": true}') == '{"ok": true}'

    def test_exactly_at_limit_unchanged(self):
        body = "x" * 2048
        assert truncate_body(body) == body

    def test_large_body_is_summarised(self):
        out = truncate_body("a" * 5000)
        assert out.startswith("[LARGE_BODY: truncated, size: 5000 bytes, preview: ")
        assert out.endswith("...]")
        assert "a" * 500 in out
        assert "a" * 501 not in out

    def test_size_counts_bytes(self):
        body = "é" * 1100
        out = truncate_body(body)
        assert "size: 2200 bytes" in out

    def test_preview_never_splits_a_character(self):
        out = truncate_body("é" * 100, max_size=10, preview_size=5)
        assert "preview: éé..." in out

    def test_preview_capped_by_max_size(self):
        out = truncate_body("b" * 100, max_size=10, preview_size=50)
        assert "preview: bbbbbbbbbb..." in out


class TestOutputFormat:
    def test_parse(self):
        assert OutputFormat.parse("compact") is OutputFormat.COMPACT
        assert OutputFormat.parse(" JSON ") is OutputFormat.JSON
        assert OutputFormat.parse("toon") is OutputFormat.JSON
        assert OutputFormat.parse(None) is OutputFormat.JSON


class TestRenderResult:
    def incident(self):
        return EnrichedIncident(
            incident_id="inc-1",
            title="DB down",
            responders=[EnrichedResponder(person_id=5, person_name="Bob")],
        )

    def test_json_keeps_every_field(self):
        out = render_result({"incidents": [self.incident()], "total": 1}, OutputFormat.JSON)
        incident = out["incidents"][0]
        assert out["total"] == 1
        assert incident["closer_name"] == ""
        assert incident["responders"][0]["email"] == ""

    def test_compact_omits_defaults(self):
        out = render_result({"incidents": [self.incident()], "total": 1}, OutputFormat.COMPACT)
        assert out["incidents"][0] == {
            "incident_id": "inc-1",
            "title": "DB down",
            "responders": [{"person_id": 5, "person_name": "Bob"}],
        }
        assert out["total"] == 1

    def test_plain_values_pass_through(self):
        assert render_result({"total": 0, "note": None}, OutputFormat.COMPACT) == {"total": 0, "note": None}
