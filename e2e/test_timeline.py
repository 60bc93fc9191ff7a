"""Tests for the timeline detail transformer."""

import copy

from conftest import person, timeline_item

from core.timeline import enrich_timeline, transform_detail
from schemas.timeline import TimelineEventType

PERSONS = {5: person(5, "Bob"), 7: person(7, "Alice")}


class TestTransformDetail:
    def test_assign_targets_are_resolved(self):
        detail = {"to": [5, 6]}
        assert transform_detail("i_assign", detail, PERSONS) == {
            "to": [{"person_id": 5, "person_name": "Bob"}, {"person_id": 6}],
        }

    def test_assign_rewrites_both_person_fields(self):
        out = transform_detail("i_assign", {"to": [7], "person_ids": [5], "reason": "rotation"}, PERSONS)
        assert out["to"] == [{"person_id": 7, "person_name": "Alice"}]
        assert out["person_ids"] == [{"person_id": 5, "person_name": "Bob"}]
        assert out["reason"] == "rotation"

    def test_notify_only_rewrites_to(self):
        out = transform_detail("i_notify", {"to": [5], "person_ids": [7]}, PERSONS)
        assert out["to"] == [{"person_id": 5, "person_name": "Bob"}]
        assert out["person_ids"] == [7]

    def test_non_person_type_is_copied_unchanged(self):
        detail = {"to": [5], "comment": "looking into it"}
        out = transform_detail("i_ack", detail, PERSONS)
        assert out == detail
        assert out is not detail

    def test_unknown_type_passes_through(self):
        detail = {"to": [5], "anything": {"nested": True}}
        assert transform_detail("i_from_the_future", detail, PERSONS) == detail

    def test_none_stays_none(self):
        assert transform_detail("i_assign", None, PERSONS) is None

    def test_input_is_not_mutated(self):
        detail = {"to": [5, 6], "person_ids": [7]}
        before = copy.deepcopy(detail)
        transform_detail("i_assign", detail, PERSONS)
        assert detail == before

    def test_field_with_non_integer_is_left_as_is(self):
        out = transform_detail("i_assign", {"to": [5, "x"], "person_ids": "7"}, PERSONS)
        assert out == {"to": [5, "x"], "person_ids": "7"}

    def test_integral_floats_are_accepted(self):
        out = transform_detail("i_notify", {"to": [5.0]}, PERSONS)
        assert out["to"] == [{"person_id": 5, "person_name": "Bob"}]

    def test_empty_mapping_keeps_bare_ids_only(self):
        out = transform_detail("i_a_rspd", {"to": [5]}, {})
        assert out["to"] == [{"person_id": 5}]


class TestEventTypeLookup:
    def test_unrecognized_tag_is_unknown(self):
        assert TimelineEventType("i_brand_new") is TimelineEventType.UNKNOWN
        assert TimelineEventType.UNKNOWN.person_fields == ()

    def test_person_fields(self):
        assert TimelineEventType.NOTIFY.person_fields == ("to",)
        assert TimelineEventType.ASSIGN.person_fields == ("to", "person_ids")


class TestEnrichTimeline:
    def test_order_and_operator_names(self):
        items = [
            timeline_item("i_new", person_id=7, created_at=100),
            timeline_item("i_assign", person_id=9, detail={"to": [5]}, created_at=200),
            timeline_item("i_rslv", created_at=300),
        ]
        events = enrich_timeline(items, PERSONS)

        assert [e.type for e in events] == ["i_new", "i_assign", "i_rslv"]
        assert [e.timestamp for e in events] == [100, 200, 300]
        assert events[0].operator_name == "Alice"
        assert events[1].operator_id == 9
        assert events[1].operator_name == ""
        assert events[1].detail == {"to": [{"person_id": 5, "person_name": "Bob"}]}
        assert events[2].detail is None

    def test_empty(self):
        assert enrich_timeline([], PERSONS) == []
