"""Tests for Meta flow status normalization and extraction."""

from datetime import datetime

import pytest

from flowcraft.models.flow import MetaFlowStatus
from flowcraft.services.flow_status import (
    extract_event_time,
    extract_flow_id,
    extract_status,
    map_status_to_local,
    normalize_status,
)


class TestNormalizeStatus:
    """Tests for normalize_status."""

    @pytest.mark.parametrize("raw", ["published", " PUBLISHED ", "Published"])
    def test_trims_and_upper_cases(self, raw) -> None:
        assert normalize_status(raw) is MetaFlowStatus.PUBLISHED

    @pytest.mark.parametrize("raw", [None, "", "   ", "APPROVED", 42, {"status": "DRAFT"}, ["DRAFT"]])
    def test_unknown_values_are_none(self, raw) -> None:
        assert normalize_status(raw) is None

    def test_every_member_round_trips(self) -> None:
        for status in MetaFlowStatus:
            assert normalize_status(status.value.lower()) is status


class TestExtractStatus:
    """Tests for extract_status."""

    def test_top_level_fields(self) -> None:
        assert extract_status({"status": "draft"}) is MetaFlowStatus.DRAFT
        assert extract_status({"flow_status": "blocked"}) is MetaFlowStatus.BLOCKED
        assert extract_status({"flowStatus": "throttled"}) is MetaFlowStatus.THROTTLED
        assert extract_status({"health_status": "deprecated"}) is MetaFlowStatus.DEPRECATED
        assert extract_status({"healthStatus": "published"}) is MetaFlowStatus.PUBLISHED

    def test_field_priority(self) -> None:
        assert extract_status({"status": "DRAFT", "flow_status": "PUBLISHED"}) is MetaFlowStatus.DRAFT

    def test_unrecognized_field_falls_through_to_next(self) -> None:
        assert extract_status({"status": "WEIRD", "health_status": "BLOCKED"}) is MetaFlowStatus.BLOCKED

    def test_nested_data_object(self) -> None:
        assert extract_status({"data": {"status": "published"}}) is MetaFlowStatus.PUBLISHED

    def test_top_level_wins_over_nested(self) -> None:
        assert extract_status({"status": "DRAFT", "data": {"status": "PUBLISHED"}}) is MetaFlowStatus.DRAFT

    def test_only_one_level_deep(self) -> None:
        assert extract_status({"data": {"data": {"status": "PUBLISHED"}}}) is None

    def test_health_status_object_is_ignored(self) -> None:
        assert extract_status({"health_status": {"can_send_message": "AVAILABLE"}}) is None

    @pytest.mark.parametrize("payload", [None, "PUBLISHED", [], {}, {"data": "PUBLISHED"}])
    def test_non_matching_payloads(self, payload) -> None:
        assert extract_status(payload) is None


class TestMapStatusToLocal:
    """Tests for map_status_to_local."""

    def test_identity_for_every_member(self) -> None:
        for status in MetaFlowStatus:
            assert map_status_to_local(status) is status

    def test_accepts_raw_strings(self) -> None:
        assert map_status_to_local("deprecated") is MetaFlowStatus.DEPRECATED

    def test_none_stays_none(self) -> None:
        assert map_status_to_local(None) is None


class TestExtractFlowId:
    """Tests for extract_flow_id."""

    def test_top_level_and_nested(self) -> None:
        assert extract_flow_id({"flow_id": "123"}) == "123"
        assert extract_flow_id({"flowId": 456}) == "456"
        assert extract_flow_id({"data": {"id": " 789 "}}) == "789"

    def test_missing(self) -> None:
        assert extract_flow_id({"status": "DRAFT"}) is None
        assert extract_flow_id(None) is None


class TestExtractEventTime:
    """Tests for extract_event_time."""

    def test_epoch_seconds(self) -> None:
        assert extract_event_time({"timestamp": 1700000000}) == datetime(2023, 11, 14, 22, 13, 20)
        assert extract_event_time({"time": "1700000000"}) == datetime(2023, 11, 14, 22, 13, 20)

    def test_iso_strings_become_naive_utc(self) -> None:
        assert extract_event_time({"timestamp": "2026-03-01T10:00:00Z"}) == datetime(2026, 3, 1, 10, 0, 0)
        assert extract_event_time({"time": "2026-03-01T12:00:00+02:00"}) == datetime(2026, 3, 1, 10, 0, 0)
        assert extract_event_time({"time": "2026-03-01T10:00:00"}) == datetime(2026, 3, 1, 10, 0, 0)

    def test_nested_under_data(self) -> None:
        payload = {"data": {"flow_id": "1", "timestamp": 1700000000}}
        assert extract_event_time(payload) == datetime(2023, 11, 14, 22, 13, 20)

    def test_top_level_wins_over_nested(self) -> None:
        payload = {"timestamp": 1700000000, "data": {"timestamp": 1800000000}}
        assert extract_event_time(payload) == datetime(2023, 11, 14, 22, 13, 20)

    @pytest.mark.parametrize(
        "payload",
        [None, {}, {"timestamp": ""}, {"timestamp": "yesterday"}, {"timestamp": True}, {"time": [1]}, "1700000000"],
    )
    def test_missing_or_unusable(self, payload) -> None:
        assert extract_event_time(payload) is None
