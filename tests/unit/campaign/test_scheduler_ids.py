"""
Unit Tests for task identifiers and schedule parsing
"""
from datetime import datetime, timedelta, timezone

import pytest

from microservices.campaign_service.dispatch_worker import dispatch_task_id, refund_key
from microservices.campaign_service.scheduler import parse_scheduled_at, same_instant, schedule_task_id

pytestmark = pytest.mark.unit

WHEN = datetime(2026, 11, 2, 9, 30, tzinfo=timezone.utc)


class TestTaskIds:

    def test_schedule_task_id_embeds_epoch(self):
        assert schedule_task_id("cmp_1", WHEN) == f"campaign:cmp_1:{int(WHEN.timestamp())}"

    def test_schedule_task_id_changes_with_time(self):
        assert schedule_task_id("cmp_1", WHEN) != schedule_task_id("cmp_1", WHEN + timedelta(minutes=1))

    def test_naive_time_is_utc(self):
        assert schedule_task_id("cmp_1", WHEN.replace(tzinfo=None)) == schedule_task_id("cmp_1", WHEN)

    def test_offset_time_names_the_same_task(self):
        athens = WHEN.astimezone(timezone(timedelta(hours=2)))

        assert schedule_task_id("cmp_1", athens) == schedule_task_id("cmp_1", WHEN)

    def test_dispatch_and_refund_keys(self):
        assert dispatch_task_id("msg_1") == "message:msg_1"
        assert refund_key("msg_1") == "hardfail:message:msg_1"


class TestSameInstant:

    def test_equal_to_the_second(self):
        assert same_instant(WHEN, WHEN + timedelta(milliseconds=400))

    def test_different_seconds(self):
        assert not same_instant(WHEN, WHEN + timedelta(seconds=1))

    def test_naive_against_aware(self):
        assert same_instant(WHEN.replace(tzinfo=None), WHEN)

    @pytest.mark.parametrize("a,b", [(None, WHEN), (WHEN, None), (None, None)])
    def test_missing_value(self, a, b):
        assert same_instant(a, b) is False


class TestParseScheduledAt:

    def test_datetime_passes_through(self):
        assert parse_scheduled_at(WHEN) is WHEN

    def test_iso_with_z(self):
        assert parse_scheduled_at("2026-11-02T09:30:00Z") == WHEN

    def test_iso_with_offset(self):
        assert parse_scheduled_at("2026-11-02T11:30:00+02:00") == WHEN

    @pytest.mark.parametrize("value", [None, "", "next tuesday"])
    def test_unparseable(self, value):
        assert parse_scheduled_at(value) is None
