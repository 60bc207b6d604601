from datetime import datetime, timedelta, timezone

import pytest

from gym_management.utils.date_utils import (
    calculate_discounted_price,
    calculate_end_date,
    can_cancel_booking_at,
    count_remaining_days,
    day_bounds,
    format_vnpay_date,
    generate_class_sessions,
    overlaps,
    parse_vnpay_pay_date,
)

NOW = datetime(2024, 3, 10, 3, 0, tzinfo=timezone.utc)


class TestCountRemainingDays:
    def test_missing_end_date(self):
        assert count_remaining_days(None, NOW) == 0

    def test_end_at_or_before_now(self):
        assert count_remaining_days(NOW, NOW) == 0
        assert count_remaining_days(NOW - timedelta(seconds=1), NOW) == 0
        assert count_remaining_days(NOW - timedelta(days=30), NOW) == 0

    def test_exact_day_boundaries(self):
        assert count_remaining_days(NOW + timedelta(days=1), NOW) == 1
        assert count_remaining_days(NOW + timedelta(days=7), NOW) == 7

    def test_partial_days_round_up(self):
        assert count_remaining_days(NOW + timedelta(seconds=1), NOW) == 1
        assert count_remaining_days(NOW + timedelta(days=1, seconds=1), NOW) == 2

    def test_naive_end_date_is_utc(self):
        assert count_remaining_days(datetime(2024, 3, 12, 3, 0), NOW) == 2


class TestCalculateEndDate:
    def test_adds_months(self):
        start = datetime(2024, 1, 15, 8, 30, tzinfo=timezone.utc)
        assert calculate_end_date(start, 1) == datetime(2024, 2, 15, 8, 30, tzinfo=timezone.utc)
        assert calculate_end_date(start, 12) == datetime(2025, 1, 15, 8, 30, tzinfo=timezone.utc)

    def test_clamps_to_month_length(self):
        assert calculate_end_date(datetime(2024, 1, 31, tzinfo=timezone.utc), 1).day == 29
        assert calculate_end_date(datetime(2023, 1, 31, tzinfo=timezone.utc), 1).day == 28
        assert calculate_end_date(datetime(2024, 8, 31, tzinfo=timezone.utc), 1) == datetime(
            2024, 9, 30, tzinfo=timezone.utc
        )

    def test_year_rollover(self):
        assert calculate_end_date(datetime(2024, 11, 5, tzinfo=timezone.utc), 3) == datetime(
            2025, 2, 5, tzinfo=timezone.utc
        )

    def test_negative_months_rejected(self):
        with pytest.raises(ValueError):
            calculate_end_date(NOW, -1)


def test_discounted_price():
    assert calculate_discounted_price(500000, 10) == {"final_price": 450000, "discount_amount": 50000}
    assert calculate_discounted_price(500000, 0) == {"final_price": 500000, "discount_amount": 0}
    with pytest.raises(ValueError):
        calculate_discounted_price(500000, 120)


def test_vnpay_pay_date_is_gmt_plus_7():
    assert parse_vnpay_pay_date("20240115143000") == datetime(2024, 1, 15, 7, 30, tzinfo=timezone.utc)
    assert format_vnpay_date(datetime(2024, 1, 15, 7, 30, tzinfo=timezone.utc)) == "20240115143000"
    for bad in ("", "2024-01-15", "2024011514300x"):
        with pytest.raises(ValueError):
            parse_vnpay_pay_date(bad)


def test_booking_cancel_cutoff_is_strictly_more_than_an_hour():
    assert can_cancel_booking_at(NOW + timedelta(minutes=61), NOW) is True
    assert can_cancel_booking_at(NOW + timedelta(hours=1), NOW) is False
    assert can_cancel_booking_at(NOW - timedelta(hours=2), NOW) is False


def test_overlaps_is_half_open():
    nine, ten, eleven = (NOW.replace(hour=h) for h in (9, 10, 11))
    assert overlaps(nine, ten, ten, eleven) is False
    assert overlaps(ten, eleven, nine, ten) is False
    assert overlaps(nine, eleven, ten, ten + timedelta(minutes=30)) is True
    assert overlaps(nine, ten + timedelta(minutes=1), ten, eleven) is True


class TestGenerateClassSessions:
    @pytest.fixture
    def gym_class(self):
        # Monday 11 March to Sunday 17 March 2024, local time
        return {
            "_id": "yoga",
            "name": "Morning Yoga",
            "start_date": datetime(2024, 3, 10, 17, 0, tzinfo=timezone.utc),
            "end_date": datetime(2024, 3, 17, 16, 59, tzinfo=timezone.utc),
            "trainers": ["pt-1"],
            "recurrence": [
                {"day_of_week": 0, "start_time": {"hour": 18}, "end_time": {"hour": 19}, "room_id": "r1"},
                {"day_of_week": 2, "start_time": {"hour": 7}, "end_time": {"hour": 8, "minute": 30}},
            ],
        }

    def test_expands_weekly_rules_in_local_time(self, gym_class):
        sessions = generate_class_sessions(gym_class, NOW)

        assert [s["start_time"] for s in sessions] == [
            datetime(2024, 3, 11, 11, 0, tzinfo=timezone.utc),
            datetime(2024, 3, 13, 0, 0, tzinfo=timezone.utc),
        ]
        assert sessions[0]["room_id"] == "r1"
        assert sessions[1]["hours"] == 1.5
        assert all(s["users"] == [] and s["trainers"] == ["pt-1"] for s in sessions)
        assert all(s["class_id"] == "yoga" for s in sessions)

    def test_skips_past_sessions(self, gym_class):
        sessions = generate_class_sessions(gym_class, datetime(2024, 3, 12, tzinfo=timezone.utc))
        assert len(sessions) == 1
        assert sessions[0]["start_time"].day == 13


def test_day_bounds_use_gym_timezone():
    start, end = day_bounds(NOW)
    assert start == datetime(2024, 3, 9, 17, 0, tzinfo=timezone.utc)
    assert end == datetime(2024, 3, 10, 17, 0, tzinfo=timezone.utc)
