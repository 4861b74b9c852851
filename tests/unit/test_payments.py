"""
Unit tests for the payment cycle alert evaluator.

Tests the day rounding at its boundaries, badge classification, the bulk
alert partition and the display labels.
"""

from datetime import timedelta

import pytest

from fieldlink.payments import (
    CATEGORY_CURRENT,
    CATEGORY_DUE_SOON,
    CATEGORY_OVERDUE,
    PaymentClassification,
    badge_label,
    classify,
    cycle_label,
    days_until,
    partition_alerts,
)


class TestDaysUntil:
    """Tests for whole-day rounding."""

    @pytest.mark.parametrize(
        "delta,expected",
        [
            (timedelta(0), 0),
            (timedelta(seconds=1), 1),
            (timedelta(hours=30), 2),
            (timedelta(days=7), 7),
            (timedelta(seconds=-1), -1),
            (timedelta(days=-1), -1),
            (timedelta(days=-1, seconds=-1), -2),
        ],
    )
    def test_rounding(self, fixed_now, delta, expected):
        assert days_until(fixed_now + delta, now=fixed_now) == expected

    def test_iso_string(self, fixed_now):
        assert days_until("2024-06-03T12:00:00Z", now=fixed_now) == 2


class TestClassify:
    """Tests for per-site badge classification."""

    def test_due_now(self, fixed_now):
        result = classify(fixed_now, now=fixed_now)

        assert result == PaymentClassification(CATEGORY_DUE_SOON, 0)

    def test_due_in_seven_days(self, fixed_now):
        result = classify(fixed_now + timedelta(days=7), now=fixed_now)

        assert result.category == CATEGORY_DUE_SOON
        assert result.days == 7

    def test_just_outside_window(self, fixed_now):
        result = classify(fixed_now + timedelta(days=7, seconds=1), now=fixed_now)

        assert result.category == CATEGORY_CURRENT
        assert not result.is_due_soon

    def test_one_second_late(self, fixed_now):
        result = classify(fixed_now - timedelta(seconds=1), now=fixed_now)

        assert result.category == CATEGORY_OVERDUE
        assert result.days == 1
        assert result.is_overdue

    def test_no_date(self, fixed_now):
        assert classify(None, now=fixed_now) is None
        assert classify("", now=fixed_now) is None

    def test_cycle_is_carried(self, fixed_now):
        result = classify(fixed_now + timedelta(days=3), cycle="quarterly", now=fixed_now)

        assert result.cycle == "quarterly"
        assert result.days == 3


class TestPartitionAlerts:
    """Tests for the bulk overdue and upcoming lists."""

    def test_default_window(self, sample_sites, fixed_now):
        result = partition_alerts(sample_sites, upcoming_window_days=7, now=fixed_now)

        assert [a.site_id for a in result.overdue] == ["s_overdue_long", "s_overdue_short"]
        assert [a.days for a in result.overdue] == [10, 1]
        assert [a.site_id for a in result.upcoming] == ["s_today"]
        assert result.upcoming[0].days == 0
        assert result.has_alerts

    def test_wider_window(self, sample_sites, fixed_now):
        """Test the bulk window is independent of the badge window."""
        result = partition_alerts(sample_sites, upcoming_window_days=14, now=fixed_now)

        assert [a.site_id for a in result.upcoming] == ["s_today", "s_ten_days"]
        assert result.upcoming[1].days == 10
        assert classify(sample_sites[3]["nextPaymentDate"], now=fixed_now).category == CATEGORY_CURRENT

    def test_lists_are_disjoint(self, sample_sites, fixed_now):
        result = partition_alerts(sample_sites, upcoming_window_days=365, now=fixed_now)

        overdue_ids = {a.site_id for a in result.overdue}
        upcoming_ids = {a.site_id for a in result.upcoming}
        assert not overdue_ids & upcoming_ids
        assert "s_no_date" not in overdue_ids | upcoming_ids
        assert "s_far" in upcoming_ids

    def test_bad_date_is_skipped(self, fixed_now):
        sites = [
            {"_id": "bad", "name": "Broken", "nextPaymentDate": "not a date"},
            {"_id": "ok", "name": "Fine", "nextPaymentDate": fixed_now.isoformat()},
        ]

        result = partition_alerts(sites, now=fixed_now)

        assert [a.site_id for a in result.upcoming] == ["ok"]

    def test_no_alerts(self, fixed_now):
        result = partition_alerts([], now=fixed_now)

        assert not result.has_alerts

    def test_alert_fields(self, sample_sites, fixed_now):
        result = partition_alerts(sample_sites, now=fixed_now)
        alert = result.overdue[1]

        assert alert.name == "East Gate"
        assert alert.client_name == "Globex"
        assert alert.cycle == "monthly"
        assert result.upcoming[0].client_name is None


class TestLabels:
    """Tests for display labels."""

    @pytest.mark.parametrize(
        "cycle,expected",
        [
            ("monthly", "Monthly"),
            ("quarterly", "Quarterly"),
            ("semi_annual", "Semi-annual"),
            ("annual", "Annual"),
            (None, "Monthly"),
            ("weekly", "weekly"),
        ],
    )
    def test_cycle_label(self, cycle, expected):
        assert cycle_label(cycle) == expected

    def test_badge_labels(self):
        assert badge_label(PaymentClassification(CATEGORY_OVERDUE, 3)) == "Overdue (3d)"
        assert badge_label(PaymentClassification(CATEGORY_DUE_SOON, 0)) == "Due in 0d"
        assert badge_label(PaymentClassification(CATEGORY_CURRENT, 30)) == "Up to date"
        assert badge_label(None) == ""
