"""Tests for the expiry status, reminder and date rules."""

from datetime import date, datetime, timezone
from datetime import timedelta as td

import pytest
from pydantic import ValidationError

from expiro.core.config import Settings
from expiro.utils.dates import (
    as_utc,
    parse_expiry_date,
    start_of_day_utc,
    to_calendar_date,
    today,
)
from expiro.utils.expiry import (
    ProductStatus,
    bucket_for,
    build_buckets,
    classify_status,
    compute_reminder_date,
)

DAY = date(2026, 3, 10)


class TestClassifyStatus:
    """Tests for classify_status."""

    @pytest.mark.parametrize(
        "offset, expected",
        [
            (-30, ProductStatus.EXPIRED),
            (-1, ProductStatus.EXPIRED),
            (0, ProductStatus.EXPIRING_SOON),
            (1, ProductStatus.EXPIRING_SOON),
            (90, ProductStatus.EXPIRING_SOON),
            (91, ProductStatus.SAFE),
            (365, ProductStatus.SAFE),
        ],
    )
    def test_default_threshold_boundaries(self, offset, expected):
        """The threshold day itself is still expiring soon."""
        assert classify_status(DAY + td(days=offset), DAY, 90) == expected

    def test_custom_threshold(self):
        """A smaller threshold moves the safe boundary."""
        assert (
            classify_status(DAY + td(days=30), DAY, 30)
            == ProductStatus.EXPIRING_SOON
        )
        assert classify_status(DAY + td(days=31), DAY, 30) == ProductStatus.SAFE

    def test_same_inputs_same_result(self):
        """Classification only depends on its arguments."""
        expiry = DAY + td(days=45)
        results = {classify_status(expiry, DAY, 90) for _ in range(5)}
        assert results == {ProductStatus.EXPIRING_SOON}

    def test_status_values(self):
        """Statuses serialize to their stored names."""
        assert [status.value for status in ProductStatus] == [
            "safe",
            "expiring_soon",
            "expired",
        ]


class TestComputeReminderDate:
    """Tests for compute_reminder_date."""

    def test_far_expiry_reminds_threshold_days_before(self):
        """A product beyond the threshold is reminded 90 days ahead."""
        expiry = DAY + td(days=200)
        assert compute_reminder_date(expiry, DAY, 90) == expiry - td(days=90)

    def test_just_beyond_threshold(self):
        """91 days out, the reminder fires tomorrow."""
        assert compute_reminder_date(DAY + td(days=91), DAY, 90) == DAY + td(
            days=1
        )

    def test_within_threshold_reminds_today(self):
        """Products already expiring soon are reminded immediately."""
        assert compute_reminder_date(DAY + td(days=90), DAY, 90) == DAY
        assert compute_reminder_date(DAY + td(days=3), DAY, 90) == DAY

    def test_expired_reminds_today(self):
        """Already expired products are reminded immediately."""
        assert compute_reminder_date(DAY - td(days=10), DAY, 90) == DAY

    def test_reminder_never_in_past_nor_after_expiry(self):
        """The reminder falls between today and the expiry date."""
        for offset in range(0, 400, 7):
            expiry = DAY + td(days=offset)
            reminder = compute_reminder_date(expiry, DAY, 90)
            assert DAY <= reminder <= expiry


class TestBuckets:
    """Tests for build_buckets and bucket_for."""

    def test_default_bucket_keys(self):
        """Buckets are ordered from most to least urgent."""
        buckets = build_buckets([90, 60, 30, 7, 0], 90)
        assert [bucket.key for bucket in buckets] == [
            "expired",
            "due_today",
            "due_in_7",
            "due_in_30",
            "due_in_60",
            "due_in_90",
        ]

    def test_threshold_is_always_an_edge(self):
        """The last bucket ends at the status threshold."""
        buckets = build_buckets([30, 7], 90)
        assert buckets[-1].key == "due_in_90"
        assert buckets[-1].upper_days == 90

    @pytest.mark.parametrize(
        "offset, key",
        [
            (-1, "expired"),
            (0, "due_today"),
            (1, "due_in_7"),
            (7, "due_in_7"),
            (8, "due_in_30"),
            (60, "due_in_60"),
            (61, "due_in_90"),
            (90, "due_in_90"),
        ],
    )
    def test_bucket_for(self, offset, key):
        """Products land in the most urgent bucket that covers them."""
        buckets = build_buckets([90, 60, 30, 7, 0], 90)
        bucket = bucket_for(DAY + td(days=offset), DAY, buckets)
        assert bucket is not None
        assert bucket.key == key

    def test_beyond_every_bucket(self):
        """Safe products are in no bucket."""
        buckets = build_buckets([90, 60, 30, 7, 0], 90)
        assert bucket_for(DAY + td(days=91), DAY, buckets) is None

    def test_labels(self):
        """Labels are human readable."""
        buckets = {bucket.key: bucket for bucket in build_buckets([7, 0], 90)}
        assert buckets["due_today"].label == "Expires today"
        assert buckets["due_in_7"].label == "7 days until expiry"
        assert buckets["expired"].label == "Expired"


class TestDates:
    """Tests for the date helpers."""

    def test_calendar_date_in_reference_timezone(self):
        """Late UTC evening is already tomorrow in Tokyo."""
        moment = datetime(2026, 3, 10, 23, 30, tzinfo=timezone.utc)
        assert to_calendar_date(moment, "UTC") == date(2026, 3, 10)
        assert to_calendar_date(moment, "Asia/Tokyo") == date(2026, 3, 11)

    def test_naive_datetime_is_utc(self):
        """Naive datetimes are read as UTC."""
        assert to_calendar_date(
            datetime(2026, 3, 10, 23, 30), "Asia/Tokyo"
        ) == date(2026, 3, 11)

    def test_today_with_clock_override(self):
        """today() truncates the given clock."""
        moment = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
        assert today(moment, "UTC") == date(2026, 3, 10)

    def test_start_of_day_utc(self):
        """Midnight in Paris is 23:00 UTC the day before in winter."""
        assert start_of_day_utc(date(2026, 3, 10), "Europe/Paris") == datetime(
            2026, 3, 9, 23, 0, tzinfo=timezone.utc
        )

    @pytest.mark.parametrize(
        "value",
        [
            "2025-01-01",
            " 2025-01-01 ",
            "2025-01-01T10:00:00",
            date(2025, 1, 1),
            datetime(2025, 1, 1, 10, 0),
        ],
    )
    def test_parse_expiry_date(self, value):
        """Dates, datetimes and ISO strings are accepted."""
        assert parse_expiry_date(value) == date(2025, 1, 1)

    def test_parse_expiry_date_rejects_garbage(self):
        """Unparseable input raises ValueError."""
        with pytest.raises(ValueError):
            parse_expiry_date("not-a-date")

    def test_as_utc(self):
        """Naive values are tagged, aware values converted."""
        naive = datetime(2026, 3, 10, 9, 0)
        assert as_utc(naive).tzinfo == timezone.utc
        paris = datetime.fromisoformat("2026-03-10T10:00:00+01:00")
        assert as_utc(paris) == datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


class TestSettingsValidation:
    """Tests for the dispatch and expiry settings."""

    def test_milestones_sorted_and_deduplicated(self):
        """Milestones are normalized to descending order."""
        settings = Settings(reminder_milestones=[7, 30, 7, 0])
        assert settings.reminder_milestones == [30, 7, 0]

    def test_milestone_beyond_threshold_rejected(self):
        """Milestones cannot exceed the status threshold."""
        with pytest.raises(ValidationError):
            Settings(reminder_milestones=[120], expiry_threshold_days=90)

    def test_negative_milestone_rejected(self):
        """Milestones must not be negative."""
        with pytest.raises(ValidationError):
            Settings(reminder_milestones=[30, -1])

    def test_batch_size_must_be_positive(self):
        """A batch holds at least one product."""
        with pytest.raises(ValidationError):
            Settings(notification_batch_size=0)
