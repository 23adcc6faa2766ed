"""Timestamp normalization tests"""

from datetime import datetime, timedelta, timezone

import pytest

from lmsnorm.core.timestamps import SECONDS_THRESHOLD, normalize_timestamp


class TestNormalizeTimestamp:
    """Test epoch and ISO inputs resolve to one UTC rendering"""

    def test_epoch_seconds_and_millis_agree(self):
        """Test seconds and the same instant in milliseconds normalize identically"""
        assert normalize_timestamp(1700000000) == "2023-11-14T22:13:20.000Z"
        assert normalize_timestamp(1700000000000) == normalize_timestamp(1700000000)

    def test_numeric_string_treated_as_epoch(self):
        """Test digit-only strings are read as epoch numbers"""
        assert normalize_timestamp("1700000000") == "2023-11-14T22:13:20.000Z"
        assert normalize_timestamp("1700000000000") == "2023-11-14T22:13:20.000Z"

    def test_millisecond_precision_kept(self):
        """Test millisecond epochs keep their fraction"""
        assert normalize_timestamp(1700000000123) == "2023-11-14T22:13:20.123Z"

    def test_iso_offset_converted_to_utc(self):
        """Test ISO strings with an offset are shifted to UTC"""
        assert normalize_timestamp("2025-09-10T16:23:00+02:00") == "2025-09-10T14:23:00.000Z"
        assert normalize_timestamp("2025-09-10T14:23:00Z") == "2025-09-10T14:23:00.000Z"

    def test_naive_iso_assumed_utc(self):
        """Test ISO strings without an offset are taken as UTC"""
        assert normalize_timestamp("2025-09-10T14:23:00") == "2025-09-10T14:23:00.000Z"

    def test_datetime_input(self):
        """Test datetime objects are accepted"""
        dt = datetime(2025, 1, 2, 3, 4, 5, 678000, tzinfo=timezone(timedelta(hours=-5)))
        assert normalize_timestamp(dt) == "2025-01-02T08:04:05.678Z"

    @pytest.mark.parametrize("value", [None, "", 0, False, "not a date", "2025-13-45", {}, []])
    def test_unusable_input_returns_none(self, value):
        """Test empty or unparseable input yields None instead of raising"""
        assert normalize_timestamp(value) is None

    def test_out_of_range_returns_none(self):
        """Test epochs beyond the representable range yield None"""
        assert normalize_timestamp(SECONDS_THRESHOLD - 1) is None

    def test_idempotent(self):
        """Test normalizing an already normalized value is a no-op"""
        once = normalize_timestamp(1757514180)
        assert once == "2025-09-10T14:23:00.000Z"
        assert normalize_timestamp(once) == once

    @pytest.mark.parametrize("seconds", [1000000000, 1500000000, 1757514180, 4102444800])
    def test_seconds_scale_to_millis(self, seconds):
        """Test every epoch-second value matches its millisecond form"""
        assert normalize_timestamp(seconds) == normalize_timestamp(seconds * 1000)
