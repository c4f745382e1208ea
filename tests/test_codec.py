"""Tests for duration, date and lag encoding."""

from datetime import date, datetime

import pytest

from project_interchange.core import codec
from project_interchange.core.identity import (
    APP_TO_WIRE,
    WIRE_TO_APP,
    normalize_external_id,
    to_app_link_type,
    to_wire_link_type,
)
from project_interchange.core.models import LinkType, WireLinkType


class TestDuration:
    def test_whole_days(self):
        assert codec.format_duration(1) == "PT8H0M0S"
        assert codec.format_duration(5) == "PT40H0M0S"

    def test_fractional_days_round_to_hours(self):
        assert codec.format_duration(0.5) == "PT4H0M0S"
        assert codec.format_duration(10.25) == "PT82H0M0S"
        assert codec.format_duration(0.0625) == "PT1H0M0S"

    def test_missing_or_invalid_is_zero(self):
        assert codec.format_duration(None) == "PT0H0M0S"
        assert codec.format_duration("abc") == "PT0H0M0S"
        assert codec.format_duration(float("nan")) == "PT0H0M0S"
        assert codec.format_duration(-3) == "PT0H0M0S"

    def test_parse(self):
        assert codec.parse_duration("PT8H0M0S") == 1.0
        assert codec.parse_duration("PT7H30M0S") == pytest.approx(0.9375)
        assert codec.parse_duration("PT0H0M0S") == 0.0

    def test_parse_rejects_garbage(self):
        assert codec.parse_duration(None) is None
        assert codec.parse_duration("") is None
        assert codec.parse_duration("PT") is None
        assert codec.parse_duration("eight hours") is None

    @pytest.mark.parametrize("days", [0, 0.5, 1, 5, 10.25])
    def test_round_trip_within_hour_rounding(self, days):
        decoded = codec.parse_duration(codec.format_duration(days))
        assert decoded == pytest.approx(round(days * 8) / 8)


class TestWork:
    def test_format_rounds_hours(self):
        assert codec.format_work(7.6) == "PT8H0M0S"
        assert codec.format_work(None) == "PT0H0M0S"

    def test_parse_minutes(self):
        assert codec.parse_work("PT8H30M0S") == 8.5


class TestLag:
    def test_format(self):
        assert codec.format_lag(2) == 9600
        assert codec.format_lag(-0.5) == -2400

    def test_zero_lag_has_no_wire_form(self):
        assert codec.format_lag(0) is None
        assert codec.format_lag(None) is None

    def test_parse(self):
        assert codec.parse_lag("9600") == 2.0
        assert codec.parse_lag("-4800") == -1.0

    def test_zero_parses_as_no_lag(self):
        assert codec.parse_lag("0") is None
        assert codec.parse_lag(None) is None


class TestDates:
    def test_date_only_is_anchored_at_noon(self):
        assert codec.format_date("2024-01-01") == "2024-01-01T12:00:00"
        assert codec.format_date(date(2024, 1, 1)) == "2024-01-01T12:00:00"

    def test_timestamp_keeps_time(self):
        assert codec.format_date("2024-01-01T08:30:00") == "2024-01-01T08:30:00"
        assert codec.format_date(datetime(2024, 1, 1, 17, 0)) == "2024-01-01T17:00:00"

    def test_aware_timestamp_converted_to_utc(self):
        assert codec.format_date("2024-01-01T23:00:00+02:00") == "2024-01-01T21:00:00"

    def test_out_of_range_timestamp_is_absent(self):
        assert codec.to_datetime("0001-01-01T00:00:00+05:00") is None
        assert codec.format_date("9999-12-31T23:00:00-05:00") == ""
        assert codec.parse_date("0001-01-01T00:00:00+05:00") is None

    def test_invalid_is_empty(self):
        assert codec.format_date("not a date") == ""
        assert codec.format_date(None) == ""
        assert codec.format_date("") == ""
        assert codec.format_date(42) == ""

    def test_parse(self):
        assert codec.parse_date("2024-03-05T17:00:00") == date(2024, 3, 5)
        assert codec.parse_date("2024-03-05") == date(2024, 3, 5)
        assert codec.parse_date("junk") is None
        assert codec.parse_date(None) is None

    def test_inclusive_exclusive_conversion(self):
        assert codec.exclusive_end(date(2024, 2, 10)) == date(2024, 2, 11)
        assert codec.inclusive_finish("2024-02-11") == date(2024, 2, 10)
        assert codec.inclusive_finish("garbage") is None

    def test_inclusive_day_count(self):
        assert codec.inclusive_day_count("2024-01-01", "2024-01-05") == 5
        assert codec.inclusive_day_count("2024-01-01", "2024-01-01") == 1
        assert codec.inclusive_day_count("2024-01-05", "2024-01-01") == 1
        assert codec.inclusive_day_count(None, "2024-01-01") is None


class TestNumbers:
    def test_format_number(self):
        assert codec.format_number(1.0) == "1"
        assert codec.format_number(0.5) == "0.5"
        assert codec.format_number(1 / 3) == "0.333333"
        assert codec.format_number(None) == "0"

    def test_clamp_percent(self):
        assert codec.clamp_percent(150) == 100.0
        assert codec.clamp_percent(-5) == 0.0
        assert codec.clamp_percent("x") == 0.0

    def test_to_number_ignores_bools(self):
        assert codec.to_number(True) is None
        assert codec.to_number("2.5") == 2.5


class TestLinkTypes:
    def test_tables_are_inverse(self):
        for app_type, wire_type in APP_TO_WIRE.items():
            assert WIRE_TO_APP[wire_type] == app_type
        assert len(APP_TO_WIRE) == len(WIRE_TO_APP) == 4

    def test_conventions_differ(self):
        assert to_wire_link_type(LinkType.FINISH_TO_START) == WireLinkType.FINISH_TO_START == 1
        assert to_wire_link_type(0) == 3  # SS
        assert to_app_link_type(0) == 3  # FF

    def test_unknown_values_fall_back_to_finish_to_start(self):
        assert to_wire_link_type(99) == WireLinkType.FINISH_TO_START
        assert to_wire_link_type(None) == WireLinkType.FINISH_TO_START
        assert to_app_link_type("x") == LinkType.FINISH_TO_START

    def test_normalize_external_id(self):
        assert normalize_external_id("  abc ") == "abc"
        assert normalize_external_id("") is None
        assert normalize_external_id(None) is None
