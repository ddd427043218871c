"""
Tests for profile building from raw subscriber records
"""
from datetime import timedelta

import pytest

from exceptions import NotFoundError
from audience.profile_builder import ProfileBuilder, parse_datetime
from models.subscriber import (
    RiskTolerance,
    ExperienceLevel,
    TimeHorizon,
    CommunicationStyle,
)

from conftest import AS_OF


@pytest.fixture
def builder():
    return ProfileBuilder()


def raw_record(**overrides):
    record = {
        "email": "ada@example.com",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "risk_tolerance": "aggressive",
        "experience_level": "expert",
        "sectors": ["Technology", "Energy"],
        "active_hours": [7, 6, 25],
        "emails_sent": 20,
        "emails_opened": 12,
        "emails_clicked": 3,
        "total_reading_seconds": 2160,
        "last_active_at": (AS_OF - timedelta(days=3)).isoformat(),
    }
    record.update(overrides)
    return record


class TestBuildProfile:

    def test_missing_subscriber_raises_not_found(self, builder):
        with pytest.raises(NotFoundError) as exc_info:
            builder.build_profile("ghost", None, AS_OF)

        assert exc_info.value.resource_id == "ghost"
        assert exc_info.value.to_dict()["error"] == "NOT_FOUND"

    def test_empty_record_gets_defaults(self, builder):
        profile = builder.build_profile("sub_1", {}, AS_OF)

        assert profile.risk_tolerance == RiskTolerance.MODERATE
        assert profile.experience_level == ExperienceLevel.INTERMEDIATE
        assert profile.time_horizon == TimeHorizon.LONG
        assert profile.communication_style == CommunicationStyle.PROFESSIONAL
        assert profile.sectors == []
        assert profile.engagement_score == 0.0
        assert profile.influence_score == 50.0
        assert profile.full_name == "Subscriber"

    def test_unknown_enum_values_fall_back_to_defaults(self, builder):
        profile = builder.build_profile("sub_1", {"risk_tolerance": "yolo", "experience_level": "EXPERT"}, AS_OF)

        assert profile.risk_tolerance == RiskTolerance.MODERATE
        assert profile.experience_level == ExperienceLevel.EXPERT

    def test_rates_and_engagement_derived_from_counters(self, builder):
        profile = builder.build_profile("sub_1", raw_record(), AS_OF)

        assert profile.open_rate == pytest.approx(0.6)
        assert profile.click_rate == pytest.approx(0.15)
        assert profile.reading_time == pytest.approx(180.0)
        # Full marks on every component plus recent activity
        assert profile.engagement_score == pytest.approx(100.0)
        assert profile.churn_risk == 0.0
        assert profile.last_active_at == AS_OF - timedelta(days=3)

    def test_explicit_percentages_are_normalized(self, builder):
        profile = builder.build_profile("sub_1", {"open_rate": 45, "click_rate": "0.1"}, AS_OF)

        assert profile.open_rate == pytest.approx(0.45)
        assert profile.click_rate == pytest.approx(0.1)

    def test_active_hours_are_sorted_and_validated(self, builder):
        profile = builder.build_profile("sub_1", raw_record(), AS_OF)

        assert profile.active_hours == [6, 7]

    def test_unknown_keys_become_custom_attributes(self, builder):
        profile = builder.build_profile("sub_1", raw_record(plan="premium"), AS_OF)

        assert profile.custom_attributes["plan"] == "premium"
        assert profile.get_attribute("plan") == "premium"
        assert profile.get_attribute("risk_tolerance") == "aggressive"

    def test_churn_and_lifetime_value_are_derived(self, builder):
        record = {
            "engagement_score": 20,
            "open_rate": 0.05,
            "influence_score": 50,
            "last_active_at": (AS_OF - timedelta(days=45)).isoformat(),
        }

        profile = builder.build_profile("sub_1", record, AS_OF)

        assert profile.churn_risk == pytest.approx(0.9)
        assert profile.lifetime_value == pytest.approx(40.0)

    def test_same_input_builds_equal_profiles(self, builder):
        first = builder.build_profile("sub_1", raw_record(), AS_OF)
        second = builder.build_profile("sub_1", raw_record(), AS_OF)

        assert first == second

    def test_referrals_and_shares_drive_influence(self, builder):
        profile = builder.build_profile("sub_1", {"referrals": 2, "shares": 3}, AS_OF)

        assert profile.influence_score == pytest.approx(60.0)

    def test_negative_counters_keep_influence_in_range(self, builder):
        profile = builder.build_profile("sub_1", {"referrals": -5, "shares": -2}, AS_OF)

        assert profile.influence_score == 0.0
        assert profile.lifetime_value >= 0.0


class TestParseDatetime:

    def test_zulu_timestamps_become_naive_utc(self):
        parsed = parse_datetime("2024-06-03T12:00:00Z")

        assert parsed == AS_OF
        assert parsed.tzinfo is None

    def test_offsets_are_converted_to_utc(self):
        assert parse_datetime("2024-06-03T14:00:00+02:00") == AS_OF

    def test_garbage_is_ignored(self):
        assert parse_datetime("not a date") is None
        assert parse_datetime("") is None
