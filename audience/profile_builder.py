"""
Profile Builder

Turns a raw subscriber record (identity, declared preferences and
engagement counters) into a SubscriberProfile.

Profiles are rebuilt from scratch on every call. Given the same raw record
and the same `as_of`, the output is always equal.
"""
import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional, Dict, List, Any, Type
from enum import Enum

from exceptions import NotFoundError
from models.subscriber import (
    SubscriberProfile,
    SubscriberHistory,
    RiskTolerance,
    ExperienceLevel,
    PortfolioSize,
    TimeHorizon,
    CommunicationStyle,
    ContentDepth,
    VisualPreference,
    parse_datetime,
)
from audience.predictions import Predictor

logger = logging.getLogger(__name__)


# Engagement score components (max points each; they sum to 100)
OPEN_RATE_POINTS = 40
CLICK_RATE_POINTS = 30
READING_TIME_POINTS = 15
RECENCY_POINTS = 15

OPEN_RATE_TARGET = 0.6
CLICK_RATE_TARGET = 0.15
READING_TIME_TARGET = 180  # seconds

# Raw keys consumed by the builder itself; anything else becomes a custom attribute
KNOWN_KEYS = {
    "id", "email", "first_name", "last_name", "joined_at", "last_active_at",
    "risk_tolerance", "investment_goals", "experience_level", "portfolio_size",
    "time_horizon", "engagement_score", "open_rate", "click_rate", "reading_time",
    "preferred_content_types", "active_hours", "sectors", "asset_classes",
    "market_cap", "geographic_focus", "communication_style", "content_depth",
    "visual_preference", "influence_score", "emails_sent", "emails_opened",
    "emails_clicked", "total_reading_seconds", "referrals", "shares",
    "custom_attributes", "churn_risk", "lifetime_value",
}


def _enum_value(enum_cls: Type[Enum], value: Any, default: Enum) -> Enum:
    if isinstance(value, enum_cls):
        return value
    if value is None:
        return default
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        logger.debug(f"Unknown {enum_cls.__name__} value {value!r}, using {default.value}")
        return default


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value) if value is not None and value != "" else default
    except (TypeError, ValueError):
        return default


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value) if value is not None and value != "" else default
    except (TypeError, ValueError):
        return default


class ProfileBuilder:
    """
    Builds subscriber profiles from raw records.

    Usage:
        builder = ProfileBuilder()
        profile = builder.build_profile("sub_1", store.get_subscriber_record(tenant_id, "sub_1"))
    """

    def __init__(self, predictor: Optional[Predictor] = None):
        self.predictor = predictor or Predictor()

    def build_profile(
        self,
        subscriber_id: str,
        raw_data: Optional[Dict[str, Any]],
        as_of: Optional[datetime] = None
    ) -> SubscriberProfile:
        """
        Build a profile.

        Args:
            subscriber_id: Subscriber id
            raw_data: Raw record, or None when the subscriber does not exist
            as_of: Reference time for recency calculations

        Raises:
            NotFoundError: if raw_data is None
        """
        if raw_data is None:
            raise NotFoundError("subscriber", subscriber_id)

        as_of = as_of or datetime.utcnow()
        history = self.history_from_raw(raw_data)
        last_active_at = history.last_engagement

        open_rate = self._rate(raw_data.get("open_rate"), history.open_rate)
        click_rate = self._rate(raw_data.get("click_rate"), history.click_rate)
        reading_time = _float(raw_data.get("reading_time"), history.average_reading_time)

        if raw_data.get("engagement_score") is not None:
            engagement_score = max(0.0, min(100.0, _float(raw_data["engagement_score"])))
        else:
            engagement_score = self.engagement_score(open_rate, click_rate, reading_time, last_active_at, as_of)

        influence_score = self.influence_score(raw_data)

        custom_attributes = dict(raw_data.get("custom_attributes") or {})
        for key, value in raw_data.items():
            if key not in KNOWN_KEYS:
                custom_attributes.setdefault(key, value)

        profile = SubscriberProfile(
            id=subscriber_id,
            email=str(raw_data.get("email") or ""),
            first_name=raw_data.get("first_name"),
            last_name=raw_data.get("last_name"),
            joined_at=parse_datetime(raw_data.get("joined_at")),
            last_active_at=last_active_at,
            risk_tolerance=_enum_value(RiskTolerance, raw_data.get("risk_tolerance"), RiskTolerance.MODERATE),
            investment_goals=_string_list(raw_data.get("investment_goals")),
            experience_level=_enum_value(ExperienceLevel, raw_data.get("experience_level"), ExperienceLevel.INTERMEDIATE),
            portfolio_size=_enum_value(PortfolioSize, raw_data.get("portfolio_size"), PortfolioSize.MEDIUM),
            time_horizon=_enum_value(TimeHorizon, raw_data.get("time_horizon"), TimeHorizon.LONG),
            engagement_score=engagement_score,
            open_rate=open_rate,
            click_rate=click_rate,
            reading_time=reading_time,
            preferred_content_types=_string_list(raw_data.get("preferred_content_types")),
            active_hours=sorted({_int(h) for h in (raw_data.get("active_hours") or []) if 0 <= _int(h, -1) <= 23}),
            sectors=_string_list(raw_data.get("sectors")),
            asset_classes=_string_list(raw_data.get("asset_classes")),
            market_cap=_string_list(raw_data.get("market_cap")),
            geographic_focus=_string_list(raw_data.get("geographic_focus")),
            communication_style=_enum_value(
                CommunicationStyle, raw_data.get("communication_style"), CommunicationStyle.PROFESSIONAL
            ),
            content_depth=_enum_value(ContentDepth, raw_data.get("content_depth"), ContentDepth.DETAILED),
            visual_preference=_enum_value(VisualPreference, raw_data.get("visual_preference"), VisualPreference.MIXED),
            influence_score=influence_score,
            custom_attributes=custom_attributes,
        )

        # Derived scores depend on the rest of the profile
        churn_risk = self.predictor.churn_risk(profile, as_of=as_of)
        lifetime_value = self.predictor.lifetime_value(engagement_score, influence_score)

        return replace(profile, churn_risk=churn_risk, lifetime_value=lifetime_value)

    def build_profiles(
        self,
        records: Dict[str, Dict[str, Any]],
        as_of: Optional[datetime] = None
    ) -> List[SubscriberProfile]:
        """Build profiles for a mapping of subscriber id to raw record"""
        as_of = as_of or datetime.utcnow()
        return [self.build_profile(sid, raw, as_of) for sid, raw in records.items()]

    @staticmethod
    def history_from_raw(raw_data: Dict[str, Any]) -> SubscriberHistory:
        sent = _int(raw_data.get("emails_sent"))
        opened = _int(raw_data.get("emails_opened"))
        clicked = _int(raw_data.get("emails_clicked"))
        total_reading = _float(raw_data.get("total_reading_seconds"))
        return SubscriberHistory(
            emails_sent=sent,
            emails_opened=opened,
            emails_clicked=clicked,
            average_reading_time=total_reading / max(opened, 1),
            last_engagement=parse_datetime(raw_data.get("last_active_at")),
        )

    @staticmethod
    def engagement_score(
        open_rate: float,
        click_rate: float,
        reading_time: float,
        last_active_at: Optional[datetime],
        as_of: datetime
    ) -> float:
        """Weighted 0-100 score from rates, reading time and recency"""
        score = (
            min(open_rate / OPEN_RATE_TARGET, 1.0) * OPEN_RATE_POINTS
            + min(click_rate / CLICK_RATE_TARGET, 1.0) * CLICK_RATE_POINTS
            + min(reading_time / READING_TIME_TARGET, 1.0) * READING_TIME_POINTS
        )

        if last_active_at is not None:
            days = (as_of - last_active_at).days
            if days <= 7:
                score += RECENCY_POINTS
            elif days <= 30:
                score += RECENCY_POINTS / 2

        return max(0.0, min(100.0, score))

    @staticmethod
    def influence_score(raw_data: Dict[str, Any]) -> float:
        if raw_data.get("influence_score") is not None:
            return max(0.0, min(100.0, _float(raw_data["influence_score"], 50.0)))
        if "referrals" in raw_data or "shares" in raw_data:
            referrals = _int(raw_data.get("referrals"))
            shares = _int(raw_data.get("shares"))
            return max(0.0, min(100.0, 25.0 + 10 * referrals + 5 * shares))
        return 50.0

    @staticmethod
    def _rate(explicit: Any, derived: Optional[float]) -> float:
        if explicit is not None and explicit != "":
            value = _float(explicit)
        elif derived is not None:
            value = derived
        else:
            return 0.0
        # Accept percentages as well as fractions
        if value > 1:
            value = value / 100
        return max(0.0, min(1.0, value))
