"""
Subscriber Models

Behavioral profile of a newsletter subscriber and the engagement history
used by the prediction heuristics.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, List, Any
from enum import Enum

logger = logging.getLogger(__name__)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO strings and datetimes into naive UTC datetimes"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Ignoring unparseable timestamp: {value!r}")
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


class RiskTolerance(Enum):
    """Investment risk appetite"""
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class ExperienceLevel(Enum):
    """Investing experience"""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class PortfolioSize(Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    INSTITUTIONAL = "institutional"


class TimeHorizon(Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class CommunicationStyle(Enum):
    FORMAL = "formal"
    CASUAL = "casual"
    TECHNICAL = "technical"
    EDUCATIONAL = "educational"
    PROFESSIONAL = "professional"


class ContentDepth(Enum):
    SUMMARY = "summary"
    DETAILED = "detailed"
    COMPREHENSIVE = "comprehensive"


class VisualPreference(Enum):
    CHARTS = "charts"
    TEXT = "text"
    MIXED = "mixed"


@dataclass(frozen=True)
class SubscriberProfile:
    """
    Full behavioral profile of one subscriber.

    Profiles are never patched in place: the profile builder reconstructs
    them wholesale from the current subscriber and engagement data.
    """
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    joined_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None

    # Investment profile
    risk_tolerance: RiskTolerance = RiskTolerance.MODERATE
    investment_goals: List[str] = field(default_factory=list)
    experience_level: ExperienceLevel = ExperienceLevel.INTERMEDIATE
    portfolio_size: PortfolioSize = PortfolioSize.MEDIUM
    time_horizon: TimeHorizon = TimeHorizon.LONG

    # Behavioral data
    engagement_score: float = 0.0  # 0-100
    open_rate: float = 0.0  # 0-1
    click_rate: float = 0.0  # 0-1
    reading_time: float = 0.0  # average seconds
    preferred_content_types: List[str] = field(default_factory=list)
    active_hours: List[int] = field(default_factory=list)

    # Market interests
    sectors: List[str] = field(default_factory=list)
    asset_classes: List[str] = field(default_factory=list)
    market_cap: List[str] = field(default_factory=list)
    geographic_focus: List[str] = field(default_factory=list)

    # Personalization preferences
    communication_style: CommunicationStyle = CommunicationStyle.PROFESSIONAL
    content_depth: ContentDepth = ContentDepth.DETAILED
    visual_preference: VisualPreference = VisualPreference.MIXED

    # Derived scores
    churn_risk: float = 0.0  # 0-1
    lifetime_value: float = 0.0
    influence_score: float = 50.0  # 0-100

    # Free-form attributes usable by custom cohort filters
    custom_attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.last_name]
        return " ".join(p for p in parts if p) or "Subscriber"

    def get_attribute(self, name: str) -> Any:
        """Look up a profile field, falling back to custom attributes"""
        if hasattr(self, name):
            value = getattr(self, name)
            return value.value if isinstance(value, Enum) else value
        return self.custom_attributes.get(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
            "last_active_at": self.last_active_at.isoformat() if self.last_active_at else None,
            "risk_tolerance": self.risk_tolerance.value,
            "investment_goals": list(self.investment_goals),
            "experience_level": self.experience_level.value,
            "portfolio_size": self.portfolio_size.value,
            "time_horizon": self.time_horizon.value,
            "engagement_score": round(self.engagement_score, 2),
            "open_rate": round(self.open_rate, 4),
            "click_rate": round(self.click_rate, 4),
            "reading_time": round(self.reading_time, 1),
            "preferred_content_types": list(self.preferred_content_types),
            "active_hours": list(self.active_hours),
            "sectors": list(self.sectors),
            "asset_classes": list(self.asset_classes),
            "market_cap": list(self.market_cap),
            "geographic_focus": list(self.geographic_focus),
            "communication_style": self.communication_style.value,
            "content_depth": self.content_depth.value,
            "visual_preference": self.visual_preference.value,
            "churn_risk": round(self.churn_risk, 4),
            "lifetime_value": round(self.lifetime_value, 2),
            "influence_score": round(self.influence_score, 2),
            "custom_attributes": dict(self.custom_attributes),
        }


@dataclass
class SubscriberHistory:
    """
    Aggregated send history for one subscriber.
    """
    emails_sent: int = 0
    emails_opened: int = 0
    emails_clicked: int = 0
    average_reading_time: float = 0.0
    last_engagement: Optional[datetime] = None

    @property
    def open_rate(self) -> Optional[float]:
        return self.emails_opened / self.emails_sent if self.emails_sent > 0 else None

    @property
    def click_rate(self) -> Optional[float]:
        return self.emails_clicked / self.emails_sent if self.emails_sent > 0 else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubscriberHistory":
        data = dict(data)
        data["last_engagement"] = parse_datetime(data.get("last_engagement"))
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)
