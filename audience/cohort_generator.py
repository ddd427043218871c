"""
Cohort Generator

Rule-based cohort generation over a population of subscriber profiles.

Six independent families run over the same population, so one subscriber
can sit in several cohorts at once (aggressive, highly engaged and
Technology focused, for instance). Membership is always decided by the
cohort's own criteria, so a cohort's size is exactly the number of
profiles its criteria match.
"""
import logging
from datetime import datetime
from typing import Optional, Dict, List, Any, Callable, Sequence

from config import SegmentationConfig, get_config
from models.subscriber import SubscriberProfile
from models.cohort import (
    CohortCriteria,
    CohortDefinition,
    ContentPreferences,
    EngagementMetrics,
    ValueRange,
)
from models.market import MarketContext

logger = logging.getLogger(__name__)


def cohort_metrics(members: Sequence[SubscriberProfile]) -> EngagementMetrics:
    """Arithmetic means over members; all zeros for an empty cohort"""
    if not members:
        return EngagementMetrics()

    count = len(members)
    return EngagementMetrics(
        average_open_rate=sum(m.open_rate for m in members) / count,
        average_click_rate=sum(m.click_rate for m in members) / count,
        average_engagement=sum(m.engagement_score for m in members) / count,
        churn_rate=sum(m.churn_risk for m in members) / count,
    )


def sector_cohort_id(sector: str) -> str:
    return f"{sector.strip().lower().replace(' ', '_')}_focused"


class CohortGenerator:
    """
    Generates the full current set of cohorts for a population.

    Usage:
        generator = CohortGenerator()
        cohorts = generator.generate_cohorts(profiles, market_context)
    """

    FAMILIES = ("risk", "engagement", "experience", "sector", "behavioral", "market_responsive")

    def __init__(self, config: Optional[SegmentationConfig] = None):
        self.config = config or get_config().segmentation

    def generate_cohorts(
        self,
        profiles: Sequence[SubscriberProfile],
        market_context: Optional[MarketContext] = None,
        as_of: Optional[datetime] = None
    ) -> List[CohortDefinition]:
        """
        Run every family and return a fresh list of cohorts.

        A family that fails is logged and left out; the others still run.
        """
        as_of = as_of or datetime.utcnow()
        market_context = market_context or MarketContext.neutral()

        builders: Dict[str, Callable[[], List[CohortDefinition]]] = {
            "risk": lambda: self.risk_cohorts(profiles, as_of),
            "engagement": lambda: self.engagement_cohorts(profiles, as_of),
            "experience": lambda: self.experience_cohorts(profiles, as_of),
            "sector": lambda: self.sector_cohorts(profiles, as_of),
            "behavioral": lambda: self.behavioral_cohorts(profiles, as_of),
            "market_responsive": lambda: self.market_responsive_cohorts(profiles, market_context, as_of),
        }

        cohorts: List[CohortDefinition] = []
        for family in self.FAMILIES:
            try:
                family_cohorts = builders[family]()
            except Exception:
                logger.exception(f"Cohort family '{family}' failed, omitting it")
                continue
            logger.debug(f"Family '{family}' produced {len(family_cohorts)} cohorts")
            cohorts.extend(family_cohorts)

        logger.info(f"Generated {len(cohorts)} cohorts from {len(profiles)} profiles")
        return cohorts

    # Families

    def risk_cohorts(self, profiles: Sequence[SubscriberProfile], as_of: datetime) -> List[CohortDefinition]:
        specs = [
            {
                "id": "conservative_investors",
                "name": "Conservative Investors",
                "description": "Risk-averse investors focused on capital preservation",
                "criteria": CohortCriteria(risk_tolerance=["conservative"]),
                "characteristics": ["Low risk tolerance", "Income focused", "Stability seeking"],
                "preferences": ContentPreferences(
                    preferred_topics=["bonds", "dividends", "blue-chip stocks", "market stability"],
                    optimal_send_time="09:00",
                    preferred_frequency="weekly",
                    content_style="formal",
                ),
            },
            {
                "id": "moderate_investors",
                "name": "Balanced Investors",
                "description": "Moderate risk tolerance with balanced growth approach",
                "criteria": CohortCriteria(risk_tolerance=["moderate"]),
                "characteristics": ["Balanced approach", "Growth and income", "Diversified"],
                "preferences": ContentPreferences(
                    preferred_topics=["ETFs", "mutual funds", "market analysis", "portfolio balance"],
                    optimal_send_time="10:00",
                    preferred_frequency="bi-weekly",
                    content_style="professional",
                ),
            },
            {
                "id": "aggressive_investors",
                "name": "Growth Seekers",
                "description": "High risk tolerance focused on maximum growth",
                "criteria": CohortCriteria(risk_tolerance=["aggressive"]),
                "characteristics": ["High risk tolerance", "Growth focused", "Active trading"],
                "preferences": ContentPreferences(
                    preferred_topics=["growth stocks", "options", "crypto", "emerging markets"],
                    optimal_send_time="08:00",
                    preferred_frequency="daily",
                    content_style="dynamic",
                ),
            },
        ]
        return self._build_family("risk", specs, profiles, as_of, self.config.min_cohort_size)

    def engagement_cohorts(self, profiles: Sequence[SubscriberProfile], as_of: datetime) -> List[CohortDefinition]:
        high = self.config.high_engagement_threshold
        low = self.config.low_engagement_threshold
        specs = [
            {
                "id": "high_engagement",
                "name": "Highly Engaged Subscribers",
                "description": "Most active and engaged subscribers",
                "criteria": CohortCriteria(engagement_score=ValueRange(minimum=high)),
                "characteristics": ["High engagement", "Regular readers", "Active clickers"],
                "preferences": ContentPreferences(
                    preferred_topics=["advanced analysis", "exclusive insights", "premium content"],
                    optimal_send_time="07:30",
                    preferred_frequency="daily",
                    content_style="comprehensive",
                ),
            },
            {
                "id": "steady_readers",
                "name": "Steady Readers",
                "description": "Subscribers with consistent, moderate engagement",
                "criteria": CohortCriteria(engagement_score=ValueRange(minimum=low, maximum=high)),
                "characteristics": ["Moderate engagement", "Regular readers"],
                "preferences": ContentPreferences(
                    preferred_topics=["market analysis", "weekly outlook", "portfolio ideas"],
                    optimal_send_time="09:00",
                    preferred_frequency="weekly",
                    content_style="professional",
                ),
            },
            {
                "id": "low_engagement",
                "name": "Re-engagement Candidates",
                "description": "Subscribers with declining engagement",
                "criteria": CohortCriteria(engagement_score=ValueRange(maximum=low)),
                "characteristics": ["Low engagement", "Churn risk", "Need re-activation"],
                "preferences": ContentPreferences(
                    preferred_topics=["market basics", "educational content", "quick wins"],
                    optimal_send_time="12:00",
                    preferred_frequency="weekly",
                    content_style="educational",
                ),
            },
        ]
        return self._build_family("engagement", specs, profiles, as_of, self.config.min_cohort_size)

    def experience_cohorts(self, profiles: Sequence[SubscriberProfile], as_of: datetime) -> List[CohortDefinition]:
        specs = [
            {
                "id": "beginner_investors",
                "name": "New Investors",
                "description": "Beginning investors learning the basics",
                "criteria": CohortCriteria(experience_level=["beginner"]),
                "characteristics": ["New to investing", "Learning focused", "Need guidance"],
                "preferences": ContentPreferences(
                    preferred_topics=["investing basics", "market education", "simple strategies"],
                    optimal_send_time="11:00",
                    preferred_frequency="weekly",
                    content_style="educational",
                ),
            },
            {
                "id": "expert_investors",
                "name": "Expert Investors",
                "description": "Experienced investors seeking advanced insights",
                "criteria": CohortCriteria(experience_level=["expert"]),
                "characteristics": ["Highly experienced", "Advanced strategies", "Market sophistication"],
                "preferences": ContentPreferences(
                    preferred_topics=["advanced analysis", "market research", "complex strategies"],
                    optimal_send_time="06:30",
                    preferred_frequency="daily",
                    content_style="technical",
                ),
            },
        ]
        return self._build_family("experience", specs, profiles, as_of, self.config.min_cohort_size)

    def sector_cohorts(self, profiles: Sequence[SubscriberProfile], as_of: datetime) -> List[CohortDefinition]:
        sectors = sorted({sector for p in profiles for sector in p.sectors})
        specs = [
            {
                "id": sector_cohort_id(sector),
                "name": f"{sector} Focused Investors",
                "description": f"Investors primarily interested in {sector} sector",
                "criteria": CohortCriteria(sectors=[sector]),
                "characteristics": [f"{sector} focused", "Sector specialist", "Industry knowledge"],
                "preferences": ContentPreferences(
                    preferred_topics=[sector.lower(), f"{sector} stocks", f"{sector} trends"],
                    optimal_send_time="09:30",
                    preferred_frequency="bi-weekly",
                    content_style="analytical",
                ),
            }
            for sector in sectors
        ]
        return self._build_family("sector", specs, profiles, as_of, self.config.min_sector_cohort_size)

    def behavioral_cohorts(self, profiles: Sequence[SubscriberProfile], as_of: datetime) -> List[CohortDefinition]:
        specs = [
            {
                "id": "early_readers",
                "name": "Early Morning Readers",
                "description": "Subscribers who engage early in the morning",
                "criteria": CohortCriteria(custom_filters={"active_hours": list(self.config.early_reader_hours)}),
                "characteristics": ["Early risers", "Pre-market readers", "Consistent schedule"],
                "preferences": ContentPreferences(
                    preferred_topics=["market preview", "overnight news", "pre-market analysis"],
                    optimal_send_time="06:00",
                    preferred_frequency="daily",
                    content_style="concise",
                ),
            },
        ]
        return self._build_family("behavioral", specs, profiles, as_of, self.config.min_cohort_size)

    def market_responsive_cohorts(
        self,
        profiles: Sequence[SubscriberProfile],
        market_context: MarketContext,
        as_of: datetime
    ) -> List[CohortDefinition]:
        if market_context.volatility_index <= self.config.volatility_threshold:
            return []

        specs = [
            {
                "id": "volatility_responsive",
                "name": "Volatility Opportunity Seekers",
                "description": "Active investors who thrive in volatile markets",
                "criteria": CohortCriteria(
                    risk_tolerance=["aggressive"],
                    engagement_score=ValueRange(minimum=self.config.volatility_min_engagement),
                ),
                "characteristics": ["Volatility focused", "Opportunity seekers", "Active traders"],
                "preferences": ContentPreferences(
                    preferred_topics=["volatility trading", "market opportunities", "risk management"],
                    optimal_send_time="09:00",
                    preferred_frequency="daily",
                    content_style="urgent",
                ),
            },
        ]
        return self._build_family("market_responsive", specs, profiles, as_of, self.config.min_cohort_size)

    # Helpers

    def _build_family(
        self,
        family: str,
        specs: List[Dict[str, Any]],
        profiles: Sequence[SubscriberProfile],
        as_of: datetime,
        min_size: int
    ) -> List[CohortDefinition]:
        cohorts = []
        for spec in specs:
            criteria = spec["criteria"]
            members = [p for p in profiles if criteria.matches(p, as_of)]
            if len(members) < max(min_size, 1):
                continue

            cohorts.append(CohortDefinition(
                id=spec["id"],
                name=spec["name"],
                description=spec["description"],
                size=len(members),
                criteria=criteria,
                characteristics=list(spec["characteristics"]),
                engagement_metrics=cohort_metrics(members),
                content_preferences=spec["preferences"],
                family=family,
                member_ids=[m.id for m in members],
                created_at=as_of,
                updated_at=as_of,
            ))
        return cohorts
