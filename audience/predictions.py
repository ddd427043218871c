"""
Predictive Scoring

Churn risk, lifetime value, engagement likelihood, cadence and content
recommendations for a single subscriber. Every score is a heuristic driven
by PredictionConfig; nothing here raises on missing optional data.
"""
import logging
from datetime import datetime
from typing import Optional, List

from config import PredictionConfig, get_config
from models.subscriber import SubscriberProfile, SubscriberHistory, ExperienceLevel, parse_datetime
from models.personalization import Predictions, SendFrequency

logger = logging.getLogger(__name__)


EXPERIENCE_TOPICS = {
    ExperienceLevel.BEGINNER: ["Market basics", "Investment fundamentals", "Risk management"],
    ExperienceLevel.EXPERT: ["Advanced strategies", "Market research", "Technical analysis"],
}


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class Predictor:
    """
    Heuristic predictor.

    Usage:
        predictor = Predictor()
        predictions = predictor.predict(profile)
        predictions.churn_probability  # 0-1
    """

    def __init__(self, config: Optional[PredictionConfig] = None):
        self.config = config or get_config().prediction

    def predict(
        self,
        profile: SubscriberProfile,
        history: Optional[SubscriberHistory] = None,
        as_of: Optional[datetime] = None
    ) -> Predictions:
        as_of = as_of or datetime.utcnow()
        return Predictions(
            churn_probability=self.churn_risk(profile, history, as_of),
            engagement_prediction=self.engagement_prediction(profile, history),
            lifetime_value=self.lifetime_value(profile.engagement_score, profile.influence_score),
            optimal_frequency=self.optimal_frequency(profile.engagement_score),
            content_recommendations=self.content_recommendations(profile),
        )

    def churn_risk(
        self,
        profile: SubscriberProfile,
        history: Optional[SubscriberHistory] = None,
        as_of: Optional[datetime] = None
    ) -> float:
        """Additive risk from low engagement, inactivity and low open rate"""
        cfg = self.config
        as_of = parse_datetime(as_of) or datetime.utcnow()
        risk = 0.0

        engagement = profile.engagement_score
        if engagement < cfg.critical_engagement_threshold:
            risk += cfg.critical_engagement_weight
        elif engagement < cfg.low_engagement_threshold:
            risk += cfg.low_engagement_weight

        last_active = parse_datetime(profile.last_active_at)
        last_engagement = parse_datetime(history.last_engagement) if history else None
        if last_engagement:
            last_active = max(last_active, last_engagement) if last_active else last_engagement

        if last_active is not None:
            days_inactive = (as_of - last_active).days
            if days_inactive > cfg.long_inactivity_days:
                risk += cfg.long_inactivity_weight
            elif days_inactive > cfg.short_inactivity_days:
                risk += cfg.short_inactivity_weight

        open_rate = profile.open_rate
        if history and history.open_rate is not None:
            open_rate = history.open_rate

        if open_rate < cfg.very_low_open_rate:
            risk += cfg.very_low_open_rate_weight
        elif open_rate < cfg.low_open_rate:
            risk += cfg.low_open_rate_weight

        return _clamp(risk)

    def lifetime_value(self, engagement_score: float, influence_score: float) -> float:
        cfg = self.config
        value = (
            cfg.ltv_base_value
            * (engagement_score / cfg.ltv_engagement_divisor)
            * (influence_score / cfg.ltv_influence_divisor)
        )
        return max(0.0, value)

    def optimal_frequency(self, engagement_score: float) -> SendFrequency:
        cfg = self.config
        if engagement_score > cfg.daily_threshold:
            return SendFrequency.DAILY
        elif engagement_score > cfg.bi_weekly_threshold:
            return SendFrequency.BI_WEEKLY
        elif engagement_score > cfg.weekly_threshold:
            return SendFrequency.WEEKLY
        return SendFrequency.MONTHLY

    def engagement_prediction(
        self,
        profile: SubscriberProfile,
        history: Optional[SubscriberHistory] = None
    ) -> float:
        """Likelihood of engaging with the next send"""
        prediction = profile.engagement_score / 100

        open_rate = profile.open_rate
        click_rate = profile.click_rate
        reading_time = profile.reading_time
        if history:
            if history.open_rate is not None:
                open_rate = history.open_rate
            if history.click_rate is not None:
                click_rate = history.click_rate
            if history.average_reading_time:
                reading_time = history.average_reading_time

        if open_rate > 0.5:
            prediction += 0.1
        if click_rate > 0.1:
            prediction += 0.1
        if reading_time > 120:
            prediction += 0.05

        return _clamp(prediction)

    def content_recommendations(self, profile: SubscriberProfile) -> List[str]:
        recommendations = list(EXPERIENCE_TOPICS.get(profile.experience_level, []))
        for sector in profile.sectors:
            topic = f"{sector} analysis"
            if topic not in recommendations:
                recommendations.append(topic)
        return recommendations[:self.config.max_recommendations]
