"""
Metrics Models

Defines send performance metrics for cohorts and the churn risk summary.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Any
from enum import Enum


class PerformanceRating(Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    POOR = "poor"


@dataclass
class CohortSendStats:
    """
    Raw send counters for one cohort in one campaign.
    """
    cohort_id: str = ""
    sent: int = 0
    opened: int = 0
    clicked: int = 0
    unsubscribed: int = 0

    # Calculated rates, percentages of sent
    @property
    def open_rate(self) -> float:
        return (self.opened / self.sent * 100) if self.sent > 0 else 0

    @property
    def click_rate(self) -> float:
        return (self.clicked / self.sent * 100) if self.sent > 0 else 0

    @property
    def unsubscribe_rate(self) -> float:
        return (self.unsubscribed / self.sent * 100) if self.sent > 0 else 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CohortSendStats":
        return cls(
            cohort_id=data.get("cohort_id", ""),
            sent=int(data.get("sent", 0)),
            opened=int(data.get("opened", 0)),
            clicked=int(data.get("clicked", 0)),
            unsubscribed=int(data.get("unsubscribed", 0)),
        )


@dataclass
class CohortPerformance:
    cohort_id: str
    rating: PerformanceRating
    open_rate: float
    click_rate: float
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cohort_id": self.cohort_id,
            "performance": self.rating.value,
            "open_rate": round(self.open_rate, 2),
            "click_rate": round(self.click_rate, 2),
            "recommendations": list(self.recommendations),
        }


@dataclass
class EmailPerformanceReport:
    """
    Performance of one campaign across its cohorts.
    """
    campaign_id: str = ""
    total_sent: int = 0
    total_opened: int = 0
    total_clicked: int = 0
    total_unsubscribed: int = 0
    cohort_analysis: List[CohortPerformance] = field(default_factory=list)
    optimization_insights: List[str] = field(default_factory=list)
    computed_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def open_rate(self) -> float:
        return (self.total_opened / self.total_sent * 100) if self.total_sent > 0 else 0

    @property
    def click_rate(self) -> float:
        return (self.total_clicked / self.total_sent * 100) if self.total_sent > 0 else 0

    @property
    def unsubscribe_rate(self) -> float:
        return (self.total_unsubscribed / self.total_sent * 100) if self.total_sent > 0 else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "campaign_id": self.campaign_id,
            "overall_performance": {
                "total_sent": self.total_sent,
                "avg_open_rate": round(self.open_rate, 2),
                "avg_click_rate": round(self.click_rate, 2),
                "unsubscribe_rate": round(self.unsubscribe_rate, 2),
            },
            "cohort_analysis": [c.to_dict() for c in self.cohort_analysis],
            "optimization_insights": list(self.optimization_insights),
            "computed_at": self.computed_at.isoformat(),
        }

    def get_summary(self) -> str:
        """Get a human-readable summary of campaign performance"""
        return f"""Campaign: {self.campaign_id}
Sent: {self.total_sent:,} | Opens: {self.total_opened:,} ({self.open_rate:.1f}%) | Clicks: {self.total_clicked:,} ({self.click_rate:.1f}%)
Unsubscribes: {self.total_unsubscribed:,} ({self.unsubscribe_rate:.1f}%)"""


@dataclass
class ChurnRiskSummary:
    """Population split into churn risk buckets"""
    high: int = 0  # churn_risk > 0.7
    medium: int = 0  # 0.4 < churn_risk <= 0.7
    low: int = 0
    average_churn_risk: float = 0.0
    at_risk_ids: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.high + self.medium + self.low

    def to_dict(self) -> Dict[str, Any]:
        return {
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
            "total": self.total,
            "average_churn_risk": round(self.average_churn_risk, 4),
            "at_risk_ids": list(self.at_risk_ids),
        }


class PerformanceBenchmark:
    """
    Rating thresholds for cohort sends (percent of sent).
    """
    EXCELLENT_OPEN_RATE = 50.0
    EXCELLENT_CLICK_RATE = 15.0
    GOOD_OPEN_RATE = 35.0
    GOOD_CLICK_RATE = 8.0
    AVERAGE_OPEN_RATE = 20.0
    AVERAGE_CLICK_RATE = 4.0

    # Churn buckets
    HIGH_CHURN_RISK = 0.7
    MEDIUM_CHURN_RISK = 0.4

    RECOMMENDATIONS = {
        PerformanceRating.EXCELLENT: [
            "Maintain current personalization strategy",
            "Consider this as a template for similar cohorts",
        ],
        PerformanceRating.GOOD: [
            "Test subject line variations for higher open rates",
            "Optimize call-to-action placement and wording",
        ],
        PerformanceRating.AVERAGE: [
            "Increase personalization depth",
            "Review content relevance to cohort interests",
            "Test different send times",
        ],
        PerformanceRating.POOR: [
            "Reassess cohort characteristics and preferences",
            "Implement re-engagement campaign",
            "Review unsubscribe feedback for insights",
        ],
    }

    @classmethod
    def rate(cls, stats: CohortSendStats) -> PerformanceRating:
        """Both rates must clear a tier's thresholds (strictly) to earn it"""
        open_rate, click_rate = stats.open_rate, stats.click_rate

        if open_rate > cls.EXCELLENT_OPEN_RATE and click_rate > cls.EXCELLENT_CLICK_RATE:
            return PerformanceRating.EXCELLENT
        elif open_rate > cls.GOOD_OPEN_RATE and click_rate > cls.GOOD_CLICK_RATE:
            return PerformanceRating.GOOD
        elif open_rate > cls.AVERAGE_OPEN_RATE and click_rate > cls.AVERAGE_CLICK_RATE:
            return PerformanceRating.AVERAGE
        return PerformanceRating.POOR
