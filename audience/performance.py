"""
Performance Analysis

Campaign performance by cohort and churn risk summaries over a population.
"""
import logging
from typing import Dict, List, Any, Sequence, Union

from exceptions import ValidationError
from models.subscriber import SubscriberProfile
from models.metrics import (
    CohortSendStats,
    CohortPerformance,
    EmailPerformanceReport,
    ChurnRiskSummary,
    PerformanceBenchmark,
)

logger = logging.getLogger(__name__)


OPTIMIZATION_INSIGHTS = [
    "Successful cohorts show strong preference for personalized subject lines",
    "Technical analysis content performs best with trading-focused cohorts",
    "Educational content drives higher engagement among beginner investors",
    "Professional cohorts respond well to data-rich, comprehensive analysis",
]


def analyze_email_performance(
    campaign_id: str,
    cohort_stats: Sequence[Union[CohortSendStats, Dict[str, Any]]]
) -> EmailPerformanceReport:
    """
    Rate each cohort's send and compute overall rates.

    Args:
        campaign_id: Campaign identifier
        cohort_stats: Per-cohort counters (sent, opened, clicked, unsubscribed)

    Raises:
        ValidationError: if any counter is negative
    """
    stats = [s if isinstance(s, CohortSendStats) else CohortSendStats.from_dict(s) for s in cohort_stats]

    for s in stats:
        if min(s.sent, s.opened, s.clicked, s.unsubscribed) < 0:
            raise ValidationError(f"Negative counter for cohort '{s.cohort_id}'", field="cohort_stats")

    report = EmailPerformanceReport(
        campaign_id=campaign_id,
        total_sent=sum(s.sent for s in stats),
        total_opened=sum(s.opened for s in stats),
        total_clicked=sum(s.clicked for s in stats),
        total_unsubscribed=sum(s.unsubscribed for s in stats),
        optimization_insights=list(OPTIMIZATION_INSIGHTS),
    )

    for s in stats:
        rating = PerformanceBenchmark.rate(s)
        report.cohort_analysis.append(CohortPerformance(
            cohort_id=s.cohort_id,
            rating=rating,
            open_rate=s.open_rate,
            click_rate=s.click_rate,
            recommendations=list(PerformanceBenchmark.RECOMMENDATIONS[rating]),
        ))

    logger.info(f"Analyzed campaign {campaign_id}: {len(stats)} cohorts, open rate {report.open_rate:.1f}%")
    return report


def churn_risk_summary(profiles: Sequence[SubscriberProfile]) -> ChurnRiskSummary:
    """Bucket a population by churn risk"""
    summary = ChurnRiskSummary()
    if not profiles:
        return summary

    for profile in profiles:
        if profile.churn_risk > PerformanceBenchmark.HIGH_CHURN_RISK:
            summary.high += 1
            summary.at_risk_ids.append(profile.id)
        elif profile.churn_risk > PerformanceBenchmark.MEDIUM_CHURN_RISK:
            summary.medium += 1
        else:
            summary.low += 1

    summary.average_churn_risk = sum(p.churn_risk for p in profiles) / len(profiles)
    return summary
