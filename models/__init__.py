"""
Data Models Module

Core data models for subscribers, cohorts, personalization, voice and metrics.
"""
from .subscriber import SubscriberProfile, SubscriberHistory
from .cohort import CohortCriteria, CohortDefinition, ValueRange
from .personalization import (
    PersonalizationRule,
    RuleType,
    Predictions,
    IndividualPersonalization,
    EmailSharpening,
    SharpeningResult,
)
from .voice import VoiceProfile
from .market import MarketContext
from .metrics import EmailPerformanceReport, ChurnRiskSummary

__all__ = [
    "SubscriberProfile",
    "SubscriberHistory",
    "CohortCriteria",
    "CohortDefinition",
    "ValueRange",
    "PersonalizationRule",
    "RuleType",
    "Predictions",
    "IndividualPersonalization",
    "EmailSharpening",
    "SharpeningResult",
    "VoiceProfile",
    "MarketContext",
    "EmailPerformanceReport",
    "ChurnRiskSummary",
]
