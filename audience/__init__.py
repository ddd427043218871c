"""
Audience Module

Subscriber profiling, cohort generation, predictions, rules and storage.
"""
from .predictions import Predictor
from .profile_builder import ProfileBuilder
from .cohort_generator import CohortGenerator
from .rules import RuleEngine
from .performance import analyze_email_performance, churn_risk_summary
from .storage import SubscriberStore
from .ingestion import DataIngestion

__all__ = [
    "Predictor",
    "ProfileBuilder",
    "CohortGenerator",
    "RuleEngine",
    "analyze_email_performance",
    "churn_risk_summary",
    "SubscriberStore",
    "DataIngestion",
]
