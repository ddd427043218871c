"""
Configuration management for the Newsletter Cohort Engine
"""
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass
class AIConfig:
    """AI provider configuration"""
    provider: str = field(default_factory=lambda: os.getenv("AI_PROVIDER", "anthropic"))  # "anthropic" or "openai"
    anthropic_api_key: Optional[str] = field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY"))
    openai_api_key: Optional[str] = field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    anthropic_model: str = field(default_factory=lambda: os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-latest"))
    openai_model: str = field(default_factory=lambda: os.getenv("OPENAI_MODEL", "gpt-4o"))
    max_tokens: int = 2000
    temperature: float = 0.7

    # Per-call timeout; the clients are built without retries
    timeout_seconds: float = 30.0


@dataclass
class DatabaseConfig:
    """Database configuration"""
    db_path: str = "data/newsletter_cohorts.db"


@dataclass
class SegmentationConfig:
    """
    Cohort generation thresholds.

    The defaults are product-tuned values carried over from the first
    release and should be recalibrated against real engagement data.
    """
    min_cohort_size: int = 1
    min_sector_cohort_size: int = 5

    high_engagement_threshold: float = 80.0
    low_engagement_threshold: float = 50.0

    early_reader_hours: Tuple[int, ...] = (6, 7, 8)

    # Market-responsive cohorts
    volatility_threshold: float = 25.0
    volatility_min_engagement: float = 70.0


@dataclass
class PredictionConfig:
    """
    Weights and thresholds for the churn, lifetime value and cadence heuristics.

    Like SegmentationConfig these are candidates for empirical recalibration.
    """
    # Churn risk (additive, clamped to [0, 1])
    critical_engagement_threshold: float = 30.0
    critical_engagement_weight: float = 0.4
    low_engagement_threshold: float = 50.0
    low_engagement_weight: float = 0.2
    long_inactivity_days: int = 30
    long_inactivity_weight: float = 0.3
    short_inactivity_days: int = 14
    short_inactivity_weight: float = 0.1
    very_low_open_rate: float = 0.10
    very_low_open_rate_weight: float = 0.2
    low_open_rate: float = 0.20
    low_open_rate_weight: float = 0.1

    # Lifetime value
    ltv_base_value: float = 100.0
    ltv_engagement_divisor: float = 50.0
    ltv_influence_divisor: float = 50.0

    # Optimal frequency (strictly greater than)
    daily_threshold: float = 80.0
    bi_weekly_threshold: float = 60.0
    weekly_threshold: float = 40.0

    max_recommendations: int = 5


@dataclass
class OrchestratorConfig:
    """Batch execution configuration"""
    concurrency_limit: int = 10
    item_timeout_seconds: Optional[float] = None


@dataclass
class Config:
    """Main configuration class"""
    ai: AIConfig = field(default_factory=AIConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)
    prediction: PredictionConfig = field(default_factory=PredictionConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)

    # App settings
    app_name: str = "Newsletter Cohort Engine"
    version: str = "1.0.0"
    debug: bool = False


# Global config instance
config = Config()


def get_config() -> Config:
    """Get the global configuration instance"""
    return config


def update_config(**kwargs):
    """Update configuration values"""
    global config
    sections = (config.ai, config.database, config.segmentation, config.prediction, config.orchestrator)
    for key, value in kwargs.items():
        if hasattr(config, key):
            setattr(config, key, value)
            continue
        for section in sections:
            if hasattr(section, key):
                setattr(section, key, value)
                break
