"""
Personalization Models

Defines personalization rules, prediction outputs and the per-subscriber
personalization result.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, List, Any
from enum import Enum


class RuleType(Enum):
    """What aspect of a send a rule controls"""
    SUBJECT_LINE = "subject_line"
    CONTENT_TONE = "content_tone"
    CTA = "cta"
    SEND_TIME = "send_time"
    FREQUENCY = "frequency"


class SendFrequency(Enum):
    DAILY = "daily"
    BI_WEEKLY = "bi-weekly"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass
class PersonalizationRule:
    """
    A single cohort rule.

    When several active rules share a type, the highest priority one is
    applied and the rest are kept for audit.
    """
    id: str
    cohort_id: str
    rule_type: RuleType
    condition: str
    action: str
    priority: int = 1
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "cohort_id": self.cohort_id,
            "rule_type": self.rule_type.value,
            "condition": self.condition,
            "action": self.action,
            "priority": self.priority,
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersonalizationRule":
        data = dict(data)
        data["rule_type"] = RuleType(data["rule_type"])
        data["is_active"] = bool(data.get("is_active", True))
        return cls(**data)


@dataclass
class Predictions:
    """Heuristic scores for one subscriber"""
    churn_probability: float = 0.0  # 0-1
    engagement_prediction: float = 0.0  # 0-1
    lifetime_value: float = 0.0
    optimal_frequency: SendFrequency = SendFrequency.WEEKLY
    content_recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "churn_probability": round(self.churn_probability, 4),
            "engagement_prediction": round(self.engagement_prediction, 4),
            "lifetime_value": round(self.lifetime_value, 2),
            "optimal_frequency": self.optimal_frequency.value,
            "content_recommendations": list(self.content_recommendations),
        }


@dataclass
class IndividualPersonalization:
    """
    Content adapted for one subscriber.

    Ephemeral: computed per request and optionally written to the
    personalization log, never treated as authoritative state.
    """
    subscriber_id: str
    personalized_subject: str
    personalized_content: str
    personalized_cta: str
    send_time: datetime
    reasoning: str = ""
    confidence_score: float = 0.0
    market_context: Optional[Dict[str, Any]] = None
    fallback_used: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subscriber_id": self.subscriber_id,
            "personalized_subject": self.personalized_subject,
            "personalized_content": self.personalized_content,
            "personalized_cta": self.personalized_cta,
            "send_time": self.send_time.isoformat(),
            "reasoning": self.reasoning,
            "confidence_score": round(self.confidence_score, 2),
            "market_context": self.market_context,
            "fallback_used": self.fallback_used,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class EmailSharpening:
    """Copy adapted for one cohort"""
    subject: str
    content: str
    cta: str
    reasoning: str = ""
    predicted_open_rate: float = 0.0  # 0-1, advisory
    predicted_click_rate: float = 0.0  # 0-1, advisory
    optimal_send_time: str = ""
    voice_consistency_score: float = 0.0
    preserved_elements: List[str] = field(default_factory=list)
    fallback_used: bool = False
    fallback_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.subject,
            "content": self.content,
            "cta": self.cta,
            "reasoning": self.reasoning,
            "predicted_open_rate": round(self.predicted_open_rate, 4),
            "predicted_click_rate": round(self.predicted_click_rate, 4),
            "optimal_send_time": self.optimal_send_time,
            "voice_consistency_score": round(self.voice_consistency_score, 2),
            "preserved_elements": list(self.preserved_elements),
            "fallback_used": self.fallback_used,
            "fallback_reason": self.fallback_reason,
        }


@dataclass
class SharpeningResult:
    """One cohort's entry in a sharpening batch"""
    cohort_id: str
    cohort_name: str
    subscriber_count: int
    sharpened_email: EmailSharpening

    @property
    def fallback_used(self) -> bool:
        return self.sharpened_email.fallback_used

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cohort_id": self.cohort_id,
            "cohort_name": self.cohort_name,
            "subscriber_count": self.subscriber_count,
            "sharpened_email": self.sharpened_email.to_dict(),
        }
