"""
Pytest configuration and shared fixtures.
"""
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Any, Optional, Sequence

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from config import Config
from exceptions import ExternalProviderError
from agents.providers import AIProvider
from audience.storage import SubscriberStore
from models.subscriber import SubscriberProfile, RiskTolerance, ExperienceLevel
from models.cohort import (
    CohortCriteria,
    CohortDefinition,
    ContentPreferences,
    EngagementMetrics,
)


AS_OF = datetime(2024, 6, 3, 12, 0, 0)

TECH_CONTENT = (
    "Here's the thing: tech earnings beat expectations by 12% this quarter. "
    "However, valuations remain stretched and volatility is rising in chip names. "
    "Bottom line: stay selective."
)

VOICE_ANALYSIS = """TONE: conversational
COMPLEXITY: short sentences, moderate technical density
KEY_PHRASES: "Here's the thing", "Bottom line"
STRUCTURE: short punchy paragraphs
PERSONALITY: data-driven with clear opinions"""

PERSONALIZATION_JSON = """{
    "subject": "Your Tech Update",
    "content": "A version written for you.",
    "cta": "See Your Picks",
    "reasoning": "Matches the subscriber's sectors"
}"""


def adaptation_response(cohort_name: str) -> str:
    return f"""1. PERSONALIZED_SUBJECT: [Tech Sector Update for {cohort_name}]
2. PERSONALIZED_CONTENT: Here's the thing: tech earnings beat by 12%. However, {cohort_name} should stay focused. Bottom line: be selective.
3. PERSONALIZED_CTA: [See the Analysis]
4. REASONING: Tailored to {cohort_name}
5. PREDICTED_OPEN_RATE: 42%
6. PREDICTED_CLICK_RATE: 9.5%
7. OPTIMAL_SEND_TIME: 08:00 AM EST"""


class FakeAIProvider(AIProvider):
    """
    Records every call and answers by prompt kind.

    Any user prompt containing one of `fail_on` raises ExternalProviderError.
    """

    name = "fake"

    def __init__(
        self,
        voice_response: str = VOICE_ANALYSIS,
        personalization_response: str = PERSONALIZATION_JSON,
        fail_on: Sequence[str] = (),
        fail_voice: bool = False
    ):
        self.voice_response = voice_response
        self.personalization_response = personalization_response
        self.fail_on = list(fail_on)
        self.fail_voice = fail_voice
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, system_prompt, user_prompt, temperature=0.7, max_tokens=2000):
        kind = self._kind(user_prompt)
        self.calls.append({
            "kind": kind,
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })

        if kind == "voice" and self.fail_voice:
            raise ExternalProviderError("voice analysis unavailable", provider=self.name)
        for marker in self.fail_on:
            if marker in user_prompt:
                raise ExternalProviderError(f"simulated failure for {marker}", provider=self.name)

        if kind == "voice":
            return self.voice_response
        if kind == "adaptation":
            cohort_name = user_prompt.split("Adapt for ", 1)[1].split(" while", 1)[0]
            return adaptation_response(cohort_name)
        return self.personalization_response

    def calls_of(self, kind: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["kind"] == kind]

    @staticmethod
    def _kind(user_prompt: str) -> str:
        if user_prompt.startswith("Analyze this content"):
            return "voice"
        if user_prompt.startswith("Adapt for "):
            return "adaptation"
        return "personalization"


def make_profile(subscriber_id: str = "sub_1", **overrides) -> SubscriberProfile:
    values = {
        "email": f"{subscriber_id}@example.com",
        "last_active_at": AS_OF - timedelta(days=2),
        "engagement_score": 60.0,
        "open_rate": 0.4,
        "click_rate": 0.08,
    }
    values.update(overrides)
    return SubscriberProfile(id=subscriber_id, **values)


def make_cohort(
    cohort_id: str,
    name: Optional[str] = None,
    size: int = 10,
    characteristics: Optional[List[str]] = None,
    criteria: Optional[CohortCriteria] = None,
    average_engagement: float = 60.0
) -> CohortDefinition:
    return CohortDefinition(
        id=cohort_id,
        name=name or cohort_id.replace("_", " ").title(),
        description=f"{cohort_id} cohort",
        size=size,
        criteria=criteria or CohortCriteria(risk_tolerance=["moderate"]),
        characteristics=characteristics or [],
        engagement_metrics=EngagementMetrics(average_engagement=average_engagement),
        content_preferences=ContentPreferences(
            preferred_topics=["market analysis"],
            optimal_send_time="09:00",
            preferred_frequency="weekly",
            content_style="professional",
        ),
        created_at=AS_OF,
        updated_at=AS_OF,
    )


@pytest.fixture
def as_of() -> datetime:
    return AS_OF


@pytest.fixture
def config() -> Config:
    """Fresh config with no provider keys"""
    cfg = Config()
    cfg.ai.anthropic_api_key = None
    cfg.ai.openai_api_key = None
    return cfg


@pytest.fixture
def fake_ai() -> FakeAIProvider:
    return FakeAIProvider()


@pytest.fixture
def store(tmp_path) -> SubscriberStore:
    return SubscriberStore(str(tmp_path / "test.db"))


@pytest.fixture
def population() -> List[SubscriberProfile]:
    """Twelve profiles spread across risk, experience, sectors and engagement"""
    profiles = []
    risks = [RiskTolerance.CONSERVATIVE, RiskTolerance.MODERATE, RiskTolerance.AGGRESSIVE]
    levels = [ExperienceLevel.BEGINNER, ExperienceLevel.INTERMEDIATE, ExperienceLevel.EXPERT]
    for i in range(12):
        profiles.append(make_profile(
            f"sub_{i:02d}",
            risk_tolerance=risks[i % 3],
            experience_level=levels[i % 3],
            engagement_score=float(i * 8 + 5),
            sectors=["Technology"] if i < 6 else ["Energy"] if i < 9 else ["Healthcare"],
            active_hours=[6, 7] if i % 4 == 0 else [12, 13],
        ))
    return profiles


@pytest.fixture
def cohorts() -> List[CohortDefinition]:
    return [
        make_cohort("aggressive_investors", "Growth Seekers",
                    characteristics=["High risk tolerance", "Growth focused"],
                    criteria=CohortCriteria(risk_tolerance=["aggressive"])),
        make_cohort("conservative_investors", "Conservative Investors",
                    characteristics=["Low risk tolerance", "Income focused"],
                    criteria=CohortCriteria(risk_tolerance=["conservative"])),
        make_cohort("beginner_investors", "New Investors",
                    characteristics=["New to investing"],
                    criteria=CohortCriteria(experience_level=["beginner"])),
    ]
