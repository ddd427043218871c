"""
Personalization Agent

Adapts a base email for one subscriber, using the AI provider when
available and rule-based adaptation otherwise.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from config import AIConfig
from exceptions import ExternalProviderError, ValidationError
from models.subscriber import SubscriberProfile, RiskTolerance, ExperienceLevel
from models.market import MarketContext
from models.voice import VoiceProfile
from models.personalization import IndividualPersonalization
from agents.base_agent import BaseAgent
from agents.parsing import parse_personalization_response
from agents.providers import AIProvider, MarketContextProvider

logger = logging.getLogger(__name__)


AI_CONFIDENCE = 0.85
RULE_BASED_CONFIDENCE = 0.6
DEFAULT_SEND_HOUR = 9


class PersonalizationAgent(BaseAgent):
    """
    Individual personalization.

    Usage:
        agent = PersonalizationAgent(market_provider=StaticMarketContextProvider())
        result = await agent.personalize_individual(profile, subject, content)
    """

    def __init__(
        self,
        ai_provider: Optional[AIProvider] = None,
        market_provider: Optional[MarketContextProvider] = None,
        config: Optional[AIConfig] = None,
        use_ai: bool = True
    ):
        super().__init__(
            ai_provider=ai_provider,
            config=config,
            name="PersonalizationAgent",
            description="Adapts newsletter content for individual subscribers",
            use_ai=use_ai,
        )
        self.market_provider = market_provider

    def get_system_prompt(self) -> str:
        return """You are a financial newsletter personalization expert. You adapt a newsletter for a single
subscriber based on their investment profile and current market conditions.

Keep facts, figures and the author's voice intact. Adjust emphasis, depth and framing only.

Always respond with valid JSON:
{
    "subject": "personalized subject line",
    "content": "personalized body",
    "cta": "call to action",
    "reasoning": "why these changes suit this subscriber"
}"""

    async def personalize_individual(
        self,
        profile: SubscriberProfile,
        base_subject: str,
        base_content: str,
        market_context: Optional[MarketContext] = None,
        voice_profile: Optional[VoiceProfile] = None,
        as_of: Optional[datetime] = None
    ) -> IndividualPersonalization:
        """
        Personalize for one subscriber.

        When a voice profile is given the prompt asks the model to keep the
        author's voice. Callers adapting one base email for many subscribers
        extract it once and pass it to each.

        Provider failures never escape: market context falls back to a
        neutral snapshot and generation falls back to rule-based output.

        Raises:
            ValidationError: if the subject or content is empty
        """
        if not base_subject or not base_subject.strip():
            raise ValidationError("Base subject must not be empty", field="base_subject")
        if not base_content or not base_content.strip():
            raise ValidationError("Base content must not be empty", field="base_content")

        as_of = as_of or datetime.utcnow()
        if market_context is None:
            market_context = await self.fetch_market_context(profile)

        send_time = self.optimal_send_time(profile, as_of)

        try:
            response = await self._call_ai(self._build_prompt(profile, base_subject, base_content, market_context, voice_profile))
            parsed = parse_personalization_response(response)
            result = IndividualPersonalization(
                subscriber_id=profile.id,
                personalized_subject=parsed.subject,
                personalized_content=parsed.content,
                personalized_cta=parsed.cta or "Learn More",
                send_time=send_time,
                reasoning=parsed.reasoning or f"Personalized for {profile.risk_tolerance.value} {profile.experience_level.value} investor",
                confidence_score=AI_CONFIDENCE,
                market_context=market_context.to_dict(),
            )
        except ExternalProviderError as e:
            logger.warning(f"AI personalization failed for {profile.id}, using rules: {e}")
            result = self.rule_based_personalization(profile, base_subject, base_content, market_context, send_time)

        self._log_execution(
            "personalize_individual",
            {"subscriber_id": profile.id, "fallback_used": result.fallback_used},
        )
        return result

    async def fetch_market_context(self, profile: SubscriberProfile) -> MarketContext:
        if self.market_provider is None:
            return MarketContext.neutral()
        try:
            return await self.market_provider.get_market_context(
                sectors=profile.sectors or None,
                risk_tolerance=profile.risk_tolerance.value,
            )
        except Exception as e:
            # Any feed failure degrades to the neutral snapshot
            logger.warning(f"Market context unavailable, using neutral snapshot: {e!r}")
            return MarketContext.neutral()

    def rule_based_personalization(
        self,
        profile: SubscriberProfile,
        base_subject: str,
        base_content: str,
        market_context: MarketContext,
        send_time: datetime
    ) -> IndividualPersonalization:
        """Deterministic adaptation by risk tolerance and experience"""
        subject = base_subject
        content = base_content
        cta = "Learn More"

        if profile.risk_tolerance == RiskTolerance.CONSERVATIVE:
            subject = f"Stable Growth: {base_subject}"
            cta = "View Conservative Options"
        elif profile.risk_tolerance == RiskTolerance.AGGRESSIVE:
            subject = f"🚀 High Growth: {base_subject}"
            cta = "Explore Growth Opportunities"

        if profile.experience_level == ExperienceLevel.BEGINNER:
            content = (
                f"[Beginner-Friendly] {base_content}\n\n"
                "New to investing? Reply to this email and we'll point you to our starter guides."
            )

        return IndividualPersonalization(
            subscriber_id=profile.id,
            personalized_subject=subject,
            personalized_content=content,
            personalized_cta=cta,
            send_time=send_time,
            reasoning=f"Personalized for {profile.risk_tolerance.value} {profile.experience_level.value} investor",
            confidence_score=RULE_BASED_CONFIDENCE,
            market_context=market_context.to_dict(),
            fallback_used=True,
        )

    @staticmethod
    def optimal_send_time(profile: SubscriberProfile, as_of: datetime) -> datetime:
        """Next day at the subscriber's first active hour (09:00 by default)"""
        hour = profile.active_hours[0] if profile.active_hours else DEFAULT_SEND_HOUR
        next_day = (as_of + timedelta(days=1)).replace(minute=0, second=0, microsecond=0)
        return next_day.replace(hour=hour)

    @staticmethod
    def _build_prompt(
        profile: SubscriberProfile,
        base_subject: str,
        base_content: str,
        market_context: MarketContext,
        voice_profile: Optional[VoiceProfile] = None
    ) -> str:
        voice_section = ""
        if voice_profile is not None:
            voice_section = f"""
WRITER'S VOICE (preserve it):
- Tone: {voice_profile.tone}
- Personality: {voice_profile.personality}
- Avg Sentence Length: {voice_profile.complexity.average_sentence_length} words
- Key Phrases: {', '.join(voice_profile.vocabulary.key_phrases) or 'none'}
- Transitions: {', '.join(voice_profile.vocabulary.preferred_transitions) or 'none'}
"""

        return f"""Personalize this newsletter for one subscriber.

SUBSCRIBER PROFILE:
- Risk Tolerance: {profile.risk_tolerance.value}
- Experience: {profile.experience_level.value}
- Portfolio Size: {profile.portfolio_size.value}
- Time Horizon: {profile.time_horizon.value}
- Sectors: {', '.join(profile.sectors) or 'none declared'}
- Communication Style: {profile.communication_style.value}
- Content Depth: {profile.content_depth.value}
- Engagement Score: {profile.engagement_score:.0f}/100

MARKET CONTEXT:
- Volatility Index: {market_context.volatility_index}
- Sentiment: {market_context.sentiment}
- Sector Performance: {market_context.sector_performance}
- News: {'; '.join(market_context.relevant_news) or 'none'}
{voice_section}
ORIGINAL SUBJECT: {base_subject}
ORIGINAL CONTENT: {base_content}

Return the JSON object described in your instructions."""
