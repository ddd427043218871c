"""
Sharpening Agent

Adapts one base email for many cohorts while preserving the author's voice.

The voice profile is extracted once per base email and shared by every
cohort adaptation. A cohort whose adaptation fails gets the unmodified
base email back, clearly marked as a fallback, and never affects the
other cohorts.
"""
import json
import logging
import re
from typing import Optional, Dict, List, Any, Sequence

from config import AIConfig, OrchestratorConfig, get_config
from exceptions import ExternalProviderError, ValidationError
from models.cohort import CohortDefinition
from models.market import MarketContext
from models.personalization import EmailSharpening, SharpeningResult
from models.voice import VoiceProfile
from agents.base_agent import BaseAgent
from agents.batching import run_in_batches
from agents.parsing import (
    parse_adaptation_response,
    parse_voice_analysis,
    average_sentence_length,
)
from agents.providers import AIProvider

logger = logging.getLogger(__name__)


VOICE_ANALYSIS_SYSTEM_PROMPT = (
    "Analyze the writing voice and style characteristics of this financial content. "
    "Return a structured analysis."
)

FALLBACK_CTA = "Read Full Analysis →"
FALLBACK_REASONING = "Using base content due to personalization error"
FALLBACK_OPEN_RATE = 0.45
FALLBACK_CLICK_RATE = 0.12
FALLBACK_SEND_TIME = "09:00 AM EST"
DEFAULT_CTA = "Learn More →"


ARCHETYPE_PROMPTS: Dict[str, Dict[str, Any]] = {
    "professional-investors": {
        "description": "Sophisticated investors requiring institutional-grade analysis with technical depth",
        "instructions": [
            "Add specific metrics, data points, and technical indicators",
            "Include institutional terminology but keep the writer's natural style",
            "Enhance technical depth without losing the original voice",
            "Use precise financial language while preserving personality",
        ],
        "sophistication": "professional",
        "style": "value",
    },
    "learning-investors": {
        "description": "Beginner investors needing educational context and simplified explanations",
        "instructions": [
            "Define technical terms in parentheses or simple explanations",
            "Add \"what this means\" educational context",
            "Simplify complex concepts but keep the writer's authentic voice",
            "Maintain encouraging and accessible language",
        ],
        "sophistication": "beginner",
        "style": "value",
    },
    "growth-investors": {
        "description": "Growth-focused investors seeking capital appreciation opportunities",
        "instructions": [
            "Emphasize growth potential and momentum factors",
            "Focus on expansion stories and market opportunities",
            "Highlight growth metrics and forward-looking analysis",
            "Keep the writer's natural risk assessment style",
        ],
        "sophistication": "intermediate",
        "style": "growth",
    },
    "income-investors": {
        "description": "Income-focused investors prioritizing steady returns and capital preservation",
        "instructions": [
            "Emphasize dividend yields and income stability",
            "Focus on defensive positioning and risk management",
            "Highlight yield analysis and income-generating assets",
            "Maintain the writer's approach to safety and stability",
        ],
        "sophistication": "intermediate",
        "style": "income",
    },
    "active-traders": {
        "description": "Active traders reacting to short-term moves and volatility",
        "instructions": [
            "Lead with the most time-sensitive developments and price levels",
            "Highlight catalysts, volatility and near-term setups",
            "Keep sentences tight while preserving the writer's phrasing",
            "Frame risk in terms of position sizing and stops",
        ],
        "sophistication": "advanced",
        "style": "trading",
    },
}

DEFAULT_ARCHETYPE = "professional-investors"


def resolve_archetype(cohort: CohortDefinition) -> str:
    """
    Pick the adaptation archetype for a cohort.

    A cohort id naming an archetype is used directly; otherwise the
    archetype is inferred from characteristics and criteria.
    """
    if cohort.id in ARCHETYPE_PROMPTS:
        return cohort.id

    characteristics = set(cohort.characteristics)
    criteria = cohort.criteria
    risk = set(criteria.risk_tolerance or [])
    experience = set(criteria.experience_level or [])

    if characteristics & {"Volatility focused", "Active traders", "Active trading"}:
        return "active-traders"
    if "beginner" in experience or characteristics & {"New to investing", "Need re-activation"}:
        return "learning-investors"
    if "aggressive" in risk:
        return "growth-investors"
    if "conservative" in risk:
        return "income-investors"
    return DEFAULT_ARCHETYPE


def estimate_open_rate(cohort: CohortDefinition, archetype: str) -> float:
    """Cohort-level open rate estimate as a 0-1 fraction"""
    prompt = ARCHETYPE_PROMPTS[archetype]
    rate = 35.0

    sophistication = prompt["sophistication"]
    if sophistication == "professional":
        rate += 15
    elif sophistication == "advanced":
        rate += 10
    elif sophistication == "beginner":
        rate += 5

    # Engagement on a 0-10 scale
    rate += (cohort.engagement_metrics.average_engagement / 10 - 5) * 2

    if prompt["style"] == "trading":
        rate += 8
    elif prompt["style"] == "income":
        rate -= 5

    return min(85.0, max(15.0, rate)) / 100


def estimate_click_rate(cohort: CohortDefinition, archetype: str) -> float:
    """Cohort-level click rate estimate as a 0-1 fraction"""
    prompt = ARCHETYPE_PROMPTS[archetype]
    rate = 8.0

    if prompt["sophistication"] == "professional":
        rate += 8
    elif prompt["sophistication"] == "advanced":
        rate += 5

    if prompt["style"] == "trading":
        rate += 5
    elif prompt["style"] == "growth":
        rate += 3

    rate += (cohort.engagement_metrics.average_engagement / 10 - 5) * 1.5

    return min(45.0, max(2.0, rate)) / 100


def estimate_send_time(cohort: CohortDefinition, archetype: str) -> str:
    prompt = ARCHETYPE_PROMPTS[archetype]
    if prompt["sophistication"] == "professional":
        return "07:30 AM EST"
    if prompt["style"] == "trading":
        return "08:00 AM EST"
    if "conservative" in (cohort.criteria.risk_tolerance or []):
        return "10:00 AM EST"
    return "09:00 AM EST"


def voice_consistency_score(content: str, voice: VoiceProfile) -> float:
    """
    Score 0-1 for how well adapted content keeps the author's voice.

    Key phrases 30, sentence complexity 25, personality 25, tone 20.
    """
    lowered = content.lower()
    score = 0.0

    key_phrases = voice.vocabulary.key_phrases
    found = [p for p in key_phrases if p.lower() in lowered]
    score += len(found) / max(len(key_phrases), 1) * 30

    complexity_diff = abs(average_sentence_length(content) - voice.complexity.average_sentence_length)
    score += max(0.0, 25 - complexity_diff * 2)

    score += 13
    if voice.personality == "opinion-based" and "I" in content:
        score += 12
    elif voice.personality == "data-driven" and re.search(r"\d+%|\d+\.\d+", content):
        score += 12

    if voice.tone == "conversational" and "," in content:
        score += 20
    elif voice.tone == "formal" and "thing" not in content:
        score += 20
    else:
        score += 10

    return min(1.0, score / 100)


def preserved_elements(content: str, voice: VoiceProfile) -> List[str]:
    lowered = content.lower()
    preserved = [f'Key phrase: "{p}"' for p in voice.vocabulary.key_phrases if p.lower() in lowered]
    preserved.extend(f'Transition: "{t}"' for t in voice.vocabulary.preferred_transitions if t in content)
    preserved.append(f"{voice.tone} tone maintained")
    preserved.append(f"{voice.personality} approach preserved")
    return preserved


def format_market_context(market_context: Optional[MarketContext]) -> str:
    if market_context is None:
        return "No market context available."
    return json.dumps({
        "volatility_index": market_context.volatility_index,
        "sentiment": market_context.sentiment,
        "sector_performance": market_context.sector_performance,
        "relevant_news": market_context.relevant_news,
        "key_insights": market_context.key_insights,
    })


class SharpeningAgent(BaseAgent):
    """
    Voice-preserving cohort adaptation.

    Usage:
        agent = SharpeningAgent()
        results = await agent.sharpen("Tech Sector Update", content, cohorts)
    """

    VOICE_TEMPERATURE = 0.1
    ADAPTATION_TEMPERATURE = 0.3
    ADAPTATION_MAX_TOKENS = 2000

    def __init__(
        self,
        ai_provider: Optional[AIProvider] = None,
        config: Optional[AIConfig] = None,
        orchestrator_config: Optional[OrchestratorConfig] = None,
        use_ai: bool = True
    ):
        super().__init__(
            ai_provider=ai_provider,
            config=config,
            name="SharpeningAgent",
            description="Adapts newsletter content per cohort while preserving the author's voice",
            use_ai=use_ai,
        )
        self.orchestrator_config = orchestrator_config or get_config().orchestrator

    def get_system_prompt(self) -> str:
        return VOICE_ANALYSIS_SYSTEM_PROMPT

    async def extract_voice_profile(self, content: str) -> VoiceProfile:
        """
        Analyze the author's voice. Always returns a profile: the default
        profile when the provider or the parse fails.
        """
        prompt = f"""Analyze this content and identify the writer's voice characteristics:

{content}

Provide analysis in this format:
TONE: [formal/casual/authoritative/conversational]
COMPLEXITY: [average sentence length and technical density]
KEY_PHRASES: [signature expressions and transitions]
STRUCTURE: [paragraph style and organization]
PERSONALITY: [data-driven/opinion-based/balanced/educational]"""

        try:
            analysis = await self._call_ai(
                prompt,
                system_prompt=VOICE_ANALYSIS_SYSTEM_PROMPT,
                temperature=self.VOICE_TEMPERATURE,
            )
            voice = parse_voice_analysis(analysis, content)
        except ExternalProviderError as e:
            logger.warning(f"Voice extraction failed, using default profile: {e}")
            voice = VoiceProfile.default()

        self._log_execution("extract_voice_profile", voice.to_dict())
        return voice

    async def sharpen(
        self,
        base_subject: str,
        base_content: str,
        cohorts: Sequence[CohortDefinition],
        market_context: Optional[MarketContext] = None,
        voice_profile: Optional[VoiceProfile] = None,
        concurrency: Optional[int] = None
    ) -> List[SharpeningResult]:
        """
        Adapt the base email for every cohort.

        Returns exactly one result per cohort, in input order.

        Raises:
            ValidationError: if the subject or content is empty
        """
        self.validate_base_email(base_subject, base_content)

        if voice_profile is None:
            voice_profile = await self.extract_voice_profile(base_content)

        async def adapt(cohort: CohortDefinition) -> SharpeningResult:
            return await self.adapt_for_cohort(base_subject, base_content, cohort, voice_profile, market_context)

        batch = await run_in_batches(
            list(cohorts),
            adapt,
            item_id=lambda c: c.id,
            concurrency=concurrency or self.orchestrator_config.concurrency_limit,
            item_timeout=self.orchestrator_config.item_timeout_seconds,
        )

        by_id = {r.cohort_id: r for r in batch.successes}
        failures = {e.item_id: e for e in batch.errors}
        results = []
        for cohort in cohorts:
            if cohort.id in by_id:
                results.append(by_id[cohort.id])
            else:
                error = failures.get(cohort.id)
                reason = f"{error.kind}: {error.message}" if error else "no result"
                results.append(self.fallback_result(base_subject, base_content, cohort, reason))
        return results

    async def adapt_for_cohort(
        self,
        base_subject: str,
        base_content: str,
        cohort: CohortDefinition,
        voice_profile: VoiceProfile,
        market_context: Optional[MarketContext] = None
    ) -> SharpeningResult:
        """Adapt for one cohort; provider and parse failures yield the fallback"""
        archetype = resolve_archetype(cohort)
        prompt = ARCHETYPE_PROMPTS[archetype]

        system_prompt = self._adaptation_system_prompt(voice_profile, prompt["description"])
        instructions = "\n".join(f"- {line}" for line in prompt["instructions"])
        user_prompt = f"""Adapt for {cohort.name} while maintaining the writer's {voice_profile.tone} tone:
{instructions}

COHORT CHARACTERISTICS: {', '.join(cohort.characteristics)}
PREFERRED TOPICS: {', '.join(cohort.content_preferences.preferred_topics)}

ORIGINAL SUBJECT: {base_subject}
ORIGINAL CONTENT: {base_content}

MARKET CONTEXT: {format_market_context(market_context)}

Please provide:
1. PERSONALIZED_SUBJECT: [adapted subject line]
2. PERSONALIZED_CONTENT: [adapted content maintaining voice]
3. PERSONALIZED_CTA: [relevant call-to-action]
4. REASONING: [why this adaptation works for this cohort]
5. PREDICTED_OPEN_RATE: [percentage]
6. PREDICTED_CLICK_RATE: [percentage]
7. OPTIMAL_SEND_TIME: [best time for this cohort]"""

        try:
            response = await self._call_ai(
                user_prompt,
                system_prompt=system_prompt,
                temperature=self.ADAPTATION_TEMPERATURE,
                max_tokens=self.ADAPTATION_MAX_TOKENS,
            )
            parsed = parse_adaptation_response(response)
        except ExternalProviderError as e:
            logger.warning(f"Sharpening failed for cohort {cohort.id}: {e}")
            return self.fallback_result(base_subject, base_content, cohort, str(e))

        sharpened = EmailSharpening(
            subject=parsed.subject,
            content=parsed.content,
            cta=parsed.cta or DEFAULT_CTA,
            reasoning=parsed.reasoning or f"Adapted for {cohort.name}",
            predicted_open_rate=(
                parsed.predicted_open_rate if parsed.predicted_open_rate is not None
                else estimate_open_rate(cohort, archetype)
            ),
            predicted_click_rate=(
                parsed.predicted_click_rate if parsed.predicted_click_rate is not None
                else estimate_click_rate(cohort, archetype)
            ),
            optimal_send_time=parsed.optimal_send_time or estimate_send_time(cohort, archetype),
            voice_consistency_score=voice_consistency_score(parsed.content, voice_profile),
            preserved_elements=preserved_elements(parsed.content, voice_profile),
        )
        self._log_execution("adapt_for_cohort", {"cohort_id": cohort.id, "archetype": archetype})

        return SharpeningResult(
            cohort_id=cohort.id,
            cohort_name=cohort.name,
            subscriber_count=cohort.size,
            sharpened_email=sharpened,
        )

    @staticmethod
    def fallback_result(
        base_subject: str,
        base_content: str,
        cohort: CohortDefinition,
        reason: str
    ) -> SharpeningResult:
        return SharpeningResult(
            cohort_id=cohort.id,
            cohort_name=cohort.name,
            subscriber_count=cohort.size,
            sharpened_email=EmailSharpening(
                subject=base_subject,
                content=base_content,
                cta=FALLBACK_CTA,
                reasoning=FALLBACK_REASONING,
                predicted_open_rate=FALLBACK_OPEN_RATE,
                predicted_click_rate=FALLBACK_CLICK_RATE,
                optimal_send_time=FALLBACK_SEND_TIME,
                voice_consistency_score=1.0,
                preserved_elements=["original content", "base structure"],
                fallback_used=True,
                fallback_reason=reason,
            ),
        )

    @staticmethod
    def validate_base_email(base_subject: str, base_content: str):
        if not base_subject or not base_subject.strip():
            raise ValidationError("Base subject must not be empty", field="base_subject")
        if not base_content or not base_content.strip():
            raise ValidationError("Base content must not be empty", field="base_content")

    @staticmethod
    def _adaptation_system_prompt(voice: VoiceProfile, target_description: str) -> str:
        return f"""You are an AI that adapts financial newsletter content for specific investor cohorts while preserving the original writer's authentic voice and style.

WRITER'S VOICE PROFILE:
- Tone: {voice.tone}
- Avg Sentence Length: {voice.complexity.average_sentence_length} words
- Technical Density: {voice.complexity.technical_term_density:.2f}%
- Key Phrases: {', '.join(voice.vocabulary.key_phrases)}
- Transitions: {', '.join(voice.vocabulary.preferred_transitions)}
- Personality: {voice.personality}
- Reading Level: Grade {voice.complexity.reading_level}

CRITICAL VOICE PRESERVATION RULES:
1. Maintain the writer's signature opening style and key phrases
2. Preserve the original paragraph structure and flow
3. Keep the same tone and conversational patterns
4. Use the writer's established vocabulary and expressions
5. Match the sentence complexity and technical density appropriately

ADAPTATION TARGET:
{target_description}"""
