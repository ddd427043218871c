"""
Personalization Orchestrator

Central coordinator that ties storage, profiling, cohort generation and the
AI agents together, and runs bulk personalization in bounded batches.
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional, Dict, List, Any, Sequence

from config import Config, get_config
from exceptions import ValidationError
from models.cohort import CohortDefinition
from models.market import MarketContext
from models.voice import VoiceProfile
from models.personalization import SharpeningResult, IndividualPersonalization
from audience.storage import SubscriberStore
from audience.profile_builder import ProfileBuilder
from audience.cohort_generator import CohortGenerator
from audience.predictions import Predictor
from audience.rules import RuleEngine
from agents.batching import BatchResult, run_in_batches
from agents.providers import AIProvider, MarketContextProvider, build_ai_provider
from agents.sharpening_agent import SharpeningAgent
from agents.personalization_agent import PersonalizationAgent

logger = logging.getLogger(__name__)


class PersonalizationOrchestrator:
    """
    Coordinates the engine for one deployment.

    Tenant id is passed explicitly to every tenant-scoped call.

    Usage:
        orchestrator = PersonalizationOrchestrator(store)
        cohorts = orchestrator.refresh_cohorts("acme")
        batch = await orchestrator.sharpen_cohorts(subject, content, cohorts)
    """

    def __init__(
        self,
        store: Optional[SubscriberStore] = None,
        ai_provider: Optional[AIProvider] = None,
        market_provider: Optional[MarketContextProvider] = None,
        config: Optional[Config] = None,
        use_ai: bool = True
    ):
        self.config = config or get_config()
        self.store = store
        self.market_provider = market_provider

        if ai_provider is None and use_ai:
            ai_provider = build_ai_provider(self.config.ai)

        self.predictor = Predictor(self.config.prediction)
        self.profile_builder = ProfileBuilder(self.predictor)
        self.cohort_generator = CohortGenerator(self.config.segmentation)
        self.rule_engine = RuleEngine()
        self.sharpening_agent = SharpeningAgent(
            ai_provider=ai_provider,
            config=self.config.ai,
            orchestrator_config=self.config.orchestrator,
            use_ai=use_ai,
        )
        self.personalization_agent = PersonalizationAgent(
            ai_provider=ai_provider,
            market_provider=market_provider,
            config=self.config.ai,
            use_ai=use_ai,
        )

    def _require_store(self) -> SubscriberStore:
        if self.store is None:
            raise ValidationError("This operation needs a subscriber store", field="store")
        return self.store

    # Cohorts

    def load_profiles(self, tenant_id: str, as_of: Optional[datetime] = None):
        store = self._require_store()
        as_of = as_of or datetime.utcnow()
        return self.profile_builder.build_profiles(store.get_all_subscriber_records(tenant_id), as_of)

    def refresh_cohorts(
        self,
        tenant_id: str,
        market_context: Optional[MarketContext] = None,
        as_of: Optional[datetime] = None
    ) -> List[CohortDefinition]:
        """
        Regenerate and store a tenant's cohorts and their rules.

        Previously stored cohorts are replaced as a whole.
        """
        store = self._require_store()
        as_of = as_of or datetime.utcnow()

        profiles = self.load_profiles(tenant_id, as_of)
        cohorts = self.cohort_generator.generate_cohorts(profiles, market_context, as_of)
        store.replace_cohorts(tenant_id, cohorts)

        for cohort in cohorts:
            store.save_rules(tenant_id, cohort.id, self.rule_engine.derive_rules(cohort))

        return cohorts

    async def personalize_individual(
        self,
        tenant_id: str,
        subscriber_id: str,
        base_subject: str,
        base_content: str,
        market_context: Optional[MarketContext] = None,
        voice_profile: Optional[VoiceProfile] = None,
        log_result: bool = True,
        as_of: Optional[datetime] = None
    ) -> IndividualPersonalization:
        """
        Personalize for one stored subscriber.

        The base content's voice is extracted here unless `voice_profile`
        is passed in. Store access runs in a worker thread.

        Raises:
            NotFoundError: if the tenant has no such subscriber
            ValidationError: if the subject or content is empty
        """
        store = self._require_store()
        as_of = as_of or datetime.utcnow()

        raw = await asyncio.to_thread(store.get_subscriber_record, tenant_id, subscriber_id)
        profile = self.profile_builder.build_profile(subscriber_id, raw, as_of)

        if voice_profile is None:
            self.sharpening_agent.validate_base_email(base_subject, base_content)
            voice_profile = await self.sharpening_agent.extract_voice_profile(base_content)

        result = await self.personalization_agent.personalize_individual(
            profile, base_subject, base_content,
            market_context=market_context, voice_profile=voice_profile, as_of=as_of,
        )
        if log_result:
            await asyncio.to_thread(store.log_personalization, tenant_id, result)
        return result

    # Batch operations

    async def sharpen_cohorts(
        self,
        base_subject: str,
        base_content: str,
        cohorts: Sequence[CohortDefinition],
        market_context: Optional[MarketContext] = None,
        concurrency: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> BatchResult[SharpeningResult]:
        """
        Sharpen the base email for every cohort.

        The voice profile is extracted once up front. Per-cohort AI
        failures come back as fallback results; items skipped by
        cancellation come back as errors.

        Raises:
            ValidationError: if the subject or content is empty
        """
        agent = self.sharpening_agent
        agent.validate_base_email(base_subject, base_content)

        voice_profile = await agent.extract_voice_profile(base_content)

        async def adapt(cohort: CohortDefinition) -> SharpeningResult:
            return await agent.adapt_for_cohort(base_subject, base_content, cohort, voice_profile, market_context)

        batch = await run_in_batches(
            list(cohorts),
            adapt,
            item_id=lambda c: c.id,
            concurrency=concurrency or self.config.orchestrator.concurrency_limit,
            cancel_event=cancel_event,
            item_timeout=self.config.orchestrator.item_timeout_seconds,
        )

        fallbacks = sum(1 for r in batch.successes if r.fallback_used)
        logger.info(
            f"Sharpened {len(batch.successes)} cohorts ({fallbacks} fallbacks), {len(batch.errors)} errors"
        )
        return batch

    async def personalize_subscribers(
        self,
        tenant_id: str,
        subscriber_ids: Sequence[str],
        base_subject: str,
        base_content: str,
        market_context: Optional[MarketContext] = None,
        concurrency: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
        log_results: bool = True,
        as_of: Optional[datetime] = None
    ) -> BatchResult[IndividualPersonalization]:
        """
        Personalize the base email for each subscriber.

        The voice profile is extracted once and shared by every subscriber.
        Unknown subscribers are reported as per-item errors.

        Raises:
            ValidationError: for an empty id list or empty subject/content
        """
        store = self._require_store()
        if not subscriber_ids:
            raise ValidationError("subscriber_ids must not be empty", field="subscriber_ids")
        self.sharpening_agent.validate_base_email(base_subject, base_content)

        as_of = as_of or datetime.utcnow()
        voice_profile = await self.sharpening_agent.extract_voice_profile(base_content)

        async def personalize(subscriber_id: str) -> IndividualPersonalization:
            return await self.personalize_individual(
                tenant_id, subscriber_id, base_subject, base_content,
                market_context=market_context, voice_profile=voice_profile,
                log_result=log_results, as_of=as_of,
            )

        return await run_in_batches(
            list(subscriber_ids),
            personalize,
            item_id=lambda sid: sid,
            concurrency=concurrency or self.config.orchestrator.concurrency_limit,
            cancel_event=cancel_event,
            item_timeout=self.config.orchestrator.item_timeout_seconds,
        )

    def get_status(self) -> Dict[str, Any]:
        """Get orchestrator and agent status"""
        return {
            "app": self.config.app_name,
            "version": self.config.version,
            "agents": [
                self.sharpening_agent.get_status(),
                self.personalization_agent.get_status(),
            ],
            "concurrency_limit": self.config.orchestrator.concurrency_limit,
        }
