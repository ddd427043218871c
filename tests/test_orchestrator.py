"""
Tests for batch orchestration
"""
import asyncio

import pytest

from exceptions import NotFoundError, ValidationError
from agents.batching import run_in_batches
from agents.orchestrator import PersonalizationOrchestrator
from audience.ingestion import DataIngestion
from models.market import MarketContext

from conftest import AS_OF, FakeAIProvider, TECH_CONTENT


class CancellingProvider(FakeAIProvider):
    """Sets the cancel event as soon as the first adaptation runs"""

    def __init__(self, cancel_event: asyncio.Event):
        super().__init__()
        self.cancel_event = cancel_event

    async def generate(self, system_prompt, user_prompt, temperature=0.7, max_tokens=2000):
        if user_prompt.startswith("Adapt for "):
            self.cancel_event.set()
        return await super().generate(system_prompt, user_prompt, temperature, max_tokens)


class SlowProvider(FakeAIProvider):

    async def generate(self, system_prompt, user_prompt, temperature=0.7, max_tokens=2000):
        if user_prompt.startswith("Adapt for "):
            await asyncio.sleep(1)
        return await super().generate(system_prompt, user_prompt, temperature, max_tokens)


@pytest.fixture
def seeded_store(store):
    DataIngestion(store, "acme").generate_sample_data(30, as_of=AS_OF)
    return store


class TestRunInBatches:

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self):
        async def worker(n):
            if n % 3 == 0:
                raise ValueError(f"bad {n}")
            return n * 10

        batch = await run_in_batches(list(range(7)), worker, item_id=str, concurrency=3)

        assert batch.successes == [10, 20, 40, 50]
        assert [e.item_id for e in batch.errors] == ["0", "3", "6"]
        assert batch.total == 7
        assert not batch.cancelled

    @pytest.mark.asyncio
    async def test_concurrency_bounds_each_batch(self):
        running = 0
        peak = 0

        async def worker(n):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return n

        await run_in_batches(list(range(10)), worker, item_id=str, concurrency=4)

        assert peak == 4

    @pytest.mark.asyncio
    async def test_invalid_concurrency(self):
        async def worker(n):
            return n

        with pytest.raises(ValidationError):
            await run_in_batches([1], worker, item_id=str, concurrency=0)

    @pytest.mark.asyncio
    async def test_cancellation_before_start(self):
        event = asyncio.Event()
        event.set()

        async def worker(n):
            return n

        batch = await run_in_batches([1, 2], worker, item_id=str, cancel_event=event)

        assert batch.successes == []
        assert {e.kind for e in batch.errors} == {"cancelled"}
        assert batch.cancelled


class TestSharpenCohorts:

    @pytest.mark.asyncio
    async def test_results_cover_every_cohort(self, config, cohorts):
        provider = FakeAIProvider(fail_on=["Adapt for New Investors"])
        orchestrator = PersonalizationOrchestrator(ai_provider=provider, config=config)

        batch = await orchestrator.sharpen_cohorts("Tech Sector Update", TECH_CONTENT, cohorts, concurrency=2)

        assert len(batch.successes) + len(batch.errors) == len(cohorts)
        assert len(provider.calls_of("voice")) == 1
        assert [r.fallback_used for r in batch.successes] == [False, False, True]

    @pytest.mark.asyncio
    async def test_cancel_between_batches(self, config, cohorts):
        event = asyncio.Event()
        orchestrator = PersonalizationOrchestrator(ai_provider=CancellingProvider(event), config=config)

        batch = await orchestrator.sharpen_cohorts(
            "Tech Sector Update", TECH_CONTENT, cohorts, concurrency=1, cancel_event=event
        )

        assert len(batch.successes) == 1
        assert [e.item_id for e in batch.errors] == [c.id for c in cohorts[1:]]
        assert all(e.kind == "cancelled" for e in batch.errors)
        assert batch.total == len(cohorts)

    @pytest.mark.asyncio
    async def test_item_timeout_is_reported(self, config, cohorts):
        config.orchestrator.item_timeout_seconds = 0.05
        orchestrator = PersonalizationOrchestrator(ai_provider=SlowProvider(), config=config)

        batch = await orchestrator.sharpen_cohorts("Tech Sector Update", TECH_CONTENT, cohorts)

        assert batch.successes == []
        assert {e.kind for e in batch.errors} == {"timeout"}

    @pytest.mark.asyncio
    async def test_empty_subject_is_rejected(self, config, cohorts):
        orchestrator = PersonalizationOrchestrator(ai_provider=FakeAIProvider(), config=config)

        with pytest.raises(ValidationError):
            await orchestrator.sharpen_cohorts(" ", TECH_CONTENT, cohorts)


class TestPersonalizeSubscribers:

    @pytest.mark.asyncio
    async def test_unknown_subscribers_become_errors(self, seeded_store, fake_ai, config):
        orchestrator = PersonalizationOrchestrator(seeded_store, ai_provider=fake_ai, config=config)
        ids = ["sub_0000", "ghost", "sub_0001"]

        batch = await orchestrator.personalize_subscribers(
            "acme", ids, "Tech Sector Update", TECH_CONTENT,
            market_context=MarketContext.neutral(), as_of=AS_OF,
        )

        assert [r.subscriber_id for r in batch.successes] == ["sub_0000", "sub_0001"]
        assert [e.item_id for e in batch.errors] == ["ghost"]
        assert "not found" in batch.errors[0].message
        assert len(seeded_store.get_personalization_log("acme")) == 2

    @pytest.mark.asyncio
    async def test_voice_extracted_once_for_all_subscribers(self, seeded_store, fake_ai, config):
        orchestrator = PersonalizationOrchestrator(seeded_store, ai_provider=fake_ai, config=config)
        ids = [f"sub_{i:04d}" for i in range(5)]

        batch = await orchestrator.personalize_subscribers(
            "acme", ids, "Tech Sector Update", TECH_CONTENT,
            market_context=MarketContext.neutral(), concurrency=2, as_of=AS_OF,
        )

        assert len(batch.successes) == 5
        assert len(fake_ai.calls_of("voice")) == 1
        prompts = [c["user_prompt"] for c in fake_ai.calls_of("personalization")]
        assert len(prompts) == 5
        assert all("WRITER'S VOICE" in p for p in prompts)

    @pytest.mark.asyncio
    async def test_single_subscriber_by_id(self, seeded_store, fake_ai, config):
        orchestrator = PersonalizationOrchestrator(seeded_store, ai_provider=fake_ai, config=config)

        result = await orchestrator.personalize_individual(
            "acme", "sub_0002", "Tech Sector Update", TECH_CONTENT,
            market_context=MarketContext.neutral(), as_of=AS_OF,
        )

        assert result.subscriber_id == "sub_0002"
        assert [e["subscriber_id"] for e in seeded_store.get_personalization_log("acme")] == ["sub_0002"]

        with pytest.raises(NotFoundError):
            await orchestrator.personalize_individual("globex", "sub_0002", "Tech Sector Update", TECH_CONTENT)

    @pytest.mark.asyncio
    async def test_logging_can_be_disabled(self, seeded_store, fake_ai, config):
        orchestrator = PersonalizationOrchestrator(seeded_store, ai_provider=fake_ai, config=config)

        await orchestrator.personalize_subscribers(
            "acme", ["sub_0000"], "Tech Sector Update", TECH_CONTENT, log_results=False, as_of=AS_OF
        )

        assert seeded_store.get_personalization_log("acme") == []

    @pytest.mark.asyncio
    async def test_empty_id_list_is_rejected(self, seeded_store, fake_ai, config):
        orchestrator = PersonalizationOrchestrator(seeded_store, ai_provider=fake_ai, config=config)

        with pytest.raises(ValidationError):
            await orchestrator.personalize_subscribers("acme", [], "Tech Sector Update", TECH_CONTENT)

    @pytest.mark.asyncio
    async def test_store_is_required(self, fake_ai, config):
        orchestrator = PersonalizationOrchestrator(ai_provider=fake_ai, config=config)

        with pytest.raises(ValidationError):
            await orchestrator.personalize_subscribers("acme", ["sub_0000"], "Tech Sector Update", TECH_CONTENT)


class TestRefreshCohorts:

    def test_cohorts_and_rules_are_stored(self, seeded_store, config):
        orchestrator = PersonalizationOrchestrator(seeded_store, config=config, use_ai=False)

        cohorts = orchestrator.refresh_cohorts("acme", as_of=AS_OF)

        assert cohorts
        assert {c.id for c in seeded_store.get_all_cohorts("acme")} == {c.id for c in cohorts}
        assert all(c.size <= 30 for c in cohorts)
        assert seeded_store.get_stats("acme")["total_rules"] > 0
        assert seeded_store.get_all_cohorts("globex") == []

    def test_large_tenant_is_fully_segmented(self, store, config):
        records = {
            f"sub_{i:05d}": {"risk_tolerance": "conservative", "engagement_score": 55}
            for i in range(10005)
        }
        store.save_subscriber_records("acme", records)
        orchestrator = PersonalizationOrchestrator(store, config=config, use_ai=False)

        cohorts = {c.id: c for c in orchestrator.refresh_cohorts("acme", as_of=AS_OF)}

        assert cohorts["conservative_investors"].size == 10005

    def test_status(self, config):
        orchestrator = PersonalizationOrchestrator(config=config, use_ai=False)

        status = orchestrator.get_status()

        assert status["concurrency_limit"] == 10
        assert [a["name"] for a in status["agents"]] == ["SharpeningAgent", "PersonalizationAgent"]
        assert not any(a["ai_available"] for a in status["agents"])
