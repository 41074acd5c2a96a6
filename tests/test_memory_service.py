"""
Tests for memory fact extraction: gating, cooldown and de-duplication.
"""

import uuid

import pytest
from pydantic_ai.models.test import TestModel

from caselli.db.database import unit_of_work
from caselli.db.repositories import MemoryFactsRepository, MessagesRepository
from caselli.services.memory_service import (
    ExtractedFact,
    MemoryExtractor,
    dedupe_facts,
    is_data_heavy,
    similarity,
)
from caselli.services.rate_limiter import CooldownLimiter

BUSINESS_TEXT = "Most of my clients are first-time buyers looking in Round Rock and Pflugerville"


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def facts(*texts):
    return [ExtractedFact(fact=text) for text in texts]


class TestSimilarity:
    def test_identical_and_disjoint(self):
        assert similarity("Prefers email over calls", "prefers EMAIL over calls") == 1.0
        assert similarity("Prefers email", "Works in Austin") == 0.0
        assert similarity("", "anything") == 0.0

    def test_overlap_over_larger_set(self):
        # 4 shared tokens out of max(4, 5)
        assert similarity("works with first buyers", "works with first time buyers") == 0.8

    @pytest.mark.parametrize(
        "text,heavy",
        [
            ("I mostly work with first-time buyers in Austin", False),
            ("123 Main St, $450,000, 4/3, 2400 sqft, 78701", True),
            ("", False),
        ],
    )
    def test_is_data_heavy(self, text, heavy):
        assert is_data_heavy(text, 0.3) is heavy


class TestDedupeFacts:
    def test_threshold_is_strict(self):
        # Exactly 0.8 overlap is kept; only strictly greater is a duplicate
        kept = dedupe_facts(
            facts("works with first time buyers"), ["works with first buyers"], 0.8
        )
        assert [f.fact for f in kept] == ["works with first time buyers"]

    def test_drops_near_duplicates_of_stored_facts(self):
        kept = dedupe_facts(
            facts("Prefers email over phone calls", "Specializes in condos downtown"),
            ["prefers email over phone calls"],
            0.8,
        )
        assert [f.fact for f in kept] == ["Specializes in condos downtown"]

    def test_drops_duplicates_within_the_batch(self):
        kept = dedupe_facts(
            facts("Closes most deals in spring", "closes most deals in spring"),
            [],
            0.8,
        )
        assert [f.fact for f in kept] == ["Closes most deals in spring"]

    def test_skips_blank_candidates(self):
        blank = ExtractedFact.model_construct(fact="   ", category="general")

        kept = dedupe_facts([blank, *facts("Works weekends")], [], 0.8)

        assert [f.fact for f in kept] == ["Works weekends"]


class TestCooldownLimiter:
    async def test_one_acquisition_per_window(self):
        clock = FakeClock()
        limiter = CooldownLimiter(300, clock=clock)
        owner = uuid.uuid4()

        assert await limiter.try_acquire(owner) is True
        assert await limiter.try_acquire(owner) is False
        assert await limiter.try_acquire(uuid.uuid4()) is True

        clock.now += 299
        assert await limiter.try_acquire(owner) is False

        clock.now += 2
        assert await limiter.try_acquire(owner) is True


class TestMemoryExtractor:
    def extractor(self, settings, session_factory, output=None):
        model = TestModel(custom_output_args={"facts": output or []})
        return MemoryExtractor(
            settings,
            session_factory,
            CooldownLimiter(settings.memory_cooldown_seconds, clock=FakeClock()),
            model=model,
        )

    async def test_gating(self, settings, session_factory, owner_id):
        extractor = self.extractor(settings, session_factory)

        assert await extractor.should_extract(owner_id, "Thanks!") is False
        assert await extractor.should_extract(owner_id, "$450,000 | 4/3 | 2,400 | 78701 | 2010 | 0.25ac") is False
        assert await extractor.should_extract(owner_id, BUSINESS_TEXT) is True
        # Cooldown now active for this owner
        assert await extractor.should_extract(owner_id, BUSINESS_TEXT) is False

    async def test_skipped_text_does_not_start_cooldown(self, settings, session_factory, owner_id):
        extractor = self.extractor(settings, session_factory)

        assert await extractor.should_extract(owner_id, "ok") is False
        assert await extractor.should_extract(owner_id, BUSINESS_TEXT) is True

    async def test_extract_inserts_only_new_facts(
        self, settings, session_factory, owner_id, conversation_id
    ):
        async with unit_of_work(session_factory) as session:
            await MessagesRepository(session).add(owner_id, conversation_id, "user", BUSINESS_TEXT)
            await MessagesRepository(session).add(
                owner_id, conversation_id, "assistant", "Noted, I'll keep that in mind."
            )
            await MemoryFactsRepository(session).add(
                owner_id, "Prefers email over phone calls", "preference", None
            )

        extractor = self.extractor(
            settings,
            session_factory,
            [
                {"fact": "prefers email over phone calls", "category": "preference"},
                {"fact": "Works mostly with first-time buyers in Round Rock", "category": "client"},
            ],
        )

        inserted = await extractor.extract(owner_id, conversation_id)

        assert inserted == ["Works mostly with first-time buyers in Round Rock"]
        async with unit_of_work(session_factory) as session:
            repo = MemoryFactsRepository(session)
            assert await repo.count(owner_id) == 2
            newest = (await repo.list_recent(owner_id, limit=1))[0]
        assert newest.category == "client"
        assert newest.source_conversation_id == conversation_id

    async def test_extract_with_empty_conversation(
        self, settings, session_factory, owner_id, conversation_id
    ):
        extractor = self.extractor(settings, session_factory, [{"fact": "Never stored", "category": "general"}])

        assert await extractor.extract(owner_id, conversation_id) == []
