"""
Unit tests for the monthly review service.

Cache rule: a stored review is reused while no record in the month has been
updated after it; otherwise the month is summarized again.
"""

import pytest
from app.services.errors import GenerationFailed, NoData
from app.services.local_store import LOCAL_OWNER
from app.services.monthly_review import (
    count_keywords,
    extract_month_keywords,
    get_cached_monthly_summary,
    get_or_generate_monthly_summary,
    year_overview,
)
from app.services.record_store import Record

OWNER = LOCAL_OWNER


class TestGetOrGenerate:
    """get_or_generate_monthly_summary."""

    async def test_generates_from_merged_entries(self, local_store, generator):
        local_store.upsert(OWNER, "2024-03-15", "second")
        local_store.upsert(OWNER, "2024-03-02", "first")
        local_store.upsert(OWNER, "2024-03-09", "...")

        review = await get_or_generate_monthly_summary(local_store, generator, OWNER, 2024, 3)

        assert review.cached is False
        assert review.month == "2024-03"
        assert review.summary["overview"] == "A productive month"
        assert generator.monthly_calls == [("[3/2]\nfirst\n\n[3/15]\nsecond", 2024, 3)]
        assert local_store.get_monthly_summary(OWNER, "2024-03") is not None

    async def test_cache_hit_skips_generator(self, local_store, generator):
        local_store.upsert(OWNER, "2024-03-02", "first")
        await get_or_generate_monthly_summary(local_store, generator, OWNER, 2024, 3)

        review = await get_or_generate_monthly_summary(local_store, generator, OWNER, 2024, 3)

        assert review.cached is True
        assert len(generator.monthly_calls) == 1

    async def test_record_update_invalidates_cache(self, local_store, generator):
        local_store.upsert(OWNER, "2024-03-02", "first")
        first = await get_or_generate_monthly_summary(local_store, generator, OWNER, 2024, 3)

        local_store.upsert(OWNER, "2024-03-02", "first, revised")
        second = await get_or_generate_monthly_summary(local_store, generator, OWNER, 2024, 3)

        assert second.cached is False
        assert second.updated_at > first.updated_at
        assert len(generator.monthly_calls) == 2

    async def test_no_meaningful_records(self, local_store, generator):
        local_store.upsert(OWNER, "2024-03-02", "!!!")
        with pytest.raises(NoData):
            await get_or_generate_monthly_summary(local_store, generator, OWNER, 2024, 3)
        assert generator.monthly_calls == []

    async def test_generation_failure_caches_nothing(self, local_store, generator):
        local_store.upsert(OWNER, "2024-03-02", "first")
        generator.fail = True
        with pytest.raises(GenerationFailed):
            await get_or_generate_monthly_summary(local_store, generator, OWNER, 2024, 3)
        assert local_store.get_monthly_summary(OWNER, "2024-03") is None

    async def test_malformed_reply_is_normalized(self, local_store, generator):
        local_store.upsert(OWNER, "2024-03-02", "first")
        generator.monthly_reply = {"takeaways": "not a list", "keywords": [{"name": "SQL"}, {"count": 3}]}

        review = await get_or_generate_monthly_summary(local_store, generator, OWNER, 2024, 3)

        assert review.summary["overview"] == "No overview available."
        assert review.summary["takeaways"] == []
        assert review.summary["keywords"] == [{"word": "SQL", "count": 1}]


class TestCachedLookup:
    """get_cached_monthly_summary never generates."""

    async def test_stale_cache_is_none(self, local_store, generator):
        local_store.upsert(OWNER, "2024-03-02", "first")
        await get_or_generate_monthly_summary(local_store, generator, OWNER, 2024, 3)
        assert get_cached_monthly_summary(local_store, OWNER, 2024, 3) is not None

        local_store.upsert(OWNER, "2024-03-03", "new day")

        assert get_cached_monthly_summary(local_store, OWNER, 2024, 3) is None

    def test_empty_month(self, local_store):
        assert get_cached_monthly_summary(local_store, OWNER, 2024, 3) is None


class TestKeywords:
    """Keyword extraction and the local fallback."""

    def test_count_keywords_drops_stop_and_time_words(self):
        records = [
            Record(owner=OWNER, date="2024-03-01", content="", summary="今天学习 TypeScript\nTypeScript 泛型"),
            Record(owner=OWNER, date="2024-03-02", content="the deploy went fine with docker"),
        ]
        words = {k["word"]: k["count"] for k in count_keywords(records)}

        assert words["typescript"] == 2
        assert words["docker"] == 1
        assert "今天" not in words
        assert "the" not in words

    async def test_prefers_generator(self, generator):
        records = [Record(owner=OWNER, date="2024-03-01", content="x", summary="TypeScript")]
        assert await extract_month_keywords(generator, records) == [{"word": "TypeScript", "count": 3}]

    async def test_falls_back_on_failure(self, generator):
        generator.fail = True
        records = [Record(owner=OWNER, date="2024-03-01", content="x", summary="docker docker")]
        assert await extract_month_keywords(generator, records) == [{"word": "docker", "count": 2}]

    async def test_no_summaries_counts_content(self, generator):
        records = [Record(owner=OWNER, date="2024-03-01", content="kubernetes")]
        assert await extract_month_keywords(generator, records) == [{"word": "kubernetes", "count": 1}]
        assert generator.keyword_calls == []


class TestYearOverview:
    """Year calendar data."""

    def test_counts_per_month(self, local_store):
        local_store.upsert(OWNER, "2024-01-05", "a")
        local_store.upsert(OWNER, "2024-01-06", "b")
        local_store.upsert(OWNER, "2024-03-01", "...")
        local_store.upsert(OWNER, "2024-12-31", "c")
        local_store.upsert(OWNER, "2025-01-01", "d")

        overview = year_overview(local_store, OWNER, 2024)

        assert overview["total_days"] == 3
        assert overview["months"]["2024-01"] == 2
        assert overview["months"]["2024-03"] == 0
        assert overview["months"]["2024-12"] == 1
        assert overview["dates"] == ["2024-01-05", "2024-01-06", "2024-12-31"]
