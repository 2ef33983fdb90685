"""Tests for ingestion, with the store backends swapped for fakes."""

import pytest

from niche_finder import scraper
from niche_finder.errors import LLMError
from niche_finder.models import Review
from tests.conftest import FakeLLM


FOUND = [
    {"id": "111", "title": "Streaks", "description": "Build habits", "icon": "s.png", "score": 4.7},
    {"id": "222", "title": "Loop", "description": "Track habits", "icon": "l.png", "score": 4.1},
    {"id": "333", "title": "Broken", "description": "", "icon": "", "score": None},
]


@pytest.fixture
def fake_store(monkeypatch):
    def search(keyword, max_apps):
        return FOUND[:max_apps]

    def fetch(app_id, count):
        if app_id == "333":
            raise RuntimeError("store returned 500")
        return [Review(1, "crashes", "2026-01-02"), Review(5, "great", "2026-01-01")][:count]

    monkeypatch.setitem(scraper.STORE_BACKENDS, scraper.APPLE, (search, fetch))


class TestScrapeApps:

    def test_stores_apps_with_embeddings(self, storage, fake_store):
        llm = FakeLLM(embeddings={"Streaks.": [1.0, 0.0], "Loop.": [0.0, 1.0]})

        apps = scraper.scrape_apps("Habit Tracker", storage, llm, max_apps=3, delay=0)

        assert [a.name for a in apps] == ["Streaks", "Loop"]
        stored = storage.load_applications("habit tracker")
        assert [a.name for a in stored] == ["Streaks", "Loop"]
        assert stored[0].embedding == [1.0, 0.0]
        assert stored[0].keyword_tag == "habit tracker"
        assert len(stored[0].reviews) == 2

    def test_embedding_failure_stores_empty_vector(self, storage, fake_store):
        llm = FakeLLM(embeddings={"Streaks.": LLMError("quota"), "Loop.": [0.0, 1.0]})

        scraper.scrape_apps("habit tracker", storage, llm, max_apps=2, delay=0)

        stored = {a.name: a for a in storage.load_applications("habit tracker")}
        assert stored["Streaks"].embedding == []
        assert stored["Loop"].embedding == [0.0, 1.0]

    def test_reviews_capped(self, storage, fake_store):
        llm = FakeLLM(embeddings={"Streaks.": [1.0]})
        apps = scraper.scrape_apps("habit tracker", storage, llm, max_apps=1,
                                   reviews_per_app=1, delay=0)
        assert len(apps[0].reviews) == 1

    def test_unknown_store(self, storage):
        with pytest.raises(ValueError):
            scraper.scrape_apps("habit tracker", storage, FakeLLM(), store="windows_phone")


class TestRunScrapingPipeline:

    def test_summary_and_market_report(self, storage, fake_store):
        llm = FakeLLM(embeddings={"Streaks.": [1.0, 0.0], "Loop.": LLMError("down")})

        summary = scraper.run_scraping_pipeline("Habit Tracker", storage, llm, max_apps=3, delay=0)

        assert summary == {
            "keyword": "habit tracker",
            "apps_scraped": 2,
            "total_reviews": 4,
            "embeddings_generated": 1,
        }
        assert storage.get_market_report("habit tracker").apps_scraped == 2


class TestAppleParsing:

    def test_fetch_apple_reviews_skips_metadata_entry(self, monkeypatch):
        pages = {
            1: {"feed": {"entry": [
                {"im:name": {"label": "Streaks"}},
                {"im:rating": {"label": "2"}, "content": {"label": "too pricey"},
                 "updated": {"label": "2026-01-05T10:00:00-07:00"}},
            ]}},
            2: {"feed": {}},
        }

        class Response:
            def __init__(self, data):
                self.data = data

            def raise_for_status(self):
                pass

            def json(self):
                return self.data

        def fake_get(url, timeout):
            page = int(url.split("page=")[1].split("/")[0])
            return Response(pages.get(page, {"feed": {}}))

        monkeypatch.setattr(scraper.requests, "get", fake_get)

        reviews = scraper.fetch_apple_reviews("111", count=100)
        assert reviews == [Review(2, "too pricey", "2026-01-05T10:00:00-07:00")]
