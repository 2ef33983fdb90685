"""Shared fixtures: in-memory fakes for the LLM and temp-file SQLite storage."""

import json

import pytest

from niche_finder.database import Storage
from niche_finder.errors import LLMError
from niche_finder.models import Application, Review


VALID_BODY = {
    "sub_category_summary": {
        "approach_name": "Gamified streak trackers",
        "apps_analyzed": 99,
        "total_reviews": 99,
        "what_this_approach_does_well": "Motivation through streaks",
        "core_limitation": "Breaking a streak feels like failure",
    },
    "micro_niches": [
        {
            "niche_name": "Streaks without anxiety",
            "target_user": "People with ADHD",
            "core_problem": "Losing a streak makes them quit",
            "solution": "Rolling weekly goals instead of daily streaks",
            "why_this_is_different": "Misses don't reset progress",
            "frequency": 12,
            "opportunity_score": 8,
        }
    ],
}


class FakeLLM:
    """Returns canned responses and records every prompt it was sent."""

    def __init__(self, responses=None, embeddings=None):
        # responses: a single string/exception reused for every call, or a list consumed in order
        self.responses = responses if responses is not None else json.dumps(VALID_BODY)
        self.embeddings = embeddings or {}
        self.prompts = []
        self.calls = []

    def generate_structured(self, prompt, temperature=0, force_json=True):
        self.prompts.append(prompt)
        self.calls.append({"temperature": temperature, "force_json": force_json})
        response = self.responses
        if isinstance(response, list):
            response = response.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def embed(self, text):
        for prefix, vector in self.embeddings.items():
            if text.startswith(prefix):
                if isinstance(vector, Exception):
                    raise vector
                return vector
        raise LLMError(f"no embedding configured for {text[:20]!r}")


def make_app(name, embedding=None, scores=(), rating=4.0, description="", keyword="habit tracker"):
    return Application(
        app_store_id=f"id-{name.lower().replace(' ', '-')}",
        name=name,
        description=description or f"{name} helps you build habits.",
        rating=rating,
        embedding=list(embedding) if embedding is not None else [],
        reviews=[Review(score=s, text=f"{name} review {i}", date="2026-01-01")
                 for i, s in enumerate(scores)],
        keyword_tag=keyword,
    )


@pytest.fixture
def storage(tmp_path):
    return Storage(str(tmp_path / "test.db"))


@pytest.fixture
def fake_llm():
    return FakeLLM()
