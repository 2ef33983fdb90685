"""End-to-end tests for the analysis orchestrator."""

import json
import logging
import sqlite3

import pytest

from niche_finder.analyzer import OpportunityAnalyzer
from niche_finder.errors import NoApplicationsFound, NoEmbeddingsAvailable, StorageError
from niche_finder.pipeline import AnalysisOrchestrator, filter_valid_embeddings
from tests.conftest import VALID_BODY, FakeLLM, make_app


def seed_habit_trackers(storage):
    """5 apps: three near-identical pitches plus two unrelated ones."""
    apps = [
        make_app("Habitica", [1.0, 0.0, 0.0], scores=[1, 2, 4, 5], rating=4.8),
        make_app("Streaks", [0.95, 0.05, 0.0], scores=[3, 5], rating=4.6),
        make_app("HabitBull", [0.9, 0.1, 0.05], scores=[1, 4, 4], rating=4.4),
        make_app("Loop", [0.0, 1.0, 0.0], scores=[5], rating=4.2),
        make_app("Fabulous", [0.0, 0.0, 1.0], scores=[2, 2, 3, 5, 5], rating=4.0),
    ]
    for app in apps:
        storage.upsert_application(app)
    return apps


def build(storage, llm):
    return AnalysisOrchestrator(storage, OpportunityAnalyzer(llm))


class TestAnalysisOrchestrator:

    def test_end_to_end(self, storage, fake_llm):
        apps = seed_habit_trackers(storage)

        result = build(storage, fake_llm).run("Habit Tracker")

        assert result.keyword == "habit tracker"
        assert result.groups_analyzed == 3
        assert result.total_apps == 5
        assert len(result.analyses) == 3
        assert [a.apps for a in result.analyses] == [
            ["Habitica", "Streaks", "HabitBull"], ["Loop"], ["Fabulous"],
        ]

        rows = storage.get_analyses("habit tracker")
        assert len(rows) == 3
        assert sum(r.review_count for r in rows) == sum(len(a.reviews) for a in apps)
        assert [r.apps for r in rows] == [a.apps for a in result.analyses]
        assert len(fake_llm.prompts) == 3

    def test_rerun_replaces_previous_rows(self, storage):
        seed_habit_trackers(storage)
        build(storage, FakeLLM()).run("habit tracker")

        second_body = {**VALID_BODY, "sub_category_summary": {
            **VALID_BODY["sub_category_summary"], "approach_name": "Second run",
        }}
        second = build(storage, FakeLLM(json.dumps(second_body))).run("HABIT TRACKER")

        rows = storage.get_analyses("habit tracker")
        assert len(rows) == 3
        assert {r.summary.approach_name for r in rows} == {"Second run"}
        assert [r.id for r in rows] == [a.id for a in second.analyses]

    def test_no_apps_raises_before_model_call(self, storage, fake_llm):
        with pytest.raises(NoApplicationsFound):
            build(storage, fake_llm).run("habit tracker")
        assert fake_llm.prompts == []

    def test_no_embeddings(self, storage, fake_llm):
        storage.upsert_application(make_app("Bare", None))
        with pytest.raises(NoEmbeddingsAvailable) as exc:
            build(storage, fake_llm).run("habit tracker")
        assert exc.value.dropped == 1
        assert fake_llm.prompts == []

    def test_failed_group_skipped(self, storage):
        seed_habit_trackers(storage)
        llm = FakeLLM([json.dumps(VALID_BODY), "garbage", json.dumps([VALID_BODY])])

        result = build(storage, llm).run("habit tracker")

        assert result.groups_analyzed == 3
        assert len(result.analyses) == 2
        assert result.failed_groups == [1]
        assert not result.all_failed
        assert [r.apps for r in storage.get_analyses("habit tracker")] == [
            ["Habitica", "Streaks", "HabitBull"], ["Fabulous"],
        ]

    def test_all_groups_failed_is_distinguishable(self, storage):
        seed_habit_trackers(storage)
        result = build(storage, FakeLLM("nope")).run("habit tracker")

        assert result.groups_analyzed == 3
        assert result.analyses == []
        assert result.failed_groups == [0, 1, 2]
        assert result.all_failed
        assert storage.get_analyses("habit tracker") == []

    def test_invalid_embeddings_dropped_with_reason(self, storage, fake_llm):
        storage.upsert_application(make_app("Good", [1.0, 0.0], scores=[1], rating=4.5))
        storage.upsert_application(make_app("Missing", None, scores=[2], rating=4.4))
        storage.upsert_application(make_app("Wrong", [1.0, 0.0, 0.0], scores=[3], rating=4.3))

        result = build(storage, fake_llm).run("habit tracker")

        assert result.total_apps == 1
        assert {d.name: d.reason for d in result.dropped} == {
            "Missing": "missing embedding",
            "Wrong": "embedding has 3 dimensions, expected 2",
        }
        assert result.analyses[0].apps == ["Good"]

    def test_delete_failure_is_not_fatal(self, storage, fake_llm, caplog):
        seed_habit_trackers(storage)

        class FlakyStorage:
            def __init__(self, inner):
                self.inner = inner

            def delete_analyses(self, keyword):
                raise StorageError("disk full")

            def load_applications(self, keyword):
                return self.inner.load_applications(keyword)

            def save_analysis(self, record):
                return self.inner.save_analysis(record)

        with caplog.at_level(logging.ERROR):
            result = build(FlakyStorage(storage), fake_llm).run("habit tracker")

        assert len(result.analyses) == 3
        assert "disk full" in caplog.text

    def test_save_failure_marks_group_failed(self, storage, fake_llm, caplog):
        seed_habit_trackers(storage)

        class LockedOnceStorage:
            def __init__(self, inner):
                self.inner = inner
                self.saves = 0

            def delete_analyses(self, keyword):
                return self.inner.delete_analyses(keyword)

            def load_applications(self, keyword):
                return self.inner.load_applications(keyword)

            def save_analysis(self, record):
                self.saves += 1
                if self.saves == 1:
                    raise sqlite3.OperationalError("database is locked")
                return self.inner.save_analysis(record)

        with caplog.at_level(logging.ERROR):
            result = build(LockedOnceStorage(storage), fake_llm).run("habit tracker")

        assert len(fake_llm.prompts) == 3
        assert result.failed_groups == [0]
        assert [a.apps for a in result.analyses] == [["Loop"], ["Fabulous"]]
        assert "database is locked" in caplog.text
        assert [r.apps for r in storage.get_analyses("habit tracker")] == [["Loop"], ["Fabulous"]]

    def test_unexpected_model_error_fails_groups_not_run(self, storage):
        seed_habit_trackers(storage)
        llm = FakeLLM(ConnectionResetError("connection reset by peer"))

        result = build(storage, llm).run("habit tracker")

        assert len(llm.prompts) == 3
        assert result.failed_groups == [0, 1, 2]
        assert result.all_failed

    def test_non_finite_embedding_dropped(self, storage, fake_llm):
        storage.upsert_application(make_app("Good", [1.0, 0.0], scores=[1], rating=4.5))
        storage.upsert_application(make_app("Poisoned", [1.0, 0.0], scores=[2], rating=4.4))
        conn = sqlite3.connect(storage.db_path)
        conn.execute("UPDATE apps SET embedding = ? WHERE name = ?", ("[NaN, 1.0]", "Poisoned"))
        conn.commit()
        conn.close()

        result = build(storage, fake_llm).run("habit tracker")

        assert {d.name: d.reason for d in result.dropped} == {"Poisoned": "missing embedding"}
        assert [a.apps for a in result.analyses] == [["Good"]]

    def test_two_apps_one_group(self, storage, fake_llm):
        storage.upsert_application(make_app("A", [1.0, 0.0], scores=[1, 2]))
        storage.upsert_application(make_app("B", [0.0, 1.0], scores=[5]))

        result = build(storage, fake_llm).run("habit tracker")

        assert result.groups_analyzed == 1
        assert result.analyses[0].review_count == 3


class TestFilterValidEmbeddings:

    def test_majority_dimension_wins(self):
        apps = [
            make_app("Odd", [1.0, 2.0, 3.0]),
            make_app("A", [1.0, 2.0]),
            make_app("B", [3.0, 4.0]),
        ]
        valid, dropped = filter_valid_embeddings(apps)
        assert [a.name for a in valid] == ["A", "B"]
        assert [d.name for d in dropped] == ["Odd"]

    def test_tie_goes_to_first_seen(self):
        apps = [make_app("A", [1.0]), make_app("B", [1.0, 2.0])]
        valid, dropped = filter_valid_embeddings(apps)
        assert [a.name for a in valid] == ["A"]
        assert [d.name for d in dropped] == ["B"]

    def test_all_missing(self):
        valid, dropped = filter_valid_embeddings([make_app("A", None)])
        assert valid == []
        assert dropped[0].reason == "missing embedding"
