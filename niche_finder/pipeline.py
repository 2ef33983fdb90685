"""
Analysis pipeline — orchestration for one keyword.

Steps:
    1. Normalize the keyword (storage keys are lowercase)
    2. Clear the keyword's previous analyses (a re-run replaces, never appends)
    3. Load the keyword's apps, best rated first
    4. Keep apps with a usable embedding
    5. Group apps by similarity
    6. Analyze each group with the LLM, storing each result as it arrives
    7. Report what happened

Groups are analyzed one at a time, in group order. Each analysis is an
expensive rate-limited LLM call, and stored rows follow group order.
"""

import logging
import sqlite3
from collections import Counter
from typing import Optional, Protocol

from niche_finder.analyzer import OpportunityAnalyzer
from niche_finder.clustering import group_apps_by_similarity
from niche_finder.config import (
    DATABASE_PATH, DEFAULT_MAX_APPS, DEFAULT_REVIEWS_PER_APP, SIMILARITY_THRESHOLD,
)
from niche_finder.errors import NoApplicationsFound, NoEmbeddingsAvailable, StorageError
from niche_finder.models import (
    AnalysisRunResult, Application, DroppedApplication, OpportunityAnalysis, normalize_keyword,
)

logger = logging.getLogger(__name__)


class AnalysisStorage(Protocol):
    def load_applications(self, keyword: str) -> list[Application]: ...
    def delete_analyses(self, keyword: str) -> int: ...
    def save_analysis(self, record: OpportunityAnalysis) -> int: ...


def filter_valid_embeddings(apps: list[Application]) -> tuple[list[Application], list[DroppedApplication]]:
    """
    Keep apps whose embedding can be clustered.

    An embedding must be non-empty and have the run's dimensionality. The run's
    dimensionality is the most common length among non-empty embeddings (ties
    go to the length seen first, i.e. the best-rated app's). Input order is kept.

    Returns:
        (valid apps, dropped apps with reasons)
    """
    dropped = []
    candidates = []
    for app in apps:
        if not app.embedding:
            dropped.append(DroppedApplication(app.name, "missing embedding"))
        else:
            candidates.append(app)

    if not candidates:
        return [], dropped

    # Counter.most_common keeps first-seen order among equal counts
    dimension = Counter(len(a.embedding) for a in candidates).most_common(1)[0][0]

    valid = []
    for app in candidates:
        if len(app.embedding) == dimension:
            valid.append(app)
        else:
            dropped.append(DroppedApplication(
                app.name,
                f"embedding has {len(app.embedding)} dimensions, expected {dimension}",
            ))

    return valid, dropped


class AnalysisOrchestrator:
    """Runs the full analysis pass for a keyword."""

    def __init__(self, storage: AnalysisStorage, analyzer: OpportunityAnalyzer,
                 threshold: float = SIMILARITY_THRESHOLD,
                 log: Optional[logging.Logger] = None):
        self.storage = storage
        self.analyzer = analyzer
        self.threshold = threshold
        self.log = log or logger

    def run(self, keyword: str) -> AnalysisRunResult:
        """
        Analyze every group of apps for a keyword.

        Raises:
            NoApplicationsFound:   no apps stored for the keyword.
            NoEmbeddingsAvailable: apps exist but none can be clustered.
        """
        normalized = normalize_keyword(keyword)
        self.log.info("=" * 60)
        self.log.info("ANALYZING: %s", normalized)
        self.log.info("=" * 60)

        # Step 1: Clear previous analysis for this keyword
        self.log.info('Clearing old reports for "%s"...', normalized)
        try:
            deleted = self.storage.delete_analyses(normalized)
            self.log.info("Old data cleared (%d rows).", deleted)
        except StorageError as e:
            self.log.error("Error clearing old data: %s", e)

        # Step 2: Load apps
        apps = self.storage.load_applications(normalized)
        if not apps:
            raise NoApplicationsFound(normalized)
        self.log.info("Loaded %d apps", len(apps))

        # Step 3: Keep apps that can be clustered
        valid_apps, dropped = filter_valid_embeddings(apps)
        for d in dropped:
            self.log.warning("  Dropped %s: %s", d.name, d.reason)
        if not valid_apps:
            raise NoEmbeddingsAvailable(normalized, dropped=len(dropped))
        self.log.info("%d apps ready for analysis", len(valid_apps))

        # Step 4: Group by approach
        self.log.info("Grouping apps by approach...")
        groups = group_apps_by_similarity(valid_apps, threshold=self.threshold, log=self.log)

        # Step 5: Analyze each group, in order
        analyses = []
        failed_groups = []
        for index, group in enumerate(groups):
            analysis = self.analyzer.analyze(group, normalized, index)
            if analysis is None:
                failed_groups.append(index)
                continue
            try:
                self.storage.save_analysis(analysis)
            except (StorageError, sqlite3.Error) as e:
                self.log.error("  Could not store group %d: %s", index + 1, e)
                failed_groups.append(index)
                continue
            analyses.append(analysis)

        result = AnalysisRunResult(
            keyword=normalized,
            groups_analyzed=len(groups),
            analyses=analyses,
            total_apps=len(valid_apps),
            dropped=dropped,
            failed_groups=failed_groups,
        )

        if result.all_failed:
            self.log.error("All %d groups failed analysis for '%s'", len(groups), normalized)
        elif failed_groups:
            self.log.warning("%d of %d groups produced no analysis: %s",
                             len(failed_groups), len(groups),
                             [i + 1 for i in failed_groups])

        self.log.info("ANALYSIS COMPLETE: %d/%d groups stored", len(analyses), len(groups))
        return result


def build_orchestrator(db_path: str = DATABASE_PATH, llm=None, storage=None) -> AnalysisOrchestrator:
    """
    Wire up the real collaborators. Call once at startup.
    Pass llm/storage to reuse instances you already have.
    """
    from niche_finder.database import Storage
    from niche_finder.llm_client import LLMClient

    storage = storage or Storage(db_path)
    llm = llm or LLMClient()
    return AnalysisOrchestrator(storage, OpportunityAnalyzer(llm))


def run_full_pipeline(keyword: str, storage, llm,
                      max_apps: int = DEFAULT_MAX_APPS,
                      reviews_per_app: int = DEFAULT_REVIEWS_PER_APP,
                      store: str = "apple_app_store") -> dict:
    """
    Scrape apps for a keyword, then analyze them.

    Returns:
        {"scraping": <scrape summary>, "analysis": AnalysisRunResult}
    """
    from niche_finder.scraper import run_scraping_pipeline

    normalized = normalize_keyword(keyword)
    logger.info("Starting full pipeline for: %s", normalized)

    scrape_summary = run_scraping_pipeline(
        normalized, storage, llm,
        max_apps=max_apps, reviews_per_app=reviews_per_app, store=store,
    )
    orchestrator = AnalysisOrchestrator(storage, OpportunityAnalyzer(llm))
    analysis_result = orchestrator.run(normalized)

    return {"scraping": scrape_summary, "analysis": analysis_result}
