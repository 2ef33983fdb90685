"""
Database layer — the storage backbone of the pipeline.

Uses SQLite: a file-based database built into Python.
One file holds three tables:
    - apps:            scraped apps, tagged with the keyword they were found for
    - market_analysis: one row per analyzed group of apps
    - market_reports:  scrape metadata per keyword

Embeddings and reviews are stored as JSON text (SQLite can only store simple
types). They're decoded here, at the boundary, so the rest of the code always
gets real lists of floats and Review objects.
"""

import json
import logging
import math
import os
import sqlite3
from datetime import datetime
from typing import Optional

from niche_finder.config import DATABASE_PATH
from niche_finder.errors import StorageError
from niche_finder.models import (
    Application, MarketReport, OpportunityAnalysis, Review, normalize_keyword,
)

logger = logging.getLogger(__name__)


class Storage:
    """SQLite-backed store for apps, analyses and market reports."""

    def __init__(self, db_path: str = DATABASE_PATH):
        self.db_path = db_path
        directory = os.path.dirname(os.path.abspath(db_path))
        os.makedirs(directory, exist_ok=True)
        self.initialize()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        # Rows come back as dict-like objects: row["name"] instead of row[1]
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """
        Create all tables. Safe to call multiple times:
        'IF NOT EXISTS' means it won't crash if the tables already exist.
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        # ---- Table 1: apps ----
        # One row per app; re-scraping the same app overwrites it
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS apps (
                app_store_id    TEXT PRIMARY KEY,
                name            TEXT NOT NULL,
                description     TEXT,
                icon_url        TEXT,
                rating          REAL DEFAULT 0.0,
                keyword_tag     TEXT NOT NULL,
                store           TEXT,
                embedding       TEXT,
                reviews         TEXT,
                last_scraped_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_apps_keyword ON apps (keyword_tag)")

        # ---- Table 2: market_analysis ----
        # One row per analyzed group; replaced wholesale on every run
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS market_analysis (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                keyword         TEXT NOT NULL,
                apps            TEXT NOT NULL,
                analysis        TEXT NOT NULL,
                review_count    INTEGER DEFAULT 0,
                created_at      TEXT NOT NULL
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_analysis_keyword ON market_analysis (keyword)"
        )

        # ---- Table 3: market_reports ----
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS market_reports (
                keyword         TEXT PRIMARY KEY,
                apps_scraped    INTEGER DEFAULT 0,
                scraped_at      TEXT NOT NULL
            )
        """)

        conn.commit()
        conn.close()

    # ============================================================
    # Apps (written by the scraper, read by the pipeline)
    # ============================================================

    def upsert_application(self, app: Application) -> None:
        """Insert or overwrite an app, keyed by its store ID."""
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO apps
            (app_store_id, name, description, icon_url, rating, keyword_tag,
             store, embedding, reviews, last_scraped_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            app.app_store_id,
            app.name,
            app.description,
            app.icon_url,
            app.rating,
            normalize_keyword(app.keyword_tag),
            app.store,
            json.dumps(app.embedding),
            json.dumps([
                {"score": r.score, "text": r.text, "date": r.date} for r in app.reviews
            ]),
            datetime.now().isoformat(),
        ))
        conn.commit()
        conn.close()

    def load_applications(self, keyword: str) -> list[Application]:
        """All apps tagged with the keyword, best rated first."""
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM apps WHERE keyword_tag = ? ORDER BY rating DESC",
            (normalize_keyword(keyword),)
        )
        rows = [dict(row) for row in cursor.fetchall()]
        conn.close()
        return [_row_to_application(row) for row in rows]

    def get_apps_by_names(self, names: list[str]) -> list[dict]:
        """Name, icon and store ID for the given app names (dashboard detail page)."""
        if not names:
            return []
        conn = self._get_connection()
        cursor = conn.cursor()
        placeholders = ", ".join("?" for _ in names)
        cursor.execute(
            f"SELECT name, icon_url, app_store_id FROM apps WHERE name IN ({placeholders})",
            list(names)
        )
        rows = [dict(row) for row in cursor.fetchall()]
        conn.close()
        return rows

    # ============================================================
    # Analyses (owned by the pipeline)
    # ============================================================

    def delete_analyses(self, keyword: str) -> int:
        """
        Delete every stored analysis for a keyword.
        Returns the number of rows removed.

        Raises:
            StorageError: the delete failed. Callers may treat this as non-fatal.
        """
        try:
            conn = self._get_connection()
            try:
                cursor = conn.cursor()
                cursor.execute(
                    "DELETE FROM market_analysis WHERE keyword = ?",
                    (normalize_keyword(keyword),)
                )
                deleted = cursor.rowcount
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Could not clear analyses for '{keyword}': {e}") from e
        return deleted

    def save_analysis(self, record: OpportunityAnalysis) -> int:
        """
        Insert one analysis row. Returns its new ID.

        Raises:
            StorageError: the insert failed.
        """
        try:
            conn = self._get_connection()
            try:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT INTO market_analysis (keyword, apps, analysis, review_count, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    normalize_keyword(record.keyword),
                    json.dumps(record.apps),
                    json.dumps(record.to_body()),
                    record.review_count,
                    record.created_at.isoformat(),
                ))
                record.id = cursor.lastrowid
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Could not save analysis for '{record.keyword}': {e}") from e
        return record.id

    def get_analyses(self, keyword: str) -> list[OpportunityAnalysis]:
        """Stored analyses for a keyword, in the order the groups were analyzed."""
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM market_analysis WHERE keyword = ? ORDER BY id ASC",
            (normalize_keyword(keyword),)
        )
        rows = [dict(row) for row in cursor.fetchall()]
        conn.close()

        analyses = []
        for row in rows:
            body = json.loads(row["analysis"])
            # Rows written before array unwrapping existed
            if isinstance(body, list):
                body = body[0] if body else {}
            analyses.append(OpportunityAnalysis.from_body(
                keyword=row["keyword"],
                apps=json.loads(row["apps"]),
                body=body,
                review_count=row["review_count"] or 0,
                created_at=datetime.fromisoformat(row["created_at"]),
                id=row["id"],
            ))
        return analyses

    def list_reports(self) -> list[dict]:
        """
        One summary per analyzed keyword, newest first.
        This is what the dashboard's report list shows.
        """
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            SELECT keyword,
                   COUNT(*)          AS group_count,
                   SUM(review_count) AS total_reviews,
                   MAX(created_at)   AS last_analyzed
            FROM market_analysis
            GROUP BY keyword
            ORDER BY last_analyzed DESC
        """)
        rows = [dict(row) for row in cursor.fetchall()]
        conn.close()
        return rows

    # ============================================================
    # Market reports (scrape metadata)
    # ============================================================

    def save_market_report(self, report: MarketReport) -> None:
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO market_reports (keyword, apps_scraped, scraped_at)
            VALUES (?, ?, ?)
        """, (
            normalize_keyword(report.keyword),
            report.apps_scraped,
            report.scraped_at.isoformat(),
        ))
        conn.commit()
        conn.close()

    def get_market_report(self, keyword: str) -> Optional[MarketReport]:
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT * FROM market_reports WHERE keyword = ?",
            (normalize_keyword(keyword),)
        )
        row = cursor.fetchone()
        conn.close()
        if row is None:
            return None
        return MarketReport(
            keyword=row["keyword"],
            apps_scraped=row["apps_scraped"],
            scraped_at=datetime.fromisoformat(row["scraped_at"]),
        )


# ============================================================
# Row decoding
# ============================================================

def parse_embedding(value) -> list[float]:
    """
    Decode a stored embedding into a list of floats.
    Accepts a JSON string or a list. Anything malformed comes back as [],
    which the pipeline treats as "no embedding".
    """
    if value is None:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Unparseable embedding: %.80s", value)
            return []
    if not isinstance(value, list):
        return []
    try:
        vector = [float(x) for x in value]
    except (TypeError, ValueError):
        logger.warning("Embedding contains non-numeric values")
        return []
    # json.loads accepts NaN and Infinity
    if not all(math.isfinite(x) for x in vector):
        logger.warning("Embedding contains non-finite values")
        return []
    return vector


def parse_reviews(value) -> list[Review]:
    """Decode stored reviews. Entries without a usable score are skipped."""
    if not value:
        return []
    try:
        raw_reviews = json.loads(value) if isinstance(value, str) else value
    except json.JSONDecodeError:
        logger.warning("Unparseable reviews blob: %.80s", value)
        return []
    if not isinstance(raw_reviews, list):
        logger.warning("Reviews blob is not a list: %.80s", value)
        return []

    reviews = []
    for raw in raw_reviews:
        try:
            reviews.append(Review(
                score=int(raw["score"]),
                text=raw.get("text") or "",
                date=str(raw.get("date") or ""),
            ))
        except (KeyError, TypeError, ValueError):
            continue
    return reviews


def _row_to_application(row: dict) -> Application:
    return Application(
        app_store_id=row["app_store_id"],
        name=row["name"],
        description=row.get("description") or "",
        rating=row.get("rating") or 0.0,
        embedding=parse_embedding(row.get("embedding")),
        reviews=parse_reviews(row.get("reviews")),
        icon_url=row.get("icon_url") or "",
        keyword_tag=row["keyword_tag"],
        store=row.get("store") or "apple_app_store",
    )
