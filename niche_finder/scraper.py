"""
App scraper — the ingestion side of the pipeline.
Finds the top apps for a keyword, fetches their recent reviews,
embeds their pitch, and stores everything for the analysis phase.

Two stores are supported:
    - Apple App Store: public iTunes Search API + customer-reviews RSS feed
    - Google Play:     google-play-scraper
"""

import logging
import time
from datetime import datetime

import requests
from google_play_scraper import Sort, reviews as gplay_reviews, search as gplay_search

from niche_finder.config import DEFAULT_MAX_APPS, DEFAULT_REVIEWS_PER_APP, SCRAPE_DELAY_SECONDS
from niche_finder.errors import LLMError
from niche_finder.models import Application, MarketReport, Review, normalize_keyword

logger = logging.getLogger(__name__)

ITUNES_SEARCH_URL = "https://itunes.apple.com/search"
ITUNES_REVIEWS_URL = (
    "https://itunes.apple.com/us/rss/customerreviews/id={app_id}/page={page}/sortby=mostrecent/json"
)
REQUEST_TIMEOUT = 10

APPLE = "apple_app_store"
GOOGLE_PLAY = "google_play"


# ============================================================
# Apple App Store
# ============================================================

def search_apple_apps(keyword: str, max_apps: int = DEFAULT_MAX_APPS) -> list[dict]:
    """
    Search the App Store for a keyword.

    Returns:
        List of {"id", "title", "description", "icon", "score"} dicts,
        in the store's relevance order.
    """
    response = requests.get(
        ITUNES_SEARCH_URL,
        params={"term": keyword, "entity": "software", "country": "us", "limit": max_apps},
        timeout=REQUEST_TIMEOUT,
    )
    response.raise_for_status()

    results = []
    for item in response.json().get("results", [])[:max_apps]:
        results.append({
            "id": str(item["trackId"]),
            "title": item.get("trackName", "Unknown"),
            "description": item.get("description", ""),
            "icon": item.get("artworkUrl512") or item.get("artworkUrl100", ""),
            "score": item.get("averageUserRating", 0.0),
        })
    return results


def fetch_apple_reviews(app_id: str, count: int = DEFAULT_REVIEWS_PER_APP) -> list[Review]:
    """
    Fetch the most recent reviews via the public iTunes RSS API.

    Note:
        Apple's RSS feed gives 50 reviews per page, up to 10 pages,
        so at most ~500 reviews are reachable. Newest first.
    """
    all_reviews = []
    max_pages = min(10, (count // 50) + 1)

    for page in range(1, max_pages + 1):
        url = ITUNES_REVIEWS_URL.format(app_id=app_id, page=page)
        try:
            response = requests.get(url, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("  Error fetching review page %d for %s: %s", page, app_id, e)
            break

        entries = data.get("feed", {}).get("entry", [])
        # A single entry comes back as a dict, not a list
        if isinstance(entries, dict):
            entries = [entries]
        if not entries:
            break

        for entry in entries:
            # Skip app metadata entries (not a review)
            if "im:rating" not in entry:
                continue
            all_reviews.append(Review(
                score=int(entry.get("im:rating", {}).get("label", 0)),
                text=entry.get("content", {}).get("label", ""),
                date=entry.get("updated", {}).get("label", ""),
            ))
            if len(all_reviews) >= count:
                return all_reviews

    return all_reviews


# ============================================================
# Google Play
# ============================================================

def search_google_play_apps(keyword: str, max_apps: int = DEFAULT_MAX_APPS) -> list[dict]:
    """Search Google Play. Same result shape as search_apple_apps."""
    results = []
    for item in gplay_search(keyword, lang="en", country="us", n_hits=max_apps):
        # Featured results sometimes come back without an ID
        if not item.get("appId"):
            continue
        results.append({
            "id": item["appId"],
            "title": item.get("title", "Unknown"),
            "description": item.get("description", ""),
            "icon": item.get("icon", ""),
            "score": item.get("score") or 0.0,
        })
    return results[:max_apps]


def fetch_google_play_reviews(app_id: str, count: int = DEFAULT_REVIEWS_PER_APP) -> list[Review]:
    """Fetch the newest reviews for a Google Play app."""
    result, _ = gplay_reviews(app_id, lang="en", country="us", sort=Sort.NEWEST, count=count)
    return [
        Review(
            score=raw["score"],
            text=raw.get("content") or "",
            date=raw["at"].isoformat() if raw.get("at") else "",
        )
        for raw in result
    ]


STORE_BACKENDS = {
    APPLE: (search_apple_apps, fetch_apple_reviews),
    GOOGLE_PLAY: (search_google_play_apps, fetch_google_play_reviews),
}


# ============================================================
# Scrape + embed + store
# ============================================================

def build_embedding_text(title: str, description: str) -> str:
    return f"{title}. {description or ''}"


def scrape_apps(keyword: str, storage, llm, store: str = APPLE,
                max_apps: int = DEFAULT_MAX_APPS,
                reviews_per_app: int = DEFAULT_REVIEWS_PER_APP,
                delay: float = SCRAPE_DELAY_SECONDS) -> list[Application]:
    """
    Find the top apps for a keyword and store them with reviews + embeddings.

    A failure on one app is logged and that app is skipped. A failed embedding
    is stored as an empty vector; the analysis phase drops such apps.

    Returns:
        The apps that were stored.
    """
    if store not in STORE_BACKENDS:
        raise ValueError(f"Unknown store '{store}'. Use one of: {', '.join(STORE_BACKENDS)}")
    search, fetch_reviews = STORE_BACKENDS[store]

    keyword_tag = normalize_keyword(keyword)
    logger.info('Searching for top %d apps in: "%s" (%s)...', max_apps, keyword_tag, store)
    search_results = search(keyword_tag, max_apps)
    logger.info("Found %d apps.", len(search_results))

    scraped = []
    for i, found in enumerate(search_results):
        logger.info("Processing: %s...", found["title"])
        try:
            app_reviews = fetch_reviews(found["id"], reviews_per_app)[:reviews_per_app]
        except Exception as e:
            # Scraper libraries raise a zoo of exception types; one bad app shouldn't stop the rest
            logger.error("  Failed to fetch reviews for %s: %s", found["title"], e)
            continue
        logger.info("  Got %d reviews.", len(app_reviews))

        try:
            embedding = llm.embed(build_embedding_text(found["title"], found["description"]))
        except LLMError as e:
            logger.error("  Embedding error for %s: %s", found["title"], e)
            embedding = []

        app = Application(
            app_store_id=found["id"],
            name=found["title"],
            description=found["description"] or "",
            rating=float(found["score"] or 0.0),
            embedding=embedding,
            reviews=app_reviews,
            icon_url=found["icon"] or "",
            keyword_tag=keyword_tag,
            store=store,
        )
        storage.upsert_application(app)
        scraped.append(app)
        logger.info("  Saved%s.", " with embedding" if embedding else " WITHOUT embedding")

        # Rate limiting between apps
        if delay and i < len(search_results) - 1:
            time.sleep(delay)

    return scraped


def run_scraping_pipeline(keyword: str, storage, llm,
                          max_apps: int = DEFAULT_MAX_APPS,
                          reviews_per_app: int = DEFAULT_REVIEWS_PER_APP,
                          store: str = APPLE,
                          delay: float = SCRAPE_DELAY_SECONDS) -> dict:
    """Scrape apps for a keyword and record the scrape in market_reports."""
    keyword_tag = normalize_keyword(keyword)
    logger.info('STARTING SCRAPER PIPELINE: "%s"', keyword_tag)

    apps = scrape_apps(keyword_tag, storage, llm, store=store, max_apps=max_apps,
                       reviews_per_app=reviews_per_app, delay=delay)

    storage.save_market_report(MarketReport(
        keyword=keyword_tag, apps_scraped=len(apps), scraped_at=datetime.now(),
    ))

    summary = {
        "keyword": keyword_tag,
        "apps_scraped": len(apps),
        "total_reviews": sum(a.review_count for a in apps),
        "embeddings_generated": sum(1 for a in apps if a.embedding),
    }
    logger.info("SCRAPING COMPLETE: %d apps, %d reviews, %d embeddings",
                summary["apps_scraped"], summary["total_reviews"],
                summary["embeddings_generated"])
    return summary
