"""
Configuration loader.
Reads settings from .env file and makes them available to the rest of the app.
"""

import logging
import os
from dotenv import load_dotenv

load_dotenv()

# LLM API settings. Any OpenAI-compatible endpoint works (xAI, OpenAI, local proxies)
LLM_API_KEY = os.getenv("LLM_API_KEY") or os.getenv("XAI_API_KEY")
LLM_BASE_URL = os.getenv("LLM_BASE_URL", "https://api.x.ai/v1")
LLM_MODEL = os.getenv("LLM_MODEL", "grok-3-mini-fast")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "300"))

# Dashboard credentials
DASHBOARD_USERNAME = os.getenv("DASHBOARD_USERNAME", "admin")
DASHBOARD_PASSWORD = os.getenv("DASHBOARD_PASSWORD", "changeme123")

# Single SQLite file holding apps, analyses and market reports
DATABASE_PATH = os.getenv(
    "DATABASE_PATH",
    os.path.join(os.path.dirname(os.path.dirname(__file__)), "data", "niche_finder.db"),
)

# Clustering: apps whose embeddings are at least this similar to a seed share a group
SIMILARITY_THRESHOLD = float(os.getenv("SIMILARITY_THRESHOLD", "0.7"))

# Review excerpt limits (critical reviews are never capped)
MAX_MIXED_REVIEWS = 30
MAX_POSITIVE_REVIEWS = 20
DESCRIPTION_PREVIEW_CHARS = 150

# Ingestion defaults
DEFAULT_MAX_APPS = int(os.getenv("DEFAULT_MAX_APPS", "5"))
DEFAULT_REVIEWS_PER_APP = int(os.getenv("DEFAULT_REVIEWS_PER_APP", "100"))
SCRAPE_DELAY_SECONDS = float(os.getenv("SCRAPE_DELAY_SECONDS", "1.5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str = None) -> None:
    """Set up root logging once for CLI and dashboard runs."""
    logging.basicConfig(level=(level or LOG_LEVEL).upper(), format=LOG_FORMAT)
