"""
Command-line entry point.
Run with: python -m niche_finder "habit tracker"
"""

import argparse
import sys

from niche_finder.config import (
    DATABASE_PATH, DEFAULT_MAX_APPS, DEFAULT_REVIEWS_PER_APP, configure_logging,
)
from niche_finder.database import Storage
from niche_finder.errors import NoApplicationsFound, NoEmbeddingsAvailable
from niche_finder.llm_client import LLMClient
from niche_finder.pipeline import build_orchestrator, run_full_pipeline
from niche_finder.scraper import APPLE, GOOGLE_PLAY


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="niche_finder",
        description="Find underserved micro-niches among the top apps for a keyword.",
    )
    parser.add_argument("keyword", help='Market keyword, e.g. "habit tracker"')
    parser.add_argument("--max-apps", type=int, default=DEFAULT_MAX_APPS)
    parser.add_argument("--reviews-per-app", type=int, default=DEFAULT_REVIEWS_PER_APP)
    parser.add_argument("--store", choices=[APPLE, GOOGLE_PLAY], default=APPLE)
    parser.add_argument("--db", default=DATABASE_PATH, help="SQLite database path")
    parser.add_argument("--analyze-only", action="store_true",
                        help="Skip scraping and analyze apps already in the database")
    parser.add_argument("--log-level", default=None)
    return parser.parse_args(argv)


def print_result(result) -> None:
    print("\n" + "=" * 60)
    print(f"KEYWORD: {result.keyword}")
    print(f"Apps considered: {result.total_apps}  |  Groups: {result.groups_analyzed}  |  "
          f"Analyses stored: {len(result.analyses)}")
    for d in result.dropped:
        print(f"  Dropped {d.name}: {d.reason}")
    print("=" * 60)
    for i, analysis in enumerate(result.analyses, 1):
        print(f"\n[{i}] {analysis.summary.approach_name}")
        print(f"    Apps: {', '.join(analysis.apps)}  ({analysis.review_count} reviews)")
        print(f"    Does well: {analysis.summary.strengths}")
        print(f"    Core limitation: {analysis.summary.core_limitation}")
        for niche in analysis.micro_niches:
            print(f"    - {niche.niche_name} -> {niche.target_user}")
    if result.all_failed:
        print("\nEvery group failed analysis. Check the logs for LLM errors.")


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    storage = Storage(args.db)
    llm = LLMClient()

    try:
        if args.analyze_only:
            result = build_orchestrator(llm=llm, storage=storage).run(args.keyword)
        else:
            outcome = run_full_pipeline(
                args.keyword, storage, llm,
                max_apps=args.max_apps, reviews_per_app=args.reviews_per_app, store=args.store,
            )
            result = outcome["analysis"]
    except (NoApplicationsFound, NoEmbeddingsAvailable) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print_result(result)
    return 1 if result.all_failed else 0


if __name__ == "__main__":
    sys.exit(main())
