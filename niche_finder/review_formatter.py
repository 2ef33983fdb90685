"""
Review formatting — turns an app's raw reviews into a prompt-ready excerpt.

Not all reviews are equally useful. A 1-star rant names exactly what's broken;
the fortieth "love it!!" adds nothing. So reviews are split into bands and the
critical band is always sent in full, while praise is sampled.
"""

from niche_finder.config import MAX_MIXED_REVIEWS, MAX_POSITIVE_REVIEWS
from niche_finder.models import Application, Review


def split_reviews_by_score(reviews: list[Review]) -> tuple[list[Review], list[Review], list[Review]]:
    """
    Split reviews into (critical, mixed, positive) bands.
    critical = 1-3 stars, mixed = 4 stars, positive = 5 stars.
    Input order is kept inside each band.
    """
    critical = [r for r in reviews if r.score <= 3]
    mixed = [r for r in reviews if r.score == 4]
    positive = [r for r in reviews if r.score == 5]
    return critical, mixed, positive


def _format_review(review: Review) -> str:
    return f"[{review.score}★] {review.text}\n\n"


def format_app_reviews(app: Application,
                       max_mixed: int = MAX_MIXED_REVIEWS,
                       max_positive: int = MAX_POSITIVE_REVIEWS) -> str:
    """
    Render one app's reviews for the LLM.

    Every critical review is included. Mixed and positive reviews are capped
    (first N in input order; the scraper stores them newest first).
    """
    reviews = app.reviews or []
    output = f"\n=== {app.name} ({app.rating}★ avg, {len(reviews)} reviews) ===\n"

    critical, mixed, positive = split_reviews_by_score(reviews)

    if critical:
        output += f"\n[NEGATIVE/CRITICAL (1-3★)] - {len(critical)} reviews:\n"
        output += "".join(_format_review(r) for r in critical)

    if mixed:
        output += f"\n[MIXED FEEDBACK (4★)] - {len(mixed)} reviews:\n"
        output += "".join(_format_review(r) for r in mixed[:max_mixed])

    if positive:
        output += f"\n[POSITIVE (5★)] - Sample of {len(positive)} reviews:\n"
        output += "".join(_format_review(r) for r in positive[:max_positive])

    return output


def format_cluster_reviews(apps: list[Application]) -> str:
    """Concatenate the excerpts of every app in a group."""
    return "".join(format_app_reviews(app) for app in apps)
