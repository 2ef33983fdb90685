"""
Data models — the structure of our data.
Apps come in from the scraper, analyses go out of the pipeline.
Everything the core touches gets converted into these shapes first.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


def normalize_keyword(keyword: str) -> str:
    """
    Lowercase + trim so "Habit Tracker " and "habit tracker" share storage keys.
    """
    return keyword.strip().lower()


@dataclass(frozen=True)
class Review:
    """A single user review. Immutable once scraped."""
    score: int                  # 1 to 5 stars
    text: str = ""              # May be empty (user just gave stars)
    date: str = ""              # ISO date string from the store


@dataclass
class Application:
    """A competing app found for a keyword, with its reviews and embedding."""
    app_store_id: str
    name: str
    description: str = ""
    rating: float = 0.0
    embedding: list[float] = field(default_factory=list)
    reviews: list[Review] = field(default_factory=list)
    icon_url: str = ""
    keyword_tag: str = ""
    store: str = "apple_app_store"     # or "google_play"

    @property
    def review_count(self) -> int:
        return len(self.reviews)


@dataclass
class DroppedApplication:
    """An app excluded before clustering, and why."""
    name: str
    reason: str


@dataclass
class MicroNiche:
    """A specific underserved user segment inside a cluster's shared approach."""
    niche_name: str
    target_user: str = ""
    core_problem: str = ""
    solution: str = ""
    why_this_is_different: str = ""
    frequency: Optional[float] = None
    opportunity_score: Optional[float] = None
    example_review: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "niche_name": self.niche_name,
            "target_user": self.target_user,
            "core_problem": self.core_problem,
            "solution": self.solution,
            "why_this_is_different": self.why_this_is_different,
        }
        # Optional fields are only written when the model provided them
        for key in ("frequency", "opportunity_score", "example_review"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "MicroNiche":
        return cls(
            niche_name=str(data["niche_name"]),
            target_user=str(data.get("target_user") or ""),
            core_problem=str(data.get("core_problem") or ""),
            solution=_as_text(data.get("solution")),
            why_this_is_different=str(data.get("why_this_is_different") or ""),
            frequency=_as_number(data.get("frequency")),
            opportunity_score=_as_number(data.get("opportunity_score")),
            example_review=data.get("example_review") or None,
        )


@dataclass
class ClusterSummary:
    """What a group of similar apps has in common, good and bad."""
    approach_name: str
    apps_analyzed: int
    total_reviews: int
    strengths: str = ""
    core_limitation: str = ""

    def to_dict(self) -> dict:
        return {
            "approach_name": self.approach_name,
            "apps_analyzed": self.apps_analyzed,
            "total_reviews": self.total_reviews,
            "what_this_approach_does_well": self.strengths,
            "core_limitation": self.core_limitation,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ClusterSummary":
        return cls(
            approach_name=str(data.get("approach_name") or "Unnamed approach"),
            apps_analyzed=int(data.get("apps_analyzed") or 0),
            total_reviews=int(data.get("total_reviews") or 0),
            strengths=str(data.get("what_this_approach_does_well") or ""),
            core_limitation=str(data.get("core_limitation") or ""),
        )


@dataclass
class OpportunityAnalysis:
    """
    One analyzed cluster, the row the pipeline persists.

    The analysis body (summary + micro_niches) is stored as JSON in the
    shape the model was asked to produce, so to_body()/from_body() use
    the model's key names.
    """
    keyword: str
    apps: list[str]
    summary: ClusterSummary
    micro_niches: list[MicroNiche] = field(default_factory=list)
    review_count: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    id: Optional[int] = None

    def to_body(self) -> dict:
        return {
            "sub_category_summary": self.summary.to_dict(),
            "micro_niches": [n.to_dict() for n in self.micro_niches],
        }

    @classmethod
    def from_body(cls, keyword: str, apps: list[str], body: dict,
                  review_count: int = 0, created_at: datetime = None,
                  id: Optional[int] = None) -> "OpportunityAnalysis":
        return cls(
            keyword=keyword,
            apps=list(apps),
            summary=ClusterSummary.from_dict(body.get("sub_category_summary") or {}),
            micro_niches=[MicroNiche.from_dict(n) for n in body.get("micro_niches") or []],
            review_count=review_count,
            created_at=created_at or datetime.now(),
            id=id,
        )


@dataclass
class AnalysisRunResult:
    """Summary of one orchestrator run for a keyword."""
    keyword: str
    groups_analyzed: int
    analyses: list[OpportunityAnalysis]
    total_apps: int
    dropped: list[DroppedApplication] = field(default_factory=list)
    failed_groups: list[int] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        """True when clusters existed but none produced an analysis."""
        return self.groups_analyzed > 0 and not self.analyses


@dataclass
class MarketReport:
    """Ingestion metadata for a keyword."""
    keyword: str
    apps_scraped: int
    scraped_at: datetime = field(default_factory=datetime.now)


def _as_number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value) -> str:
    # Models sometimes return the solution as a list of features
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    return str(value or "")
