"""
Opportunity Analyzer — the brain of the pipeline.

Takes one group of similar apps, shows the LLM what their users complain
about, and asks for specific underserved user segments ("micro-niches").

Key design decisions:
    1. One LLM call per group. No retries. A failed group is skipped, not fatal.
    2. Temperature 0 + JSON mode. Same reviews in, similar structure out.
    3. The response is parsed and validated here, so the rest of the code only
       ever sees a well-formed OpportunityAnalysis.
"""

import json
import logging
from typing import Optional, Protocol

from niche_finder.config import DESCRIPTION_PREVIEW_CHARS
from niche_finder.errors import LLMError, MalformedAnalysis
from niche_finder.models import (
    Application, ClusterSummary, MicroNiche, OpportunityAnalysis, normalize_keyword,
)
from niche_finder.review_formatter import format_cluster_reviews

logger = logging.getLogger(__name__)


class LanguageModel(Protocol):
    def generate_structured(self, prompt: str, temperature: float = 0,
                            force_json: bool = True) -> str: ...


# ============================================================
# PART 1: Prompt construction
# ============================================================

ANALYSIS_PROMPT_TEMPLATE = """You are analyzing a SUB-CATEGORY of apps within the "{keyword}" market.

These {app_count} apps were grouped together because they have a SIMILAR APPROACH (e.g., all gamified, or all minimalist).

APPS IN THIS SUB-CATEGORY:
{app_summary}

TOTAL REVIEWS: {total_reviews} recent reviews

{review_text}

TASK: Find SPECIFIC micro-niche opportunities that THESE SPECIFIC TYPES of apps are missing.

Since these apps share a similar approach, find:

1. **What this approach does well** (what users love about it)
2. **What limitations this approach has** (what users complain about)
3. **Which user types struggle with this approach** (e.g., "ADHD users struggle with streak-based gamification")
4. **What tweaks would make this approach perfect** (small changes, not complete redesigns)

For each micro-niche:
- Target users who WANT this type of app but find it frustrating
- Suggest a VARIANT of this approach that fixes the issue

Respond with ONE JSON object (not an array) in this exact format:
{{
  "sub_category_summary": {{
    "approach_name": "What's the common approach? (e.g., 'Gamified with social features' or 'Minimalist streak trackers')",
    "apps_analyzed": {app_count},
    "total_reviews": {total_reviews},
    "what_this_approach_does_well": "What users consistently praise",
    "core_limitation": "The main weakness of this approach"
  }},
  "micro_niches": [
    {{
      "niche_name": "Very specific (e.g., 'Gamified habit tracking WITHOUT streak anxiety')",
      "target_user": "Who wants this approach but is frustrated?",
      "core_problem": "What about THIS approach frustrates them?",
      "solution": "The concrete product variant",
      "why_this_is_different": "How is this different from the existing apps in this group?",
      "frequency": "How many reviews point at this problem (number)",
      "opportunity_score": "1-10, how attractive this niche is (number)"
    }}
  ]
}}"""


def build_app_summary(apps: list[Application],
                      preview_chars: int = DESCRIPTION_PREVIEW_CHARS) -> str:
    """One line per app: name plus the start of its description."""
    return "\n".join(f"{a.name}: {(a.description or '')[:preview_chars]}" for a in apps)


def build_analysis_prompt(apps: list[Application], keyword: str) -> str:
    """Deterministic prompt for one group: same input, same prompt."""
    total_reviews = sum(a.review_count for a in apps)
    return ANALYSIS_PROMPT_TEMPLATE.format(
        keyword=keyword,
        app_count=len(apps),
        app_summary=build_app_summary(apps),
        total_reviews=total_reviews,
        review_text=format_cluster_reviews(apps),
    )


# ============================================================
# PART 2: Response parsing and validation
# ============================================================

def parse_analysis_response(raw_text: str) -> dict:
    """
    Turn the model's raw text into one analysis object.

    Known quirk: the model sometimes wraps the object in an array even in
    JSON mode. A JSON array is unwrapped to its first element.

    Raises:
        MalformedAnalysis: not JSON, empty array, or the wrong shape.
    """
    try:
        parsed = json.loads(raw_text)
    except (TypeError, json.JSONDecodeError) as e:
        raise MalformedAnalysis(f"Response is not valid JSON: {e}") from e

    if isinstance(parsed, list):
        if not parsed:
            raise MalformedAnalysis("Response is an empty JSON array")
        parsed = parsed[0]

    if not isinstance(parsed, dict):
        raise MalformedAnalysis(f"Expected a JSON object, got {type(parsed).__name__}")

    summary = parsed.get("sub_category_summary")
    if not isinstance(summary, dict):
        raise MalformedAnalysis("Missing 'sub_category_summary' object")

    niches = parsed.get("micro_niches", [])
    if not isinstance(niches, list):
        raise MalformedAnalysis("'micro_niches' must be a list")

    return parsed


def _valid_niches(raw_niches: list, log: logging.Logger) -> list[MicroNiche]:
    niches = []
    for raw in raw_niches:
        if not isinstance(raw, dict) or not raw.get("niche_name"):
            log.warning("    Dropped malformed micro-niche: %.200r", raw)
            continue
        niches.append(MicroNiche.from_dict(raw))
    return niches


# ============================================================
# PART 3: One group, end to end
# ============================================================

class OpportunityAnalyzer:
    """Analyzes one group of apps per call. Holds no state between calls."""

    def __init__(self, llm: LanguageModel, log: Optional[logging.Logger] = None):
        self.llm = llm
        self.log = log or logger

    def analyze(self, apps: list[Application], keyword: str,
                group_index: int) -> Optional[OpportunityAnalysis]:
        """
        Run the LLM over one group.

        Returns:
            The analysis, or None if the model call failed or its response
            could not be used. None means "this group produced nothing", and
            callers move on to the next group.
        """
        group_name = f"Group {group_index + 1}" if len(apps) > 1 else "All Apps"
        total_reviews = sum(a.review_count for a in apps)
        self.log.info("Analyzing %s: %s", group_name, ", ".join(a.name for a in apps))
        self.log.info("  Reviews: %d", total_reviews)

        prompt = build_analysis_prompt(apps, keyword)

        try:
            raw_text = self.llm.generate_structured(prompt, temperature=0, force_json=True)
            body = parse_analysis_response(raw_text)
        except (LLMError, MalformedAnalysis) as e:
            self.log.error("  Analysis error for %s: %s", group_name, e)
            return None
        except Exception as e:
            # Any collaborator failure skips this group only
            self.log.exception("  Unexpected analysis error for %s: %s", group_name, e)
            return None

        summary = ClusterSummary.from_dict({
            **body["sub_category_summary"],
            # Counts come from the data, not from what the model echoed back
            "apps_analyzed": len(apps),
            "total_reviews": total_reviews,
        })
        niches = _valid_niches(body.get("micro_niches", []), self.log)

        self.log.info("  Found %d micro-niches", len(niches))

        return OpportunityAnalysis(
            keyword=normalize_keyword(keyword),
            apps=[a.name for a in apps],
            summary=summary,
            micro_niches=niches,
            review_count=total_reviews,
        )
