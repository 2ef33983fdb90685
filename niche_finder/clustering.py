"""
Similarity clustering — finds sub-categories within the same keyword.

Apps that pitch themselves the same way ("gamified with streaks", "minimalist
checklist") end up with similar embeddings. Grouping them lets the LLM compare
like with like instead of mixing every approach into one prompt.

Key design decision:
    Greedy single-seed clustering. Each unclaimed app seeds a group and claims
    every later unclaimed app that is similar enough TO THE SEED. Members added
    later are never checked against each other, and a claimed app never seeds
    its own group. With ~5 apps per keyword that approximation is good enough,
    and it keeps group membership easy to explain.
"""

import logging
from typing import Optional

from niche_finder.config import SIMILARITY_THRESHOLD
from niche_finder.models import Application
from niche_finder.similarity import cosine_similarity

logger = logging.getLogger(__name__)

# How many apps the debug similarity matrix covers
MATRIX_PREVIEW_SIZE = 5


def group_apps_by_similarity(apps: list[Application],
                             threshold: float = SIMILARITY_THRESHOLD,
                             log: Optional[logging.Logger] = None) -> list[list[Application]]:
    """
    Partition apps into groups of similar approach.

    Args:
        apps:      Apps with embeddings of equal length, in priority order
                   (the orchestrator passes them rating-descending).
        threshold: Minimum cosine similarity to the seed for joining its group.
        log:       Where diagnostics go. Defaults to this module's logger.

    Returns:
        List of groups, each a list of apps. Empty input gives an empty list.
        Two apps or fewer always come back as one group.
    """
    log = log or logger

    if not apps:
        return []

    if len(apps) <= 2:
        log.info("Only %d apps - analyzing together", len(apps))
        return [list(apps)]

    groups = []
    used = set()

    for i, seed in enumerate(apps):
        if i in used:
            continue

        group = [seed]
        used.add(i)

        for j in range(i + 1, len(apps)):
            if j in used:
                continue
            similarity = cosine_similarity(seed.embedding, apps[j].embedding)
            if similarity >= threshold:
                group.append(apps[j])
                used.add(j)

        groups.append(group)

    _log_similarity_matrix(apps, log)

    log.info("Found %d distinct sub-categories (sizes: %s)",
             len(groups), [len(g) for g in groups])
    for idx, group in enumerate(groups):
        log.info("  Group %d: %s", idx + 1, ", ".join(a.name for a in group))

    return groups


def _log_similarity_matrix(apps: list[Application], log: logging.Logger) -> None:
    """Pairwise similarities of the first few apps, for tuning the threshold."""
    if not log.isEnabledFor(logging.DEBUG):
        return
    preview = apps[:MATRIX_PREVIEW_SIZE]
    log.debug("Similarity matrix:")
    for i in range(len(preview)):
        for j in range(i + 1, len(preview)):
            sim = cosine_similarity(preview[i].embedding, preview[j].embedding)
            log.debug("  %s <-> %s: %.3f", preview[i].name, preview[j].name, sim)
