"""
Vector similarity — pure math, no AI involved.

Embeddings are lists of floats produced from "name. description" text.
Two apps with similar pitches point in similar directions, so the
cosine of the angle between their vectors is a cheap similarity score.
"""

import math
from typing import Sequence

from niche_finder.errors import DimensionMismatch


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two equal-length vectors, in [-1, 1].

    Raises DimensionMismatch if the lengths differ or a vector is empty.
    Returns 0.0 when either vector is all zeros (the angle is undefined and
    callers compare the result against a numeric threshold).
    """
    if len(a) != len(b) or len(a) == 0:
        raise DimensionMismatch(len(a), len(b))

    dot_product = math.fsum(x * y for x, y in zip(a, b))
    mag_a = math.sqrt(math.fsum(x * x for x in a))
    mag_b = math.sqrt(math.fsum(y * y for y in b))

    if mag_a == 0 or mag_b == 0:
        return 0.0

    # Float noise: identical vectors can land on 0.9999999999999998 or 1.0000000000000002
    similarity = round(dot_product / (mag_a * mag_b), 12)
    return max(-1.0, min(1.0, similarity))
