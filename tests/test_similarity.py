"""Tests for cosine similarity, including property-based checks."""

import pytest
from hypothesis import assume, given
from hypothesis import strategies as st

from niche_finder.errors import DimensionMismatch
from niche_finder.similarity import cosine_similarity

finite_floats = st.floats(min_value=-1000, max_value=1000, allow_nan=False, allow_infinity=False)


@st.composite
def vector_pair(draw):
    size = draw(st.integers(min_value=1, max_value=32))
    a = draw(st.lists(finite_floats, min_size=size, max_size=size))
    b = draw(st.lists(finite_floats, min_size=size, max_size=size))
    return a, b


class TestCosineSimilarity:

    @given(vector_pair())
    def test_symmetric(self, pair):
        a, b = pair
        assert cosine_similarity(a, b) == cosine_similarity(b, a)

    @given(st.lists(finite_floats, min_size=1, max_size=32))
    def test_self_similarity_is_one(self, v):
        assume(any(abs(x) > 1e-6 for x in v))
        assert cosine_similarity(v, v) == 1.0

    @given(vector_pair())
    def test_bounded(self, pair):
        a, b = pair
        assert -1.0 <= cosine_similarity(a, b) <= 1.0

    def test_orthogonal(self):
        assert cosine_similarity([1, 0], [0, 1]) == 0.0

    def test_opposite(self):
        assert cosine_similarity([1, 2, 3], [-1, -2, -3]) == -1.0

    def test_known_value(self):
        assert cosine_similarity([1, 1], [1, 0]) == pytest.approx(0.70710678, abs=1e-8)

    def test_zero_vector_returns_zero(self):
        assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0
        assert cosine_similarity([1, 2, 3], [0, 0, 0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatch) as exc:
            cosine_similarity([1, 2], [1, 2, 3])
        assert exc.value.len_a == 2
        assert exc.value.len_b == 3

    def test_dimension_mismatch_is_value_error(self):
        with pytest.raises(ValueError):
            cosine_similarity([1], [1, 2])

    def test_empty_vectors_rejected(self):
        with pytest.raises(DimensionMismatch):
            cosine_similarity([], [])
