"""
Unit tests for the exact cosine index
"""

import numpy as np
import pytest

from rtrec.retrieval.linear import LinearIndex
from rtrec.utils.validation import DimensionMismatchError


@pytest.fixture
def index():
    index = LinearIndex(3)
    index.add_vector("x", [1.0, 0.0, 0.0])
    index.add_vector("y", [0.0, 1.0, 0.0])
    index.add_vector("xy", [1.0, 1.0, 0.0])
    return index


class TestLinearIndex:
    def test_rejects_wrong_dimension_on_add(self, index):
        with pytest.raises(DimensionMismatchError):
            index.add_vector("bad", [1.0, 2.0])

    def test_rejects_wrong_dimension_on_search(self, index):
        with pytest.raises(DimensionMismatchError):
            index.search_similar([1.0, 2.0, 3.0, 4.0], 2)

    def test_top_k_ordered_by_cosine(self, index):
        results = index.search_similar([1.0, 0.1, 0.0], 2)

        assert [identifier for identifier, _ in results] == ["x", "xy"]
        assert results[0][1] > results[1][1]

    def test_self_query_scores_one(self, index):
        identifier, score = index.search_similar([1.0, 1.0, 0.0], 1)[0]

        assert identifier == "xy"
        assert score == pytest.approx(1.0, abs=1e-6)

    def test_k_larger_than_population_returns_all(self, index):
        assert len(index.search_similar([0.0, 0.0, 1.0], 10)) == 3

    def test_non_positive_k_and_empty_index(self, index):
        assert index.search_similar([1.0, 0.0, 0.0], 0) == []
        assert LinearIndex(3).search_similar([1.0, 0.0, 0.0], 5) == []

    def test_ties_keep_insertion_order(self):
        index = LinearIndex(2)
        for identifier in ("c", "a", "b"):
            index.add_vector(identifier, [2.0, 2.0])

        assert [identifier for identifier, _ in index.search_similar([1.0, 1.0], 3)] == ["c", "a", "b"]

    def test_zero_vector_scores_zero(self):
        index = LinearIndex(2)
        index.add_vector("zero", [0.0, 0.0])

        assert index.search_similar([1.0, 0.0], 1) == [("zero", 0.0)]

    def test_update_replaces_vector(self, index):
        index.update_vector("x", [0.0, 0.0, 1.0])

        np.testing.assert_array_equal(index.get_vector("x"), [0.0, 0.0, 1.0])
        assert len(index) == 3

    def test_remove_is_idempotent(self, index):
        index.remove_vector("x")
        index.remove_vector("x")

        assert len(index) == 2
        assert "x" not in index
        assert index.get_vector("x") is None

    def test_get_vector_returns_copy(self, index):
        vector = index.get_vector("y")
        vector[:] = 5.0

        np.testing.assert_array_equal(index.get_vector("y"), [0.0, 1.0, 0.0])
