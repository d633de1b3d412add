"""Tests for vector math."""

from __future__ import annotations

import numpy as np
import pytest

from folio.utils.vectors import cosine_similarity, similarity_matrix


class TestCosineSimilarity:
    def test_identical_vectors(self) -> None:
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_opposite_vectors(self) -> None:
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_symmetric(self) -> None:
        a, b = [0.3, -1.2, 4.0], [2.0, 0.5, -0.7]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_scale_invariant(self) -> None:
        a, b = np.array([1.0, 2.0]), np.array([3.0, -1.0])
        assert cosine_similarity(a * 10, b) == pytest.approx(cosine_similarity(a, b))

    def test_zero_magnitude_is_zero(self) -> None:
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
        assert cosine_similarity([1.0, 1.0], [0.0, 0.0]) == 0.0


class TestSimilarityMatrix:
    def test_shape_and_values(self) -> None:
        queries = np.array([[1.0, 0.0], [0.0, 1.0]])
        documents = np.array([[1.0, 0.0], [1.0, 1.0], [0.0, 2.0]])
        scores = similarity_matrix(queries, documents)
        assert scores.shape == (2, 3)
        assert scores[0, 0] == pytest.approx(1.0)
        assert scores[1, 2] == pytest.approx(1.0)
        assert scores[0, 1] == pytest.approx(1 / np.sqrt(2), rel=1e-5)

    def test_single_vectors(self) -> None:
        assert similarity_matrix(np.array([1.0, 0.0]), np.array([1.0, 0.0])).shape == (1, 1)

    def test_zero_rows_score_zero(self) -> None:
        scores = similarity_matrix(np.zeros((1, 2)), np.array([[1.0, 0.0]]))
        assert scores[0, 0] == pytest.approx(0.0)
