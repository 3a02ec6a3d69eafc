import numpy as np
import pytest

from corpus_rag.retrieval.similarity import batch_cosine_similarity, cosine_similarity


def test_general_case():
    assert cosine_similarity([1.0, 2.0, 3.0], [4.0, 5.0, 6.0]) == pytest.approx(0.9746, abs=1e-4)


def test_identical_vectors():
    assert cosine_similarity([1.0, 0.0, 0.0], [1.0, 0.0, 0.0]) == pytest.approx(1.0, abs=1e-6)


def test_parallel_vectors_of_different_magnitude():
    assert cosine_similarity([2.0, 0.0, 0.0], [3.0, 0.0, 0.0]) == pytest.approx(1.0, abs=1e-6)


def test_orthogonal_vectors():
    assert cosine_similarity([1.0, 0.0, 0.0], [0.0, 1.0, 0.0]) == pytest.approx(0.0, abs=1e-6)


def test_opposite_vectors():
    assert cosine_similarity([1.0, 0.0, 0.0], [-1.0, 0.0, 0.0]) == pytest.approx(-1.0, abs=1e-6)


def test_length_mismatch_is_zero():
    assert cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0]) == 0.0


def test_zero_vector_is_zero():
    assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0


def test_symmetric():
    rng = np.random.default_rng(7)
    a, b = rng.normal(size=16), rng.normal(size=16)
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


def test_batch_matches_scalar():
    rng = np.random.default_rng(3)
    query = rng.normal(size=8).astype(np.float32)
    vectors = [rng.normal(size=8).astype(np.float32) for _ in range(20)]

    scores = batch_cosine_similarity(query, vectors)

    assert scores.shape == (20,)
    for vec, score in zip(vectors, scores):
        assert score == pytest.approx(cosine_similarity(query, vec), abs=1e-9)


def test_batch_scores_mismatched_and_zero_rows_as_zero():
    query = np.array([1.0, 0.0, 0.0], dtype=np.float32)
    vectors = [
        np.array([1.0, 0.0, 0.0], dtype=np.float32),
        np.array([1.0, 0.0], dtype=np.float32),
        np.zeros(3, dtype=np.float32),
    ]

    scores = batch_cosine_similarity(query, vectors)

    assert scores.tolist() == pytest.approx([1.0, 0.0, 0.0])


def test_batch_empty_and_zero_query():
    assert batch_cosine_similarity([1.0, 2.0], []).size == 0
    assert batch_cosine_similarity([0.0, 0.0], [[1.0, 1.0]]).tolist() == [0.0]
