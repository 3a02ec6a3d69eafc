import numpy as np
import pytest

from corpus_rag.common.schemas import IndexedChunk, Match
from corpus_rag.retrieval.reranker import DiversityReranker, create_reranker


def _match(chunk_id, similarity, embedding):
    chunk = IndexedChunk(
        id=chunk_id,
        partition_id=1,
        document_id=1,
        content=f"chunk {chunk_id}",
        embedding=np.array(embedding, dtype=np.float32),
    )
    return Match(chunk=chunk, similarity=similarity, document_name="doc.txt")


def _ids(matches):
    return [m.chunk_id for m in matches]


def test_few_candidates_returned_unchanged():
    candidates = [_match(1, 0.9, [1, 0]), _match(2, 0.8, [1, 0])]
    assert DiversityReranker().rerank(candidates, top_k=2) == candidates
    assert DiversityReranker().rerank(candidates, top_k=5) == candidates


def test_near_duplicate_is_demoted():
    candidates = [
        _match(1, 0.90, [1, 0]),
        _match(2, 0.85, [1, 0]),
        _match(3, 0.80, [0, 1]),
    ]

    assert _ids(DiversityReranker(0.3).rerank(candidates, top_k=2)) == [1, 3]


def test_zero_penalty_is_plain_top_k():
    candidates = [
        _match(1, 0.90, [1, 0]),
        _match(2, 0.85, [1, 0]),
        _match(3, 0.80, [0, 1]),
    ]

    assert _ids(DiversityReranker(0.0).rerank(candidates, top_k=2)) == [1, 2]


def test_first_candidate_always_kept():
    candidates = [_match(i, 1.0 - i / 10, [1, i]) for i in range(6)]
    for penalty in (0.0, 0.3, 5.0):
        assert DiversityReranker(penalty).rerank(candidates, top_k=3)[0].chunk_id == 0


def test_anti_correlated_candidates_get_no_bonus():
    candidates = [
        _match(1, 0.9, [1, 0]),
        _match(2, 0.5, [-1, 0]),
        _match(3, 0.6, [0, 1]),
    ]

    assert _ids(DiversityReranker(0.3).rerank(candidates, top_k=2)) == [1, 3]


def test_ties_go_to_earlier_candidate():
    candidates = [
        _match(1, 0.9, [1, 0]),
        _match(2, 0.5, [0, 1]),
        _match(3, 0.5, [0, 1]),
    ]

    assert _ids(DiversityReranker(0.3).rerank(candidates, top_k=2)) == [1, 2]


def test_similarities_are_preserved():
    candidates = [_match(1, 0.9, [1, 0]), _match(2, 0.7, [1, 0]), _match(3, 0.6, [0, 1])]
    result = DiversityReranker().rerank(candidates, top_k=2)
    assert [m.similarity for m in result] == [0.9, 0.6]


def test_negative_penalty_rejected():
    with pytest.raises(ValueError):
        DiversityReranker(-0.1)


def test_create_reranker_defaults_and_penalty():
    assert create_reranker(None).diversity_penalty == pytest.approx(0.3)
    assert create_reranker({"diversity_penalty": 0.5}).diversity_penalty == pytest.approx(0.5)


def test_create_reranker_rejects_unknown_type():
    with pytest.raises(ValueError, match="Unsupported rerank type"):
        create_reranker({"rerank": "rrf"})
