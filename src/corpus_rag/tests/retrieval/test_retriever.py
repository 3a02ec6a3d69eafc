import asyncio

import numpy as np
import pytest

from corpus_rag.common.errors import InvalidInput
from corpus_rag.common.schemas import IndexedChunk
from corpus_rag.retrieval.reranker import DiversityReranker
from corpus_rag.retrieval.retriever import RetrievalEngine
from corpus_rag.retrieval.vector_store import InMemoryCorpusStore


def _vec(*values):
    return np.array(values, dtype=np.float32)


@pytest.fixture
def populated():
    """Two partitions; the first holds five chunks across two documents."""
    store = InMemoryCorpusStore()
    p = store.create_partition("main")
    other = store.create_partition("other")
    a = store.create_document(p.id, "a.txt")
    b = store.create_document(p.id, "b.txt")
    c = store.create_document(other.id, "c.txt")

    store.insert_chunk(a.id, p.id, "east", _vec(1.0, 0.0), 0)
    store.insert_chunk(a.id, p.id, "north-east", _vec(1.0, 1.0), 1)
    store.insert_chunk(b.id, p.id, "north", _vec(0.0, 1.0), 0)
    store.insert_chunk(b.id, p.id, "west", _vec(-1.0, 0.0), 1)
    store.insert_chunk(b.id, p.id, "east again", _vec(2.0, 0.0), 2)
    store.insert_chunk(c.id, other.id, "foreign east", _vec(1.0, 0.0), 0)
    return store, p.id, other.id


def test_results_sorted_by_similarity(populated):
    store, pid, _ = populated
    matches = RetrievalEngine(store).search(pid, _vec(1.0, 0.0), top_k=5)

    sims = [m.similarity for m in matches]
    assert sims == sorted(sims, reverse=True)
    assert [m.content for m in matches] == ["east", "east again", "north-east", "north", "west"]
    assert matches[0].document_name == "a.txt"
    assert matches[1].document_name == "b.txt"


def test_ties_keep_store_order(populated):
    store, pid, _ = populated
    matches = RetrievalEngine(store).search(pid, _vec(1.0, 0.0), top_k=2)
    # "east" and "east again" are parallel and score identically.
    assert [m.content for m in matches] == ["east", "east again"]


def test_truncates_to_top_k(populated):
    store, pid, _ = populated
    assert len(RetrievalEngine(store).search(pid, _vec(0.0, 1.0), top_k=3)) == 3


def test_never_crosses_partitions(populated):
    store, pid, other = populated
    matches = RetrievalEngine(store).search(other, _vec(1.0, 0.0), top_k=10)
    assert [m.content for m in matches] == ["foreign east"]

    main = RetrievalEngine(store).search(pid, _vec(1.0, 0.0), top_k=10)
    assert all(m.chunk.partition_id == pid for m in main)


def test_empty_partition_returns_empty_list():
    store = InMemoryCorpusStore()
    p = store.create_partition("empty")
    assert RetrievalEngine(store).search(p.id, _vec(1.0), top_k=5) == []


@pytest.mark.parametrize("top_k", [0, -3])
def test_invalid_top_k(populated, top_k):
    store, pid, _ = populated
    with pytest.raises(InvalidInput):
        RetrievalEngine(store).search(pid, _vec(1.0, 0.0), top_k=top_k)


def test_matches_without_document_name_are_dropped():
    class NamelessStore:
        """Store whose metadata lookup has lost document 2."""

        def list_chunks(self, partition_id):
            return [
                IndexedChunk(1, partition_id, 1, "kept", _vec(1.0, 0.0)),
                IndexedChunk(2, partition_id, 2, "orphan", _vec(1.0, 0.0)),
                IndexedChunk(3, partition_id, 1, "kept too", _vec(0.5, 0.5)),
            ]

        def get_display_names(self, document_ids):
            return {1: "doc.txt"} if 1 in set(document_ids) else {}

    matches = RetrievalEngine(NamelessStore()).search(7, _vec(1.0, 0.0), top_k=3)
    assert [m.content for m in matches] == ["kept", "kept too"]


def test_parallel_scoring_matches_serial():
    rng = np.random.default_rng(11)
    store = InMemoryCorpusStore()
    p = store.create_partition("big")
    d = store.create_document(p.id, "big.txt")
    for i in range(300):
        store.insert_chunk(d.id, p.id, f"c{i}", rng.normal(size=16).astype(np.float32), i)
    query = rng.normal(size=16).astype(np.float32)

    serial = RetrievalEngine(store).search(p.id, query, top_k=25)
    parallel = RetrievalEngine(store, parallel_threshold=1, max_workers=4).search(p.id, query, top_k=25)

    assert [m.chunk_id for m in parallel] == [m.chunk_id for m in serial]
    assert [m.similarity for m in parallel] == pytest.approx([m.similarity for m in serial])


def test_rerank_keeps_top_match_and_diversifies(populated):
    store, pid, _ = populated
    engine = RetrievalEngine(store, reranker=DiversityReranker(1.0))
    query = _vec(1.0, 0.1)

    plain = engine.search(pid, query, top_k=2)
    diverse = engine.search_with_rerank(pid, query, top_k=2, candidate_multiplier=3)

    assert diverse[0].chunk_id == plain[0].chunk_id
    assert [m.content for m in plain] == ["east", "east again"]
    assert diverse[1].content != "east again"


def test_rerank_with_few_candidates_equals_search(populated):
    store, pid, other = populated
    engine = RetrievalEngine(store)
    assert engine.search_with_rerank(other, _vec(1.0, 0.0), top_k=3) == engine.search(
        other, _vec(1.0, 0.0), top_k=3
    )


def test_rerank_invalid_multiplier(populated):
    store, pid, _ = populated
    with pytest.raises(InvalidInput):
        RetrievalEngine(store).search_with_rerank(pid, _vec(1.0, 0.0), top_k=2, candidate_multiplier=0)


def test_async_search(populated):
    store, pid, _ = populated
    engine = RetrievalEngine(store)

    matches = asyncio.run(engine.asearch(pid, _vec(0.0, 1.0), top_k=1))
    diverse = asyncio.run(engine.asearch_with_rerank(pid, _vec(0.0, 1.0), top_k=2))

    assert [m.content for m in matches] == ["north"]
    assert diverse[0].content == "north"
