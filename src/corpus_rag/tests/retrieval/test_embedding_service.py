import asyncio

import numpy as np
import pytest

from corpus_rag.common.errors import InvalidInput, ProviderFailure, UnsupportedFeature
from corpus_rag.retrieval.embedding_service import EmbeddingService


class RecordingBackend:
    """Deterministic backend: vector = [len(text), call number]."""

    def __init__(self, fail_on_call: int | None = None):
        self.calls: list[list[str]] = []
        self.fail_on_call = fail_on_call

    def embed_raw(self, texts):
        self.calls.append(list(texts))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise RuntimeError("backend exploded")
        return [[float(len(t)), float(len(self.calls))] for t in texts]


class ShortBackend:
    """Returns one vector fewer than requested."""

    def embed_raw(self, texts):
        return [[1.0, 2.0]] * (len(texts) - 1)


class UnsupportedBackend:
    def embed_raw(self, texts):
        raise UnsupportedFeature("Embeddings not supported by this provider: claude")


def _texts(n):
    return ["t" * (i + 1) for i in range(n)]


def test_batches_are_bounded_and_ordered():
    backend = RecordingBackend()
    service = EmbeddingService(backend, batch_size=32)

    vectors = service.embed(_texts(70))

    assert [len(c) for c in backend.calls] == [32, 32, 6]
    assert len(vectors) == 70
    assert [v[0] for v in vectors] == [float(i + 1) for i in range(70)]
    assert all(v.dtype == np.float32 for v in vectors)


def test_small_input_is_single_call():
    backend = RecordingBackend()
    EmbeddingService(backend, batch_size=32).embed(_texts(32))
    assert len(backend.calls) == 1


def test_empty_input_does_not_call_backend():
    backend = RecordingBackend()
    assert EmbeddingService(backend).embed([]) == []
    assert backend.calls == []


def test_failure_in_later_batch_aborts_whole_call():
    backend = RecordingBackend(fail_on_call=2)
    service = EmbeddingService(backend, batch_size=2)

    with pytest.raises(ProviderFailure, match="backend exploded"):
        service.embed(_texts(5))
    assert len(backend.calls) == 2


def test_count_mismatch_is_provider_failure():
    with pytest.raises(ProviderFailure):
        EmbeddingService(ShortBackend()).embed(["a", "b"])


def test_unsupported_feature_is_not_rewrapped():
    with pytest.raises(UnsupportedFeature):
        EmbeddingService(UnsupportedBackend()).embed(["a"])


@pytest.mark.parametrize("batch_size", [0, -1, True, 1.5])
def test_invalid_batch_size(batch_size):
    with pytest.raises(InvalidInput):
        EmbeddingService(RecordingBackend(), batch_size=batch_size)


def test_embed_one():
    vec = EmbeddingService(RecordingBackend()).embed_one("abcd")
    assert vec.tolist() == [4.0, 1.0]


def test_embed_one_with_empty_backend_response():
    class EmptyBackend:
        def embed_raw(self, texts):
            return []

    service = EmbeddingService(EmptyBackend())
    with pytest.raises(ProviderFailure):
        service.embed_one("x")


def test_aembed_matches_embed():
    backend = RecordingBackend()
    service = EmbeddingService(backend, batch_size=3)

    vectors = asyncio.run(service.aembed(_texts(7)))

    assert [len(c) for c in backend.calls] == [3, 3, 1]
    assert [v[0] for v in vectors] == [float(i + 1) for i in range(7)]


def test_aembed_one():
    vec = asyncio.run(EmbeddingService(RecordingBackend()).aembed_one("abc"))
    assert vec[0] == 3.0
