import typing

import pytest
import requests

from corpus_rag.common.errors import BackendUnavailable, ProviderFailure, UnsupportedFeature
from corpus_rag.retrieval.embedder import (
    GeminiEmbeddingBackend,
    HuggingFaceEmbeddingBackend,
    MockEmbeddingBackend,
    OpenAILikeEmbeddingBackend,
    UnsupportedEmbeddingBackend,
    _normalize_embedder_kind,
    create_embedding_backend,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeSession:
    """Records POSTs and replays a canned response (or raises)."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


@pytest.mark.parametrize(
    "kind, expected",
    [
        ("OpenAILike", "openai_like"),
        ("openai-like", "openai_like"),
        ("HuggingFace", "hugging_face"),
        ("  gemini ", "gemini"),
    ],
)
def test_normalize_embedder_kind(kind, expected):
    assert _normalize_embedder_kind(kind) == expected


def test_create_mock_backend():
    backend = create_embedding_backend({"kind": "mock", "embed_dim": 4})

    assert isinstance(backend, MockEmbeddingBackend)
    vectors = backend.embed_raw(["a", "b", "c"])
    assert len(vectors) == 3
    assert all(len(v) == 4 for v in vectors)


@pytest.mark.parametrize("kind", ["deepseek", "claude"])
def test_chat_only_providers_raise_unsupported(kind):
    backend = create_embedding_backend({"provider": kind})

    assert isinstance(backend, UnsupportedEmbeddingBackend)
    with pytest.raises(UnsupportedFeature, match=kind):
        backend.embed_raw(["hello"])


def test_unknown_kind_rejected():
    with pytest.raises(ValueError, match="Unknown embedder kind"):
        create_embedding_backend({"kind": "word2vec"})


def test_non_mapping_rejected():
    with pytest.raises(TypeError):
        create_embedding_backend(["mock"])


def test_gemini_builds_batch_request():
    session = FakeSession(
        FakeResponse(payload={"embeddings": [{"values": [0.1, 0.2]}, {"values": [0.3, 0.4]}]})
    )
    backend = GeminiEmbeddingBackend("secret", session=session)

    vectors = backend.embed_raw(["first", "second"])

    assert vectors == [[0.1, 0.2], [0.3, 0.4]]
    post = session.posts[0]
    assert post["url"].endswith("/models/embedding-001:batchEmbedContents")
    assert post["headers"]["x-goog-api-key"] == "secret"
    assert post["json"]["requests"][1] == {
        "model": "models/embedding-001",
        "content": {"parts": [{"text": "second"}]},
    }


def test_gemini_strips_models_prefix():
    backend = GeminiEmbeddingBackend("k", model="models/text-embedding-004", session=FakeSession())
    assert backend.url.endswith("/models/text-embedding-004:batchEmbedContents")


def test_gemini_connection_error_is_backend_unavailable():
    backend = GeminiEmbeddingBackend("k", session=FakeSession(error=requests.ConnectionError("down")))
    with pytest.raises(BackendUnavailable):
        backend.embed_raw(["x"])


def test_gemini_timeout_is_backend_unavailable():
    backend = GeminiEmbeddingBackend("k", session=FakeSession(error=requests.Timeout("slow")))
    with pytest.raises(BackendUnavailable):
        backend.embed_raw(["x"])


def test_gemini_error_status_is_provider_failure():
    backend = GeminiEmbeddingBackend(
        "k", session=FakeSession(FakeResponse(status_code=403, text="forbidden"))
    )
    with pytest.raises(ProviderFailure, match="403"):
        backend.embed_raw(["x"])


def test_gemini_malformed_body_is_provider_failure():
    backend = GeminiEmbeddingBackend("k", session=FakeSession(FakeResponse(payload={"oops": []})))
    with pytest.raises(ProviderFailure, match="Malformed"):
        backend.embed_raw(["x"])


def test_gemini_requires_api_key():
    with pytest.raises(ValueError):
        GeminiEmbeddingBackend("", session=FakeSession())


@pytest.mark.parametrize(
    "cls, param, expected",
    [
        (HuggingFaceEmbeddingBackend, "model_kwargs", typing.Optional[dict[str, typing.Any]]),
        (OpenAILikeEmbeddingBackend, "model_kwargs", typing.Optional[dict[str, typing.Any]]),
        (OpenAILikeEmbeddingBackend, "api_key", typing.Optional[str]),
    ],
)
def test_optional_constructor_arguments_are_annotated_optional(cls, param, expected):
    assert typing.get_type_hints(cls.__init__)[param] == expected
