"""corpus_rag.retrieval.embedder

Embedding backends and factories for the retrieval layer.

This module provides the concrete provider variants behind the
:class:`~corpus_rag.retrieval.types.EmbeddingBackend` capability interface.
Each backend exposes a single ``embed_raw`` operation that embeds one batch
of texts in one provider call; batching policy and error tagging live in
:class:`~corpus_rag.retrieval.embedding_service.EmbeddingService`.

Classes
-------
LlamaIndexEmbeddingBackend
    Adapter over any LlamaIndex embedding model.
HuggingFaceEmbeddingBackend
    Local Hugging Face SentenceTransformer model via LlamaIndex.
OpenAILikeEmbeddingBackend
    OpenAI-compatible HTTP embedding API via LlamaIndex.
MockEmbeddingBackend
    LlamaIndex mock embeddings for offline development.
GeminiEmbeddingBackend
    Google Generative Language embedding API over ``requests``.
UnsupportedEmbeddingBackend
    Placeholder for chat-only providers; always raises ``UnsupportedFeature``.

Functions
---------
create_embedding_backend
    Create a backend implementation from a configuration mapping.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence

import requests
import yaml
from llama_index.core.base.embeddings.base import BaseEmbedding as LlamaIndexBaseEmbedding

from corpus_rag.common.errors import BackendUnavailable, ProviderFailure, UnsupportedFeature

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_GEMINI_MODEL = "embedding-001"


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return bool(value)


def _load_yaml(config_path: str) -> Dict[str, Any]:
    with open(config_path, "r") as f:
        return yaml.safe_load(f) or {}


class LlamaIndexEmbeddingBackend:
    """Embedding backend wrapping a LlamaIndex embedding model.

    Parameters
    ----------
    embed_model : LlamaIndexBaseEmbedding
        Any object implementing LlamaIndex's ``get_text_embedding_batch``.
    """

    provider_id = "llama_index"

    def __init__(self, embed_model: LlamaIndexBaseEmbedding):
        self.embedder = embed_model

    def get_embedder(self) -> LlamaIndexBaseEmbedding:
        """Return the underlying LlamaIndex embedding object."""
        return self.embedder

    def embed_raw(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed ``texts`` with the wrapped model in one batch call.

        Parameters
        ----------
        texts : Sequence[str]
            Texts to embed.

        Returns
        -------
        list[list[float]]
            One vector per input, in input order.
        """
        vectors = self.embedder.get_text_embedding_batch(list(texts), show_progress=False)
        return [list(vec) for vec in vectors]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(embedder={type(self.embedder).__name__})"


class HuggingFaceEmbeddingBackend(LlamaIndexEmbeddingBackend):
    """Backend backed by a Hugging Face SentenceTransformer via LlamaIndex.

    This implementation wraps :class:`llama_index.embeddings.huggingface.HuggingFaceEmbedding`.

    Parameters
    ----------
    model_name : str
        Name or path of the embedding model.
    device : str
        Device identifier (e.g., ``"cuda"``, ``"cpu"``, ``"mps"``).
    trust_remote_code : bool, optional
        Whether to allow custom model code from the Hugging Face Hub.
    model_kwargs : dict[str, Any] or None, optional
        Additional keyword arguments forwarded to the underlying embedder.
    """

    provider_id = "huggingface"

    def __init__(
            self,
            model_name: str,
            *,
            device: str,
            trust_remote_code: bool = False,
            model_kwargs: Optional[dict[str, Any]] = None,
        ):
        from llama_index.embeddings.huggingface import HuggingFaceEmbedding

        super().__init__(
            HuggingFaceEmbedding(
                model_name=model_name,
                trust_remote_code=trust_remote_code,
                device=device,
                model_kwargs=model_kwargs or {},
            )
        )

    @classmethod
    def from_config(cls, config_path: str) -> "HuggingFaceEmbeddingBackend":
        """Create a Hugging Face backend from a YAML configuration file."""
        return cls.from_config_dict(_load_yaml(config_path))

    @classmethod
    def from_config_dict(cls, config: Dict[str, Any]) -> "HuggingFaceEmbeddingBackend":
        """Create a Hugging Face backend from a configuration mapping.

        Parameters
        ----------
        config : dict[str, Any]
            Configuration mapping with ``model_name`` and optional ``device``
            (default ``"cpu"``), ``trust_remote_code`` and ``model_kwargs``.

        Returns
        -------
        HuggingFaceEmbeddingBackend
            An initialised backend.

        Raises
        ------
        KeyError
            If ``model_name`` is missing.
        """
        return cls(
            model_name=config["model_name"],
            device=config.get("device", "cpu"),
            trust_remote_code=_as_bool(config.get("trust_remote_code"), False),
            model_kwargs=config.get("model_kwargs", {}),
        )


class OpenAILikeEmbeddingBackend(LlamaIndexEmbeddingBackend):
    """Backend backed by an OpenAI-compatible embedding API via LlamaIndex.

    This implementation wraps :class:`llama_index.embeddings.openai_like.OpenAILikeEmbedding`.

    Parameters
    ----------
    model_name : str
        Model identifier for the embedding endpoint.
    api_base : str
        Base URL for the OpenAI-compatible embedding API endpoint.
    api_key : str or None, optional
        API key sent as a bearer token.
    model_kwargs : dict[str, Any] or None, optional
        Additional keyword arguments forwarded to the endpoint.
    timeout : float, optional
        Request timeout in seconds. Defaults to ``60.0``.
    max_retries : int, optional
        Client-level retries. Defaults to ``0``; retry policy belongs to the
        caller.
    embed_batch_size : int, optional
        Texts per HTTP request inside one ``embed_raw`` call.
    """

    provider_id = "openai_like"

    def __init__(
            self,
            model_name: str,
            *,
            api_base: str,
            api_key: Optional[str] = None,
            model_kwargs: Optional[dict[str, Any]] = None,
            timeout: float = 60.0,
            max_retries: int = 0,
            embed_batch_size: int = 32,
            num_workers: Optional[int] = None,
            reuse_client: bool = True,
        ):
        from llama_index.embeddings.openai_like import OpenAILikeEmbedding

        super().__init__(
            OpenAILikeEmbedding(
                model_name=model_name,
                api_base=api_base,
                additional_kwargs=model_kwargs or {},
                api_key=api_key or "fake",
                timeout=timeout,
                max_retries=max_retries,
                embed_batch_size=embed_batch_size,
                num_workers=num_workers,
                reuse_client=reuse_client,
            )
        )

    @classmethod
    def from_config(cls, config_path: str) -> "OpenAILikeEmbeddingBackend":
        """Create an OpenAI-compatible backend from a YAML configuration file."""
        return cls.from_config_dict(_load_yaml(config_path))

    @classmethod
    def from_config_dict(cls, config: Dict[str, Any]) -> "OpenAILikeEmbeddingBackend":
        """Create an OpenAI-compatible backend from a configuration mapping.

        Raises
        ------
        KeyError
            If required keys (``model_name`` or ``api_base``) are missing.
        """
        return cls(
            model_name=config["model_name"],
            api_base=config["api_base"],
            api_key=config.get("api_key"),
            model_kwargs=config.get("model_kwargs", {}),
            timeout=float(config.get("timeout", config.get("request_timeout", 60.0))),
            max_retries=int(config.get("max_retries", 0)),
            embed_batch_size=int(config.get("embed_batch_size", 32)),
            num_workers=config.get("num_workers"),
            reuse_client=_as_bool(config.get("reuse_client"), True),
        )


class MockEmbeddingBackend(LlamaIndexEmbeddingBackend):
    """Constant-vector embeddings from :class:`llama_index.core.embeddings.MockEmbedding`.

    Useful for wiring the stack up without a model; every text maps to the
    same vector, so rankings are meaningless.
    """

    provider_id = "mock"

    def __init__(self, embed_dim: int = 8):
        from llama_index.core.embeddings import MockEmbedding

        super().__init__(MockEmbedding(embed_dim=int(embed_dim)))

    @classmethod
    def from_config_dict(cls, config: Dict[str, Any]) -> "MockEmbeddingBackend":
        return cls(embed_dim=int(config.get("embed_dim", 8)))


class GeminiEmbeddingBackend:
    """Embedding backend for the Google Generative Language API.

    Uses the ``batchEmbedContents`` method so that one ``embed_raw`` call is
    one HTTP request.

    Parameters
    ----------
    api_key : str
        API key sent in the ``x-goog-api-key`` header.
    model : str, optional
        Embedding model name. Defaults to ``"embedding-001"``.
    base_url : str, optional
        API base URL.
    timeout : float, optional
        Request timeout in seconds. Defaults to ``60.0``.
    session : requests.Session or None, optional
        HTTP session to reuse. A new session is created when omitted.
    """

    provider_id = "gemini"

    def __init__(
            self,
            api_key: str,
            *,
            model: str = DEFAULT_GEMINI_MODEL,
            base_url: str = DEFAULT_GEMINI_BASE_URL,
            timeout: float = 60.0,
            session: requests.Session | None = None,
        ):
        if not api_key:
            raise ValueError("GeminiEmbeddingBackend requires an api_key.")
        self.api_key = api_key
        self.model = model[len("models/"):] if model.startswith("models/") else model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.base_url}/models/{self.model}:batchEmbedContents"

    @classmethod
    def from_config_dict(cls, config: Dict[str, Any]) -> "GeminiEmbeddingBackend":
        return cls(
            api_key=config.get("api_key"),
            model=config.get("model_name") or config.get("model") or DEFAULT_GEMINI_MODEL,
            base_url=config.get("api_base") or config.get("base_url") or DEFAULT_GEMINI_BASE_URL,
            timeout=float(config.get("timeout", 60.0)),
        )

    def embed_raw(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed ``texts`` with one ``batchEmbedContents`` request.

        Raises
        ------
        BackendUnavailable
            If the API cannot be reached or the request times out.
        ProviderFailure
            On a non-success status or an unexpected response body.
        """
        body = {
            "requests": [
                {"model": f"models/{self.model}", "content": {"parts": [{"text": text}]}}
                for text in texts
            ]
        }
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

        try:
            resp = self.session.post(self.url, headers=headers, json=body, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise BackendUnavailable(f"Gemini embedding API unreachable: {exc}") from exc

        if not resp.ok:
            raise ProviderFailure(f"Gemini embedding API error ({resp.status_code}): {resp.text}")

        try:
            data = resp.json()
            return [list(item["values"]) for item in data["embeddings"]]
        except (ValueError, KeyError, TypeError) as exc:
            raise ProviderFailure(f"Malformed Gemini embedding response: {exc}") from exc


class UnsupportedEmbeddingBackend:
    """Backend for chat-only providers that offer no embedding endpoint."""

    def __init__(self, provider_id: str):
        self.provider_id = provider_id

    @classmethod
    def from_config_dict(cls, config: Dict[str, Any]) -> "UnsupportedEmbeddingBackend":
        return cls(provider_id=_normalize_embedder_kind(_get_embedder_kind(config)))

    def embed_raw(self, texts: Sequence[str]) -> list[list[float]]:
        raise UnsupportedFeature(
            f"Embeddings not supported by this provider: {self.provider_id}"
        )


# ----------------- Factory helpers -----------------

def _get_embedder_kind(cfg: Mapping[str, Any]) -> str:
    """Extract the backend kind/type/provider discriminator from a config mapping.

    Returns
    -------
    str
        The first non-empty discriminator value found, or an empty string if none
        is present.
    """
    for key in ("kind", "type", "provider", "backend", "impl"):
        val = cfg.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""


def _normalize_embedder_kind(kind: str) -> str:
    """Normalise a backend kind string to a stable registry key.

    CamelCase becomes snake_case, whitespace and hyphens become underscores
    and repeated underscores collapse (e.g. ``"OpenAILike"`` -> ``"openai_like"``).
    """
    k = kind.strip()
    if not k:
        return ""

    # Insert underscores between camel-case boundaries.
    out: list[str] = []
    prev = ""
    for ch in k:
        if prev and prev.islower() and ch.isupper():
            out.append("_")
        out.append(ch)
        prev = ch

    k2 = "".join(out)
    k2 = k2.replace("-", "_").replace(" ", "_")

    while "__" in k2:
        k2 = k2.replace("__", "_")

    k2 = k2.lower()

    k2 = k2.replace("openailike", "openai_like")
    k2 = k2.replace("open_ailike", "openai_like")
    k2 = k2.replace("open_ai_like", "openai_like")

    return k2


_REGISTRY = {
    "huggingface": HuggingFaceEmbeddingBackend,
    "hugging_face": HuggingFaceEmbeddingBackend,
    "hf": HuggingFaceEmbeddingBackend,
    "openai_like": OpenAILikeEmbeddingBackend,
    "openai": OpenAILikeEmbeddingBackend,
    "mock": MockEmbeddingBackend,
    "gemini": GeminiEmbeddingBackend,
    "deepseek": UnsupportedEmbeddingBackend,
    "claude": UnsupportedEmbeddingBackend,
}


def create_embedding_backend(config: Mapping[str, Any]):
    """Create an embedding backend from a configuration mapping.

    The concrete variant is selected by a discriminator field (one of
    ``kind``, ``type``, ``provider``, ``backend`` or ``impl``). Without a
    discriminator the Hugging Face backend is used.

    Parameters
    ----------
    config : Mapping[str, Any]
        The ``embedder`` configuration section.

    Returns
    -------
    EmbeddingBackend
        An initialised backend.

    Raises
    ------
    TypeError
        If ``config`` is not a mapping.
    ValueError
        If the discriminator selects an unknown provider.
    """
    if not isinstance(config, Mapping):
        raise TypeError(f"create_embedding_backend expected a mapping/dict, got {type(config)}")

    kind_raw = _get_embedder_kind(config)
    kind = _normalize_embedder_kind(kind_raw)

    cls = _REGISTRY.get(kind) if kind else HuggingFaceEmbeddingBackend
    if cls is None:
        raise ValueError(
            f"Unknown embedder kind '{kind_raw}' (normalized to '{kind}'). "
            f"Supported kinds: {sorted(_REGISTRY.keys())}."
        )

    backend = cls.from_config_dict(dict(config))
    logger.debug("Created embedding backend %r for kind %r", backend, kind or "huggingface")
    return backend


__all__ = [
    "LlamaIndexEmbeddingBackend",
    "HuggingFaceEmbeddingBackend",
    "OpenAILikeEmbeddingBackend",
    "MockEmbeddingBackend",
    "GeminiEmbeddingBackend",
    "UnsupportedEmbeddingBackend",
    "create_embedding_backend",
]
