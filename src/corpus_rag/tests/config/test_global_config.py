import logging
from pathlib import Path

import pytest

from corpus_rag.app.container import build_container
from corpus_rag.config import GlobalConfig, configure_logging
from corpus_rag.retrieval.embedder import MockEmbeddingBackend
from corpus_rag.retrieval.reranker import DiversityReranker
from corpus_rag.retrieval.vector_store import InMemoryCorpusStore, SQLCorpusStore


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_expands_environment_variables(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_GEMINI_KEY", "abc123")
    path = _write(
        tmp_path,
        "embedder:\n"
        "  kind: gemini\n"
        "  api_key: ${TEST_GEMINI_KEY}\n"
        "  batch_size: 16\n",
    )

    cfg = GlobalConfig.load(path)

    assert cfg.embedder["api_key"] == "abc123"
    assert cfg.embedding_batch_size == 16
    assert "batch_size" not in cfg.embedder_backend
    assert cfg.embedder_backend["kind"] == "gemini"
    assert cfg.config_path == path.resolve()


def test_missing_embedder_section():
    with pytest.raises(KeyError):
        GlobalConfig({}).embedder


def test_retrieval_defaults():
    section = GlobalConfig({"embedder": {"kind": "mock"}}).retrieval
    assert section["top_k"] == 5
    assert section["max_top_k"] == 100
    assert section["candidate_multiplier"] == 3
    assert section["diversity_penalty"] == pytest.approx(0.3)
    assert section["parallel_threshold"] == 20_000
    assert section["max_workers"] is None


@pytest.mark.parametrize(
    "retrieval",
    [
        {"top_k": 0},
        {"top_k": 200},
        {"candidate_multiplier": 0},
        {"diversity_penalty": -1},
        {"max_workers": 0},
    ],
)
def test_invalid_retrieval_settings(retrieval):
    with pytest.raises(ValueError):
        GlobalConfig({"retrieval": retrieval}).retrieval


def test_invalid_batch_size():
    with pytest.raises(ValueError):
        GlobalConfig({"embedder": {"kind": "mock", "batch_size": 0}}).embedding_batch_size


def test_relative_sqlite_path_resolved_against_config_dir(tmp_path):
    path = _write(tmp_path, "storage:\n  url: sqlite:///data/corpus.db\n")
    cfg = GlobalConfig.load(path)
    assert cfg.storage["url"] == f"sqlite:///{(tmp_path / 'data' / 'corpus.db').resolve()}"
    assert cfg.storage["kind"] == "sql"


def test_in_memory_sqlite_url_untouched():
    cfg = GlobalConfig({"storage": {"url": "sqlite://"}})
    assert cfg.storage["url"] == "sqlite://"


def test_context_templates_accepts_single_path():
    assert GlobalConfig({"context_templates": "t.yaml"}).context_templates == ["t.yaml"]
    assert GlobalConfig({}).context_templates == []


def test_from_env(tmp_path, monkeypatch):
    path = _write(tmp_path, "embedder:\n  kind: mock\n")
    monkeypatch.setenv("CORPUS_RAG_CONFIG", str(path))
    assert GlobalConfig.from_env().embedder == {"kind": "mock"}

    monkeypatch.delenv("CORPUS_RAG_CONFIG")
    with pytest.raises(KeyError):
        GlobalConfig.from_env()


def test_container_wires_components():
    cfg = GlobalConfig(
        {
            "embedder": {"kind": "mock", "embed_dim": 4, "batch_size": 8},
            "chunking": {"target_size": 100, "overlap": 10},
            "retrieval": {"top_k": 3, "diversity_penalty": 0.5},
            "storage": {"kind": "memory"},
        }
    )
    container = build_container(cfg)

    assert isinstance(container.embedding_backend, MockEmbeddingBackend)
    assert container.embedding_service.batch_size == 8
    assert isinstance(container.store, InMemoryCorpusStore)
    assert isinstance(container.reranker, DiversityReranker)
    assert container.reranker.diversity_penalty == pytest.approx(0.5)
    assert container.chunk_config.target_size == 100
    assert container.pipeline.default_top_k == 3
    assert container.pipeline.store is container.store
    assert container.pipeline.engine.reranker is container.reranker


def test_container_default_store_is_sql():
    container = build_container(GlobalConfig({"embedder": {"kind": "mock"}, "storage": {"url": "sqlite://"}}))
    assert isinstance(container.store, SQLCorpusStore)


def test_container_registers_context_templates(tmp_path):
    (tmp_path / "templates.yaml").write_text(
        "name: terse\nsystem: 'Context:\\n{{ context }}'\n", encoding="utf-8"
    )
    path = _write(
        tmp_path,
        "embedder:\n  kind: mock\n"
        "context_templates: templates.yaml\n"
        "context_template_name: terse\n",
    )
    builder = build_container(GlobalConfig.load(path)).context_builder

    assert builder.default_template == "terse"
    assert "terse" in builder.list_templates()


def test_configure_logging_installs_single_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging({"level": "debug"})
        configure_logging({"level": "WARNING"})

        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        assert logging.getLogger("urllib3").level == logging.WARNING
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
