"""corpus_rag.config.global_config

Global configuration loader and accessors.

This module defines a lightweight wrapper around a raw YAML configuration
dictionary, providing validated, cached access to the configuration sections
used across the retrieval pipeline.

Environment variables of the form ``${VAR}`` are expanded recursively in all
string values at load time.

Classes
-------
GlobalConfig
    Loader and accessor for global project configuration.
"""

import os
import yaml
from pathlib import Path
from functools import cached_property

from corpus_rag.retrieval.embedding_service import DEFAULT_BATCH_SIZE
from corpus_rag.retrieval.vector_store import DEFAULT_SQL_URL

CONFIG_ENV_VAR = "CORPUS_RAG_CONFIG"

RETRIEVAL_DEFAULTS = {
    "top_k": 5,
    "max_top_k": 100,
    "candidate_multiplier": 3,
    "diversity_penalty": 0.3,
    "parallel_threshold": 20_000,
    "max_workers": None,
}

LOGGING_DEFAULTS = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


def _expand_env(obj):
    """Recursively expand environment variables in a nested structure.

    This function walks nested dictionaries and lists and applies
    :func:`os.path.expandvars` to any string values, expanding patterns of the
    form ``${VAR}`` using the current process environment.

    Parameters
    ----------
    obj : Any
        Object to expand. Supported types are dictionaries, lists, and strings.
        Other types are returned unchanged.

    Returns
    -------
    Any
        A structure of the same shape as ``obj`` with environment variables
        expanded in all string values.
    """
    if isinstance(obj, dict):
        return {k: _expand_env(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env(v) for v in obj]
    if isinstance(obj, str):
        return os.path.expandvars(obj)
    return obj


def _section(raw: dict, name: str) -> dict:
    section = raw.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise TypeError(f"'{name}' must be a mapping, got {type(section)}.")
    return dict(section)


def _positive_int(section: str, key: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"'{section}.{key}' must be a positive integer, got {value!r}.")
    return value


class GlobalConfig:
    """Loader and accessor for global project configuration.

    This class wraps a raw configuration dictionary (typically loaded from YAML)
    and exposes validated, cached accessors for the configuration sections.

    Parameters
    ----------
    raw : dict
        Raw configuration data as loaded from a YAML file.
    config_path : Path or None, optional
        Absolute path of the loaded file, used to resolve relative paths.
    """

    def __init__(
            self,
            raw: dict,
            config_path: Path | None = None,
        ):
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise TypeError(f"Configuration root must be a mapping, got {type(raw)}.")
        self.raw = raw
        self.config_path = config_path

    @classmethod
    def load(
            cls,
            path: str | Path,
        ) -> "GlobalConfig":
        """Load configuration from a YAML file.

        Parameters
        ----------
        path : str or Path
            Path to the YAML configuration file.

        Returns
        -------
        GlobalConfig
            An instance initialised with the loaded and environment-expanded data.
        """
        cfg_path = Path(path).expanduser().resolve()
        with cfg_path.open("r") as f:
            data = yaml.safe_load(f)
        data = _expand_env(data)
        return cls(data, config_path=cfg_path)

    @classmethod
    def from_env(cls, var: str = CONFIG_ENV_VAR) -> "GlobalConfig":
        """Load the file named by environment variable ``var``.

        Raises
        ------
        KeyError
            If the variable is unset or empty.
        """
        path = os.environ.get(var)
        if not path:
            raise KeyError(f"Environment variable {var} is not set.")
        return cls.load(path)

    @property
    def base_dir(self) -> Path:
        if self.config_path is not None:
            return Path(self.config_path).parent
        return Path.cwd()

    @cached_property
    def embedder(self) -> dict:
        """Return the embedder configuration section.

        Returns
        -------
        dict
            The ``embedder`` section of the configuration.

        Raises
        ------
        KeyError
            If the section is missing.
        TypeError
            If the section is not a mapping.
        """
        section = self.raw.get("embedder")
        if section is None:
            raise KeyError("Missing 'embedder' in configuration.")
        if not isinstance(section, dict):
            raise TypeError(f"'embedder' must be a mapping, got {type(section)}.")
        return section

    @cached_property
    def embedding_batch_size(self) -> int:
        """Return ``embedder.batch_size`` (default ``32``)."""
        return _positive_int("embedder", "batch_size", self.embedder.get("batch_size", DEFAULT_BATCH_SIZE))

    @cached_property
    def embedder_backend(self) -> dict:
        """Return the embedder section without the keys consumed by the service."""
        return {k: v for k, v in self.embedder.items() if k != "batch_size"}

    @cached_property
    def chunking(self) -> dict:
        """Return the chunking section, or an empty dict if not present."""
        return _section(self.raw, "chunking")

    @cached_property
    def retrieval(self) -> dict:
        """Return the retrieval section with defaults applied.

        Returns
        -------
        dict
            Keys ``top_k``, ``max_top_k``, ``candidate_multiplier``,
            ``diversity_penalty``, ``parallel_threshold`` and ``max_workers``
            plus any extra keys present in the file.

        Raises
        ------
        ValueError
            If a numeric setting is out of range or ``top_k`` exceeds
            ``max_top_k``.
        """
        cfg = {**RETRIEVAL_DEFAULTS, **_section(self.raw, "retrieval")}

        for key in ("top_k", "max_top_k", "candidate_multiplier", "parallel_threshold"):
            _positive_int("retrieval", key, cfg[key])
        if cfg["max_workers"] is not None:
            _positive_int("retrieval", "max_workers", cfg["max_workers"])
        if cfg["top_k"] > cfg["max_top_k"]:
            raise ValueError("'retrieval.top_k' must not exceed 'retrieval.max_top_k'.")

        penalty = float(cfg["diversity_penalty"])
        if penalty < 0.0:
            raise ValueError("'retrieval.diversity_penalty' must be non-negative.")
        cfg["diversity_penalty"] = penalty
        return cfg

    @cached_property
    def storage(self) -> dict:
        """Return the storage section.

        A relative SQLite file path is resolved against the directory of the
        configuration file.
        """
        cfg = _section(self.raw, "storage")
        cfg.setdefault("kind", "sql")
        url = str(cfg.get("url", DEFAULT_SQL_URL))

        prefix = "sqlite:///"
        if url.startswith(prefix):
            db_path = url[len(prefix):]
            if db_path and db_path != ":memory:" and not Path(db_path).is_absolute():
                url = prefix + str((self.base_dir / db_path).resolve())
        cfg["url"] = url
        return cfg

    @cached_property
    def logging(self) -> dict:
        """Return the logging section with defaults applied."""
        return {**LOGGING_DEFAULTS, **_section(self.raw, "logging")}

    @cached_property
    def context_templates(self) -> list[str]:
        """Return template file paths from ``context_templates``.

        Returns
        -------
        list[str]
            Zero or more paths; a single string is wrapped in a list.
        """
        value = self.raw.get("context_templates")
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise TypeError("'context_templates' must be a path or a list of paths.")
        return list(value)

    @cached_property
    def context_template_name(self) -> str | None:
        return self.raw.get("context_template_name")
