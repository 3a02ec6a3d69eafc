"""corpus_rag.config

Configuration subsystem for corpus-rag.

This package provides structured access to configuration loaded from YAML
files and the process-wide logging setup. It exposes validated, documented
interfaces rather than raw configuration dictionaries.

Modules
-------
global_config
    Global configuration loader and cached accessors.
logging_config
    Root logger configuration for entry points.
"""
from .global_config import GlobalConfig
from .logging_config import configure_logging

__all__ = ["GlobalConfig", "configure_logging"]
