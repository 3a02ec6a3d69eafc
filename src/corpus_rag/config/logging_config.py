"""corpus_rag.config.logging_config

Process-wide logging setup.

Every module logs through ``logging.getLogger(__name__)``; this module only
installs the root handler for entry points (the API and the scripts).

Functions
---------
configure_logging
    Install a single stdout handler on the root logger.
"""

import logging
import sys

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "sqlalchemy.engine")


def configure_logging(section: dict | None = None) -> None:
    """Configure the root logger from the ``logging`` config section.

    Parameters
    ----------
    section : dict or None, optional
        Mapping with optional ``level`` (name or number, default ``INFO``),
        ``format`` and ``datefmt`` keys.

    Notes
    -----
    Existing root handlers are removed, so calling this more than once does
    not duplicate output.
    """
    cfg = dict(section or {})

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        logging.Formatter(
            cfg.get("format", DEFAULT_FORMAT),
            datefmt=cfg.get("datefmt", DEFAULT_DATEFMT),
        )
    )

    level = cfg.get("level", "INFO")
    if isinstance(level, str):
        level = level.upper()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
