"""corpus_rag.common.validation

Input validation for the public pipeline operations.

Each validator returns ``None`` on success and raises
:class:`~corpus_rag.common.errors.InvalidInput` with a field-specific message
otherwise.
"""

from __future__ import annotations

from corpus_rag.common.errors import InvalidInput

MAX_QUERY_CHARS = 10_000
MAX_NAME_CHARS = 200
MAX_DOCUMENT_CHARS = 10_485_760
DEFAULT_MAX_TOP_K = 100


def validate_not_empty(field: str, value: str) -> None:
    if value is None or not str(value).strip():
        raise InvalidInput(f"Field '{field}' cannot be empty")


def validate_length(
        field: str,
        value: str,
        min_len: int | None = None,
        max_len: int | None = None,
    ) -> None:
    """Check ``min_len <= len(value) <= max_len`` (bounds optional)."""
    n = len(value)
    if min_len is not None and n < min_len:
        raise InvalidInput(f"Field '{field}' is below minimum length of {min_len} characters")
    if max_len is not None and n > max_len:
        raise InvalidInput(f"Field '{field}' exceeds maximum length of {max_len} characters")


def validate_range(field: str, value, min_value, max_value) -> None:
    if value < min_value or value > max_value:
        raise InvalidInput(
            f"Field '{field}' value {value} is out of range [{min_value}, {max_value}]"
        )


def validate_top_k(top_k: int, max_top_k: int = DEFAULT_MAX_TOP_K) -> None:
    """Validate a result-count bound.

    Parameters
    ----------
    top_k : int
        Requested number of matches.
    max_top_k : int, optional
        Inclusive upper bound. Defaults to ``100``.

    Raises
    ------
    InvalidInput
        If ``top_k`` is not an integer in ``[1, max_top_k]``.
    """
    if isinstance(top_k, bool) or not isinstance(top_k, int):
        raise InvalidInput(f"Field 'top_k' must be an integer, got {type(top_k).__name__}")
    validate_range("top_k", top_k, 1, max_top_k)


def validate_query(query: str) -> None:
    validate_not_empty("query", query)
    validate_length("query", query, 1, MAX_QUERY_CHARS)


def validate_name(field: str, name: str) -> None:
    """Validate a partition or document display name."""
    validate_not_empty(field, name)
    validate_length(field, name, 1, MAX_NAME_CHARS)
    if any(ch in name for ch in ("\0", "\r", "\n")):
        raise InvalidInput(f"Field '{field}' contains invalid characters")


def validate_document_content(content: str) -> None:
    validate_not_empty("content", content)
    validate_length("content", content, 1, MAX_DOCUMENT_CHARS)


__all__ = [
    "MAX_QUERY_CHARS",
    "MAX_NAME_CHARS",
    "MAX_DOCUMENT_CHARS",
    "DEFAULT_MAX_TOP_K",
    "validate_not_empty",
    "validate_length",
    "validate_range",
    "validate_top_k",
    "validate_query",
    "validate_name",
    "validate_document_content",
]
