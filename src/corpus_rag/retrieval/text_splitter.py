"""corpus_rag.retrieval.text_splitter

Text splitting and chunking utilities for the retrieval layer.

This module converts raw document text into overlapping, boundary-aware
:class:`~corpus_rag.common.schemas.Segment` objects suitable for embedding.
Windows are cut just after the last sentence terminator they contain, else
the last newline, else the last space, so that segments rarely end
mid-sentence or mid-word.

Classes
-------
ChunkConfig
    Character budget (target size and overlap) for the chunker.

Functions
---------
chunk_text
    Split a text into overlapping segments.
segment_texts
    Convenience wrapper returning only the segment strings.
"""

from __future__ import annotations

from dataclasses import dataclass

from corpus_rag.common.errors import InvalidInput
from corpus_rag.common.schemas import Segment

DEFAULT_CHUNK_TOKENS = 512
DEFAULT_OVERLAP_TOKENS = 50
DEFAULT_CHARS_PER_TOKEN = 4

SENTENCE_TERMINATORS = (".", "!", "?")


@dataclass(frozen=True)
class ChunkConfig:
    """Character budget for :func:`chunk_text`.

    Attributes
    ----------
    target_size : int
        Maximum segment length in characters. Defaults to ``2048``.
    overlap : int
        Number of characters shared between consecutive segments. Defaults
        to ``200``.
    """

    target_size: int = DEFAULT_CHUNK_TOKENS * DEFAULT_CHARS_PER_TOKEN
    overlap: int = DEFAULT_OVERLAP_TOKENS * DEFAULT_CHARS_PER_TOKEN

    def __post_init__(self):
        if isinstance(self.target_size, bool) or not isinstance(self.target_size, int):
            raise InvalidInput("'target_size' must be an integer.")
        if isinstance(self.overlap, bool) or not isinstance(self.overlap, int):
            raise InvalidInput("'overlap' must be an integer.")
        if self.target_size < 1:
            raise InvalidInput("'target_size' must be a positive integer.")
        if not 0 <= self.overlap < self.target_size:
            raise InvalidInput(
                f"'overlap' must be in [0, target_size), got {self.overlap} "
                f"for target_size={self.target_size}."
            )

    @classmethod
    def from_token_budget(
            cls,
            chunk_tokens: int = DEFAULT_CHUNK_TOKENS,
            overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
            chars_per_token: int = DEFAULT_CHARS_PER_TOKEN,
        ) -> "ChunkConfig":
        """Derive a character budget from an approximate token budget.

        Parameters
        ----------
        chunk_tokens : int, optional
            Target segment size in tokens. Defaults to ``512``.
        overlap_tokens : int, optional
            Overlap in tokens. Defaults to ``50``.
        chars_per_token : int, optional
            Approximate characters per token. Defaults to ``4``.

        Returns
        -------
        ChunkConfig
            Character-based configuration.
        """
        cpt = max(1, int(chars_per_token))
        return cls(target_size=int(chunk_tokens) * cpt, overlap=int(overlap_tokens) * cpt)

    @classmethod
    def from_config_dict(cls, config: dict | None) -> "ChunkConfig":
        """Create a configuration from the ``chunking`` config section.

        Character keys (``target_size``/``overlap``) take precedence over the
        token keys (``chunk_tokens``/``overlap_tokens``/``chars_per_token``).
        An empty or missing section yields the defaults.
        """
        cfg = dict(config or {})
        if "target_size" in cfg or "overlap" in cfg:
            return cls(
                target_size=int(cfg.get("target_size", cls.target_size)),
                overlap=int(cfg.get("overlap", cls.overlap)),
            )
        if "chunk_tokens" in cfg or "overlap_tokens" in cfg:
            return cls.from_token_budget(
                chunk_tokens=int(cfg.get("chunk_tokens", DEFAULT_CHUNK_TOKENS)),
                overlap_tokens=int(cfg.get("overlap_tokens", DEFAULT_OVERLAP_TOKENS)),
                chars_per_token=int(cfg.get("chars_per_token", DEFAULT_CHARS_PER_TOKEN)),
            )
        return cls()


def _find_boundary(window: str) -> int | None:
    """Return the cut offset just after the best break character in ``window``.

    Preference order: last sentence terminator, last newline, last space.
    """
    pos = max(window.rfind(ch) for ch in SENTENCE_TERMINATORS)
    if pos >= 0:
        return pos + 1

    pos = window.rfind("\n")
    if pos >= 0:
        return pos + 1

    pos = window.rfind(" ")
    if pos >= 0:
        return pos + 1

    return None


def chunk_text(text: str, config: ChunkConfig | None = None) -> list[Segment]:
    """Split ``text`` into overlapping, boundary-aware segments.

    Parameters
    ----------
    text : str
        Source text.
    config : ChunkConfig or None, optional
        Character budget. Defaults to :class:`ChunkConfig` defaults.

    Returns
    -------
    list[Segment]
        Segments in source order. A text no longer than ``target_size``
        (including the empty string) yields exactly one segment equal to it.

    Notes
    -----
    Each iteration advances the cursor by at least one character: the next
    cursor is ``boundary - overlap`` unless that would not move past the
    current cursor, in which case it is the boundary itself.
    """
    config = config or ChunkConfig()
    size = config.target_size
    n = len(text)

    if n <= size:
        return [Segment(text=text, ordinal=0, start=0, end=n)]

    segments: list[Segment] = []
    cursor = 0

    while cursor < n:
        end = min(cursor + size, n)

        if end < n:
            offset = _find_boundary(text[cursor:end])
            boundary = cursor + offset if offset is not None else end
        else:
            boundary = end

        segments.append(
            Segment(text=text[cursor:boundary], ordinal=len(segments), start=cursor, end=boundary)
        )

        if boundary >= n:
            break

        next_cursor = boundary - config.overlap
        if next_cursor <= cursor:
            next_cursor = boundary
        cursor = next_cursor

    return segments


def segment_texts(text: str, config: ChunkConfig | None = None) -> list[str]:
    """Return only the segment strings produced by :func:`chunk_text`."""
    return [segment.text for segment in chunk_text(text, config)]


__all__ = [
    "ChunkConfig",
    "chunk_text",
    "segment_texts",
]
