"""Split a model reply into chat-sized fragments."""

import re
import string
import unicodedata

# Sentence end: terminal mark followed by whitespace or the end of the window.
_SENTENCE_END = re.compile(r"[.!?](?=\s|$)")
_CONJUNCTION = re.compile(r"\b(and|but|so|or|because|then|still|yet)\b", re.IGNORECASE)
_LINE_BREAKS = re.compile(r"\n+")

DEFAULT_MAX_LENGTH = 140
DEFAULT_MIN_LENGTH = 20


def _is_punctuation(ch: str) -> bool:
    return ch.isspace() or ch in string.punctuation or unicodedata.category(ch).startswith("P")


def is_punctuation_only(piece: str) -> bool:
    """True for pieces like '...' or '?!' that carry no words."""
    stripped = piece.strip()
    return bool(stripped) and all(_is_punctuation(ch) for ch in stripped)


def _find_split(chunk: str, start: int, max_length: int) -> int:
    """Return the absolute index to split `chunk` at, scanning from `start`."""
    end = min(start + max_length, len(chunk))

    # Matched against the whole chunk so lookarounds see past the window edge.
    last_punct = -1
    for match in _SENTENCE_END.finditer(chunk, start):
        if match.start() >= end:
            break
        last_punct = match.start() + 1
    if last_punct > start:
        return last_punct

    last_conj = -1
    for match in _CONJUNCTION.finditer(chunk, start):
        if match.end() > end:
            break
        last_conj = match.end()
    if last_conj > start:
        return last_conj

    # No natural break in this window: keep the rest of the chunk together.
    return len(chunk)


def _split_long_chunk(chunk: str, max_length: int) -> list[str]:
    pieces = []
    start = 0
    while start < len(chunk):
        split_at = _find_split(chunk, start, max_length)
        piece = chunk[start:split_at].strip()
        if piece:
            pieces.append(piece)
        start = split_at
    return pieces


def segment(
    text: str,
    max_length: int = DEFAULT_MAX_LENGTH,
    min_length: int = DEFAULT_MIN_LENGTH,
) -> list[str]:
    """
    Split `text` into ordered fragments suitable for separate chat messages.

    Lines become first-level chunks. Chunks longer than `max_length` are cut
    after the last sentence end inside each window, or after the last
    conjunction when there is none; a window with neither is never cut.
    Punctuation-only pieces are dropped, and pieces shorter than
    `min_length` are glued onto the previous fragment.

    Args:
        text: Raw reply text.
        max_length: Preferred upper bound for a fragment.
        min_length: Fragments shorter than this are merged backwards.

    Returns:
        Fragments in original order; empty for blank input.
    """
    if not text or not text.strip():
        return []

    chunks = [c.strip() for c in _LINE_BREAKS.split(text)]
    pieces: list[str] = []
    for chunk in chunks:
        if not chunk:
            continue
        if len(chunk) > max_length:
            pieces.extend(_split_long_chunk(chunk, max_length))
        else:
            pieces.append(chunk)

    fragments: list[str] = []
    for piece in pieces:
        if is_punctuation_only(piece):
            continue
        if fragments and len(piece) < min_length:
            fragments[-1] = f"{fragments[-1]} {piece}"
        else:
            fragments.append(piece)
    return fragments


def count_sentences(text: str) -> int:
    """Count non-empty runs of text between sentence marks."""
    return len([s for s in re.split(r"[.!?]+", text) if s.strip()])
