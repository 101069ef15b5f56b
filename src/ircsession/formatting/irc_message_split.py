"""Split long text into chunks that each fit one protocol line."""

from __future__ import annotations


def _fit(encoded: bytes, start: int, max_bytes: int) -> bytes:
    """Longest prefix of ``encoded[start:]`` within ``max_bytes`` that is valid UTF-8."""
    chunk = encoded[start : start + max_bytes]
    while chunk:
        try:
            chunk.decode("utf-8", errors="strict")
            return chunk
        except UnicodeDecodeError:
            chunk = chunk[:-1]
    # invalid UTF-8 at start; take one byte and let decode replace it
    return encoded[start : start + 1]


def split_message(text: str, max_bytes: int = 400) -> list[str]:
    """Split ``text`` into chunks of at most ``max_bytes`` UTF-8 bytes.

    Line breaks always end a chunk (blank lines are dropped). Longer lines are
    broken at the last space in the second half of a chunk when there is one,
    and never inside a multi-byte character.
    """
    if max_bytes < 1:
        raise ValueError("max_bytes must be positive")
    chunks: list[str] = []
    for line in text.splitlines():
        if not line:
            continue
        encoded = line.encode("utf-8", errors="replace")
        start = 0
        while start < len(encoded):
            chunk = _fit(encoded, start, max_bytes)
            if start + len(chunk) < len(encoded):
                last_space = chunk.rfind(b" ")
                if last_space > max_bytes // 2:
                    chunk = _fit(encoded, start, last_space + 1)
            chunks.append(chunk.decode("utf-8", errors="replace"))
            start += len(chunk)
    return chunks
