"""
bookworm - Fixed Window Chunker
--------------------------------
Splits a post's message into fixed-size windows that carry their
(start, end) offsets into the message, so retrieved windows can later be
stitched back together by the context reconstructor.

Windows start every `overlap_size` characters (the step) and are
`chunk_size` characters wide, so consecutive windows share
`chunk_size - overlap_size` characters:

    chunk_size=10, overlap_size=4
    [0, 10)  [4, 14)  [8, 18)  ...

Offsets are Python string indices (code points), matching how the
reconstructor slices the stored message.
"""
from __future__ import annotations

from loguru import logger

from bookworm.schemas import MAX_CHUNKS_PER_POST, Window


def chunk_text(text: str, chunk_size: int, overlap_size: int) -> list[Window]:
    """
    Split text into windows of width chunk_size taken every overlap_size chars.

    Raises:
        ValueError: if either size is non-positive, or the step is wider than
        the window (which would leave uncovered gaps).
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap_size <= 0:
        raise ValueError(f"overlap_size must be positive, got {overlap_size}")
    if overlap_size > chunk_size:
        raise ValueError(
            f"overlap_size ({overlap_size}) larger than chunk_size ({chunk_size}) "
            "would leave parts of the text out of every window"
        )

    windows: list[Window] = []
    length = len(text)
    start = 0
    while start < length:
        end = min(start + chunk_size, length)
        windows.append(Window(start=start, end=end, text=text[start:end]))
        start += overlap_size
    return windows


class FixedWindowChunker:
    """
    Chunks post messages under one collection's (chunk_size, overlap_size).

    Usage:
        chunker = FixedWindowChunker(collection.chunk_size, collection.overlap_size)
        windows = chunker.chunk(post.message)
    """

    def __init__(
        self,
        chunk_size: int,
        overlap_size: int,
        max_chunks: int = MAX_CHUNKS_PER_POST,
    ) -> None:
        self.chunk_size = chunk_size
        self.overlap_size = overlap_size
        self.max_chunks = max_chunks

    def chunk(self, text: str) -> list[Window]:
        windows = chunk_text(text, self.chunk_size, self.overlap_size)
        if len(windows) > self.max_chunks:
            raise ValueError(
                f"{len(windows)} chunks exceed the per-post limit of {self.max_chunks}"
            )
        logger.debug(
            f"[Chunker] {len(text)} chars | size={self.chunk_size} "
            f"step={self.overlap_size} -> {len(windows)} window(s)"
        )
        return windows
