"""
Context Reconstruction
-----------------------
Similarity search can return several overlapping windows of the same post
at different ranks.  Concatenating them naively would repeat the overlapped
text to the language model, so the reconstructor rebuilds one coherent
block per post instead:

    windows of post 12 (any rank order)       merged block
    [0, 6)   "Hello "                          Post 12:
    [5, 11)  " world!"              ----->     Hello world!
    [20, 27) "Goodbye"
                                               Goodbye

Overlapping or adjacent windows are trimmed to the part not yet emitted;
a real gap between windows becomes a blank line.  Blocks are ordered by
post id.  Summary passages carry no span and are emitted verbatim.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Iterable, Optional

from loguru import logger

from bookworm.schemas import PassageRecord

BLOCK_SEPARATOR = "\n\n"


# --- Payload extraction ------------------------------------------------------------

def as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return default


def passage_from_payload(payload: dict[str, Any]) -> Optional[PassageRecord]:
    """
    Turn one stored payload into a PassageRecord.

    A missing post id falls back to 0 and missing text to "" so one bad
    record cannot sink a multi-post context.  Windowed payloads whose offsets
    do not fit their message are dropped (returns None).
    """
    source_id = as_int(payload.get("id"))

    if "chunk_start" not in payload:
        summary = payload.get("summary")
        return PassageRecord(
            source_id=source_id,
            text=summary if isinstance(summary, str) else "",
        )

    message = payload.get("message")
    if not isinstance(message, str):
        message = ""
    start = payload.get("chunk_start")
    end = payload.get("chunk_end")
    if (
        not isinstance(start, int)
        or not isinstance(end, int)
        or isinstance(start, bool)
        or isinstance(end, bool)
        or not 0 <= start <= end <= len(message)
    ):
        logger.warning(
            f"[Context] Dropping post {source_id} passage with bad span "
            f"({start!r}, {end!r}) for a {len(message)}-char message"
        )
        return None

    return PassageRecord(source_id=source_id, text=message[start:end], span=(start, end))


def passages_from_payloads(payloads: Iterable[dict[str, Any]]) -> list[PassageRecord]:
    passages = []
    for payload in payloads:
        passage = passage_from_payload(payload)
        if passage is not None:
            passages.append(passage)
    return passages


# --- Merging -----------------------------------------------------------------------

def _merge_windows(windows: list[PassageRecord]) -> str:
    ordered = sorted(windows, key=lambda p: (p.start, -p.end))
    merged = ordered[0].text
    last_end = ordered[0].end

    for passage in ordered[1:]:
        if passage.start > last_end:
            merged += BLOCK_SEPARATOR + passage.text
        elif passage.end > last_end:
            merged += passage.text[last_end - passage.start:]
        # else: fully covered by what is already emitted
        last_end = max(last_end, passage.end)

    return merged


def merge_post(source_id: int, passages: list[PassageRecord]) -> str:
    """Build the labelled, de-duplicated text block for one post."""
    parts: list[str] = []
    seen: set[str] = set()
    for passage in passages:
        if passage.span is None and passage.text and passage.text not in seen:
            seen.add(passage.text)
            parts.append(passage.text)

    windows = [p for p in passages if p.span is not None]
    if windows:
        parts.append(_merge_windows(windows))

    return f"Post {source_id}:\n" + BLOCK_SEPARATOR.join(parts)


def reconstruct(passages: Iterable[PassageRecord]) -> list[tuple[int, str]]:
    """
    Group passages by post and merge each group.

    Returns:
        (post_id, merged_text) pairs in ascending post id order.
    """
    groups: dict[int, list[PassageRecord]] = defaultdict(list)
    for passage in passages:
        groups[passage.source_id].append(passage)

    blocks = [(source_id, merge_post(source_id, group)) for source_id, group in sorted(groups.items())]
    logger.debug(
        f"[Context] {sum(len(g) for g in groups.values())} passage(s) -> {len(blocks)} post block(s)"
    )
    return blocks


def build_context(passages: Iterable[PassageRecord]) -> str:
    """Reconstruct and join all post blocks into the prompt context string."""
    return BLOCK_SEPARATOR.join(text for _, text in reconstruct(passages))
