"""Fit a file's hunks into a single review request.

Hunks are packed in diff order and never split or reordered: the first hunk
that would overflow the request budget ends the packing. Existing comment
threads are attached to a hunk only while budget remains, and are the first
thing dropped when it runs out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from hunkwise_core.diff.patch import Hunk
from hunkwise_core.tokens import count_tokens

logger = logging.getLogger(__name__)

CommentChainLookup = Callable[[int, int], str]


@dataclass(frozen=True)
class PackedPatches:
    text: str
    packed: int
    tokens: int


def calculate_patches_to_pack(
    hunks: Sequence[Hunk],
    base_tokens: int,
    limit: int,
    counter: Callable[[str], int] = count_tokens,
) -> int:
    """Return how many leading hunks fit cumulatively under ``limit``."""
    tokens = base_tokens
    patches_to_pack = 0
    for hunk in hunks:
        hunk_tokens = counter(hunk.to_prompt_block())
        if tokens + hunk_tokens > limit:
            logger.info(
                "only packing %d / %d patches, tokens: %d / %d",
                patches_to_pack,
                len(hunks),
                tokens,
                limit,
            )
            break
        tokens += hunk_tokens
        patches_to_pack += 1
    return patches_to_pack


def pack_patches_into_inputs(
    hunks: Sequence[Hunk],
    count: int,
    limit: int,
    base_tokens: int = 0,
    comment_chain_for: CommentChainLookup | None = None,
    counter: Callable[[str], int] = count_tokens,
) -> PackedPatches:
    """Assemble the hunk section of a review request.

    ``comment_chain_for(start_line, end_line)`` returns the text of existing
    review threads on that new-file range, or an empty string.
    """
    tokens = base_tokens
    parts: list[str] = []
    packed = 0

    for hunk in hunks:
        if packed >= count:
            logger.info("unable to pack more patches into this request, packed: %d / %d", packed, len(hunks))
            break
        packed += 1
        tokens += counter(hunk.to_prompt_block())

        chain = comment_chain_for(hunk.new_start, hunk.new_end) if comment_chain_for else ""
        if chain:
            chain_tokens = counter(chain)
            if tokens + chain_tokens > limit:
                logger.debug("Dropping comment chain for lines %d-%d: over budget", hunk.new_start, hunk.new_end)
                chain = ""
            else:
                tokens += chain_tokens

        parts.append(f"\n{hunk.to_prompt_block()}\n")
        if chain:
            parts.append(f"\n---comment_chains---\n```\n{chain}\n```\n")
        parts.append("\n---end_change_section---\n")

    return PackedPatches(text="".join(parts), packed=packed, tokens=tokens)
